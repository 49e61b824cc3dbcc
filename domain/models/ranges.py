from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from enum import Enum

from domain.exceptions.pricing import ConfigurationError

MAX_CHART_FETCH_DAYS = 36_500


def _months_back(end: date, months: int) -> date:
    month_index = end.year * 12 + (end.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    # clamp the day, e.g. 31 March minus one month lands on the last day of February
    for day in (end.day, 30, 29, 28):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return end - timedelta(days=30 * months)


class ChartRange(Enum):
    ONE_DAY = "1D"
    FIVE_DAYS = "5D"
    ONE_MONTH = "1M"
    SIX_MONTHS = "6M"
    YTD = "YTD"
    ONE_YEAR = "1Y"
    FIVE_YEARS = "5Y"
    ALL = "ALL"

    def start_date(self, end: date) -> date | None:
        if self is ChartRange.ONE_DAY:
            return end - timedelta(days=1)
        if self is ChartRange.FIVE_DAYS:
            return end - timedelta(days=5)
        if self is ChartRange.ONE_MONTH:
            return _months_back(end, 1)
        if self is ChartRange.SIX_MONTHS:
            return _months_back(end, 6)
        if self is ChartRange.YTD:
            return date(end.year, 1, 1)
        if self is ChartRange.ONE_YEAR:
            return _months_back(end, 12)
        if self is ChartRange.FIVE_YEARS:
            return _months_back(end, 60)
        return None


@dataclass(frozen=True)
class ChartWindow:
    """Resolved UTC window for chart queries. ``start`` is None for the ALL preset."""
    start: datetime | None
    end: datetime
    fetch_days: int
    label: str


def compute_chart_fetch_days(start: date | None, today: date | None = None) -> int:
    if start is None:
        return MAX_CHART_FETCH_DAYS
    today = today or datetime.now(UTC).date()
    days = max((today - start).days, 1)
    return min(days, MAX_CHART_FETCH_DAYS)


def resolve_chart_window(
    chart_range: ChartRange,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> ChartWindow:
    today = today or datetime.now(UTC).date()
    end = end_date or today
    if end > today:
        raise ConfigurationError("chart end date cannot be in the future")

    start = start_date or chart_range.start_date(end)
    if start is not None and start > end:
        raise ConfigurationError("chart start date cannot be after chart end date")

    if start is not None:
        label = f"{start.isoformat()}..{end.isoformat()}"
    else:
        label = chart_range.value

    return ChartWindow(
        start=datetime.combine(start, time.min, tzinfo=UTC) if start else None,
        end=datetime.combine(end, time(23, 59, 59), tzinfo=UTC),
        fetch_days=compute_chart_fetch_days(start, today),
        label=label,
    )
