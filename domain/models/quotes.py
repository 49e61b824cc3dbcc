from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class HistoryInterval(Enum):
    AUTO = "auto"
    HOURLY = "hourly"
    DAILY = "daily"


@dataclass(frozen=True)
class CoinPrice:
    symbol: str
    name: str
    price: float
    change_24h: float | None
    market_cap: float | None
    currency: str
    provider: str
    timestamp: datetime


@dataclass(frozen=True)
class PricePoint:
    timestamp: datetime
    price: float


@dataclass(frozen=True)
class PriceHistory:
    symbol: str
    name: str
    currency: str
    provider: str
    points: list[PricePoint] = field(default_factory=list)


@dataclass(frozen=True)
class TickerMatch:
    symbol: str
    name: str
    exchange: str
    asset_type: str
    provider: str  # comma-joined when several providers report the same match

    def identity_key(self) -> tuple[str, str, str, str]:
        return (
            self.symbol.strip().upper(),
            self.name.strip().lower(),
            self.exchange.strip().lower(),
            self.asset_type.strip().lower(),
        )


@dataclass(frozen=True)
class FiatAmount:
    amount: float
    currency: str


@dataclass(frozen=True)
class Conversion:
    from_amount: float
    from_currency: str
    to_symbol: str
    to_name: str
    to_amount: float
    rate: float
    provider: str
    timestamp: datetime
