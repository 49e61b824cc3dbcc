import dataclasses
import logging

from domain.exceptions.pricing import ConfigurationError, NoResultsError, PricrError, is_ignorable_search_error
from domain.models.quotes import TickerMatch
from infrastructure.providers.base import PriceProvider
from infrastructure.providers.registry import provider_ids_for_indices, resolve_provider_indices

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 50


def append_provider_name(existing: str, provider_name: str) -> str:
    """Add `provider_name` to a comma-separated list unless it is already there."""
    if any(name.strip().lower() == provider_name.lower() for name in existing.split(",")):
        return existing
    if not existing.strip():
        return provider_name
    return f"{existing}, {provider_name}"


async def search_tickers_across_providers(
    providers: list[PriceProvider],
    indices: list[int],
    query: str,
    limit: int,
) -> list[TickerMatch]:
    """Search every provider in order and merge the matches in discovery order.

    A match reported by several providers appears once, with all of their
    names. New matches stop being accepted once `limit` is reached.
    """
    merged: list[TickerMatch] = []
    positions: dict[tuple[str, str, str, str], int] = {}
    last_error: PricrError | None = None

    for index in indices:
        provider = providers[index]
        try:
            matches = await provider.search_tickers(query, limit)
        except PricrError as e:
            if is_ignorable_search_error(e):
                logger.info(f"Provider {provider.id} skipped for search: {e}")
            else:
                logger.warning(f"Provider {provider.id} search failed: {e}")
                last_error = e
            continue

        for match in matches:
            key = match.identity_key()
            position = positions.get(key)
            if position is not None:
                existing = merged[position]
                merged[position] = dataclasses.replace(
                    existing, provider=append_provider_name(existing.provider, match.provider)
                )
            elif len(merged) < limit:
                positions[key] = len(merged)
                merged.append(match)

    if not merged:
        if last_error is not None:
            raise last_error
        raise NoResultsError()
    return merged[:limit]


class SearchService:
    def __init__(self, providers: list[PriceProvider], provider_order: list[str] | None = None):
        self.providers = providers
        self.provider_order = provider_order

    async def search(self, query: str, limit: int = 10, provider: str | None = None) -> list[TickerMatch]:
        trimmed = query.strip()
        if not trimmed:
            raise ConfigurationError("ticker search query cannot be empty")
        if not 1 <= limit <= MAX_SEARCH_LIMIT:
            raise ConfigurationError(f"search limit must be between 1 and {MAX_SEARCH_LIMIT}")

        indices = resolve_provider_indices(self.providers, provider, self.provider_order)

        if provider is not None:
            pinned = self.providers[indices[0]]
            logger.info(f"Searching tickers for '{trimmed}' on {pinned.id}")
            return await pinned.search_tickers(trimmed, limit)

        logger.info(
            f"Searching tickers for '{trimmed}' across {provider_ids_for_indices(self.providers, indices)}"
        )
        return await search_tickers_across_providers(self.providers, indices, trimmed, limit)
