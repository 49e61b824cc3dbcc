import logging

from domain.exceptions.pricing import ConfigurationError

logger = logging.getLogger(__name__)

WATCHLIST_PREFIX = "@"


def resolve_watchlist(watchlists: dict[str, list[str]], name: str) -> list[str] | None:
    wanted = name.lower()
    for key, symbols in watchlists.items():
        if key.lower() == wanted:
            return symbols
    return None


def expand_symbol_tokens(tokens: list[str], watchlists: dict[str, list[str]]) -> list[str]:
    """Replace every `@name` token with the symbols of that watchlist.

    Other tokens pass through untouched, in order.
    """
    expanded: list[str] = []

    for token in tokens:
        if not token.startswith(WATCHLIST_PREFIX):
            expanded.append(token)
            continue

        name = token[len(WATCHLIST_PREFIX):].strip()
        if not name:
            raise ConfigurationError("watchlist name cannot be empty after '@'")

        symbols = resolve_watchlist(watchlists, name)
        if symbols is None:
            raise ConfigurationError(f"unknown watchlist '{name}' -- define it under [watchlists] in config")

        added = [symbol.strip() for symbol in symbols if symbol.strip()]
        if not added:
            raise ConfigurationError(f"watchlist '{name}' is empty -- add symbols under [watchlists].{name}")

        logger.debug(f"Expanded watchlist '{name}' to {added}")
        expanded.extend(added)

    return expanded
