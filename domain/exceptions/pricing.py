from enum import Enum


class PricrError(Exception):
    pass


class TransportError(PricrError):
    pass


class RemoteApiError(PricrError):
    pass


class ParseError(PricrError):
    pass


class ConfigErrorKind(Enum):
    INVALID_INPUT = "invalid_input"
    INVALID_CONFIG = "invalid_config"
    UNKNOWN_PROVIDER = "unknown_provider"
    UNKNOWN_CONFIGURED_PROVIDER = "unknown_configured_provider"
    NO_PROVIDERS = "no_providers"
    MISSING_CREDENTIAL = "missing_credential"
    UNSUPPORTED_CAPABILITY = "unsupported_capability"
    UNSUPPORTED_HISTORY_WINDOW = "unsupported_history_window"


class ConfigurationError(PricrError):
    def __init__(self, message: str, kind: ConfigErrorKind = ConfigErrorKind.INVALID_INPUT):
        super().__init__(message)
        self.kind = kind


class NoResultsError(PricrError):
    def __init__(self, message: str = "No results returned"):
        super().__init__(message)


def is_ignorable_price_error(error: Exception) -> bool:
    """A provider that has nothing, or lacks a key, is skipped during price fallback."""
    if isinstance(error, NoResultsError):
        return True
    return isinstance(error, ConfigurationError) and error.kind == ConfigErrorKind.MISSING_CREDENTIAL


def is_ignorable_search_error(error: Exception) -> bool:
    if isinstance(error, NoResultsError):
        return True
    return isinstance(error, ConfigurationError) and error.kind == ConfigErrorKind.UNSUPPORTED_CAPABILITY
