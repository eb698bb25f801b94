"""
Hedgebase Custom Exceptions

Simple exception hierarchy for error handling.
"""


class HedgebaseError(Exception):
    """Base exception for Hedgebase."""

    pass


class ConfigurationError(HedgebaseError):
    """Configuration is invalid."""

    pass


class StoreError(HedgebaseError):
    """Remote document store request failed."""

    pass


class TransportError(HedgebaseError):
    """Sensor transport is unavailable or misbehaving."""

    pass


class InvalidReadingError(HedgebaseError):
    """Sensor reading cannot be classified (NaN or infinite)."""

    pass
