# solis_backfill/exceptions.py


class BackfillError(Exception):
    """Base exception for backfill failures."""


class ConfigError(BackfillError):
    """Configuration file or credentials are missing or invalid."""


class ProviderError(BackfillError):
    """A SolisCloud request failed at the transport or HTTP level."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DeviceListingError(BackfillError):
    """The inverter list could not be fetched; nothing can be reconciled."""


class StoreError(BackfillError):
    """The summary store rejected a query or a write.

    ``written`` counts rows a chunked write had already committed.
    """

    def __init__(self, message: str, written: int = 0):
        super().__init__(message)
        self.written = written
