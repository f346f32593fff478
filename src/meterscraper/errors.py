"""Exceptions raised by the scraper.

Everything except a failed catch-up request is fatal: errors propagate up to
the CLI, which logs them and exits non-zero.
"""


class MeterScraperError(Exception):
    """Base exception for scraper errors."""
    pass


class ConfigError(MeterScraperError):
    """Required configuration is missing or invalid."""
    pass


class SourceAPIError(MeterScraperError):
    """The meter-data provider failed to answer a request."""

    def __init__(self, message: str, resource_id: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.resource_id = resource_id
        self.status_code = status_code


class AuthenticationError(SourceAPIError):
    """The provider rejected our credentials."""
    pass


class IntegrityError(MeterScraperError):
    """Quantity and cost series for a resource are not aligned."""

    def __init__(self, message: str, resource: str | None = None, index: int | None = None):
        super().__init__(message)
        self.resource = resource
        self.index = index


class StoreError(MeterScraperError):
    """The time-series store rejected a write or query."""
    pass
