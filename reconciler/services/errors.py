"""
Error taxonomy for the reconciliation engine.

Per-item errors (external calls, persistence, missing records) are recorded in a
job summary and the batch continues. ConfigurationError is fatal for a run.
"""


class ReconciliationError(Exception):
    """Base class for reconciliation errors."""


class ConfigurationError(ReconciliationError):
    """Missing or invalid configuration (API keys, base URLs). Aborts the run."""


class ExternalServiceError(ReconciliationError):
    """Carrier or gateway call failed: network, timeout, auth, non-2xx."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(ExternalServiceError):
    """External API answered 429."""


class MalformedResponseError(ExternalServiceError):
    """External API answered 2xx with a body we cannot use."""


class RecordNotFoundError(ReconciliationError):
    """No internal record for the given reference."""


class PersistenceError(ReconciliationError):
    """A write failed and was rolled back. Safe to retry on the next run."""


class ConcurrentUpdateError(PersistenceError):
    """Another run updated the same record between our read and our write."""
