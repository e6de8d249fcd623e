"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message is stored as an attribute so code can inspect it without
    # parsing str(exception). Don't raise this directly - pick a subclass so callers can
    # catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationError(DomainException):
    """Input validation failed.

    Example:
        raise ValidationError("batch_size must be greater than zero")
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Raised when required configuration is missing or invalid.

    Example:
        raise ConfigurationError("navidrome URL must be set")
    """

    pass


class ExternalServiceError(DomainException):
    """External service returned an error."""

    pass


class FetchError(ExternalServiceError):
    """The remote catalog could not be listed.

    Raised before any local mutation happens, so there is never partial state
    to clean up.
    """

    pass


class StorageError(DomainException):
    """A track store operation failed."""

    pass


class TransactionError(StorageError):
    """A reconciliation transaction failed and was rolled back.

    No track, sync-status, job or completed session row from the failed run is
    visible afterwards.
    """

    pass


class JobExecutionError(DomainException):
    """A job's task failed.

    Recovered inside the worker: the job is marked failed with this message and
    the batch keeps going.
    """

    def __init__(self, message: str, job_id: int | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class JobPersistenceError(StorageError):
    """Writing a job outcome failed.

    Fatal for the batch call (raised after all workers drained) but it does
    not undo outcomes other workers already committed.
    """

    def __init__(self, message: str, job_id: int | None = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class BatchCancelledError(DomainException):
    """A job batch stopped because cancellation was requested.

    This is NOT a failure - callers should log it and exit cleanly instead of
    alerting.
    """

    def __init__(self, message: str = "job batch cancelled") -> None:
        super().__init__(message)


__all__ = [
    "DomainException",
    "ValidationError",
    "ConfigurationError",
    "ExternalServiceError",
    "FetchError",
    "StorageError",
    "TransactionError",
    "JobExecutionError",
    "JobPersistenceError",
    "BatchCancelledError",
]
