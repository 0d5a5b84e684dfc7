"""Domain exceptions for the ingestion feature."""

from __future__ import annotations

__all__ = [
    "AccessDeniedError",
    "AlreadyProcessingError",
    "DocumentNotFoundError",
    "InvalidJobStatusError",
    "JobNotFoundError",
    "RetryLimitExceededError",
    "SimulationConfigError",
    "WorkerDispatchError",
]


class JobNotFoundError(RuntimeError):
    """Raised when a requested ingestion job cannot be located."""


class DocumentNotFoundError(RuntimeError):
    """Raised when the document to ingest does not exist."""


class AlreadyProcessingError(RuntimeError):
    """Raised when a document already has a queued or processing job."""


class AccessDeniedError(RuntimeError):
    """Raised when the caller neither owns the document nor holds a bypass role."""


class InvalidJobStatusError(RuntimeError):
    """Raised when a job's current status forbids the requested transition."""


class RetryLimitExceededError(RuntimeError):
    """Raised when a job has already been retried the configured maximum times."""


class WorkerDispatchError(RuntimeError):
    """Raised when the worker refuses or cannot receive a job."""


class SimulationConfigError(ValueError):
    """Raised at startup when the simulated worker configuration is invalid."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("Invalid simulation configuration: " + "; ".join(self.errors))
