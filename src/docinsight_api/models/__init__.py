"""Central exports for DocInsight SQLAlchemy models."""

from .document import Document, DocumentStatus
from .ingestion_job import ACTIVE_JOB_STATUSES, TERMINAL_JOB_STATUSES, IngestionJob, IngestionJobStatus
from .user import User, UserRole

__all__ = [
    "ACTIVE_JOB_STATUSES",
    "TERMINAL_JOB_STATUSES",
    "Document",
    "DocumentStatus",
    "IngestionJob",
    "IngestionJobStatus",
    "User",
    "UserRole",
]
