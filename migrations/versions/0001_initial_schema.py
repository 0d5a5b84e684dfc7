"""Initial DocInsight schema: users, documents and ingestion jobs."""

from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
from alembic import op

from docinsight_api.db.types import UTCDateTime, UUIDType

# Revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision: Optional[str] = None
branch_labels: Optional[str] = None
depends_on: Optional[str] = None

USER_ROLES = ("admin", "editor", "viewer")
DOCUMENT_STATUSES = ("pending", "processing", "completed", "failed")
INGESTION_JOB_STATUSES = ("queued", "processing", "completed", "failed", "cancelled")

_ACTIVE_WHERE = sa.text("status IN ('queued', 'processing')")


def _enum(values: tuple[str, ...], name: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=20)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUIDType(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("role", _enum(USER_ROLES, "user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="users_pkey"),
        sa.UniqueConstraint("email", name="users_email_key"),
    )

    op.create_table(
        "documents",
        sa.Column("id", UUIDType(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(500), nullable=False),
        sa.Column("file_type", sa.String(50), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column(
            "status",
            _enum(DOCUMENT_STATUSES, "document_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("uploaded_by", UUIDType(), nullable=False),
        sa.Column("processed_at", UTCDateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="documents_pkey"),
        sa.ForeignKeyConstraint(
            ["uploaded_by"],
            ["users.id"],
            name="documents_uploaded_by_fkey",
            ondelete="CASCADE",
        ),
    )
    op.create_index("documents_uploaded_by_idx", "documents", ["uploaded_by"])
    op.create_index("documents_status_idx", "documents", ["status"])
    op.create_index("documents_created_at_idx", "documents", ["created_at"])

    op.create_table(
        "ingestion_jobs",
        sa.Column("id", UUIDType(), primary_key=True),
        sa.Column("document_id", UUIDType(), nullable=False),
        sa.Column(
            "status",
            _enum(INGESTION_JOB_STATUSES, "ingestion_job_status"),
            nullable=False,
            server_default="queued",
        ),
        sa.Column("progress", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", UTCDateTime(), nullable=True),
        sa.Column("completed_at", UTCDateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="ingestion_jobs_pkey"),
        sa.ForeignKeyConstraint(
            ["document_id"],
            ["documents.id"],
            name="ingestion_jobs_document_id_fkey",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ingestion_jobs_status_idx", "ingestion_jobs", ["status"])
    op.create_index("ingestion_jobs_document_id_idx", "ingestion_jobs", ["document_id"])
    op.create_index("ingestion_jobs_created_at_idx", "ingestion_jobs", ["created_at"])
    op.create_index(
        "ingestion_jobs_status_created_at_idx",
        "ingestion_jobs",
        ["status", "created_at"],
    )
    op.create_index(
        "ingestion_jobs_active_document_key",
        "ingestion_jobs",
        ["document_id"],
        unique=True,
        sqlite_where=_ACTIVE_WHERE,
        postgresql_where=_ACTIVE_WHERE,
    )


def downgrade() -> None:
    op.drop_index("ingestion_jobs_active_document_key", table_name="ingestion_jobs")
    op.drop_index("ingestion_jobs_status_created_at_idx", table_name="ingestion_jobs")
    op.drop_index("ingestion_jobs_created_at_idx", table_name="ingestion_jobs")
    op.drop_index("ingestion_jobs_document_id_idx", table_name="ingestion_jobs")
    op.drop_index("ingestion_jobs_status_idx", table_name="ingestion_jobs")
    op.drop_table("ingestion_jobs")

    op.drop_index("documents_created_at_idx", table_name="documents")
    op.drop_index("documents_status_idx", table_name="documents")
    op.drop_index("documents_uploaded_by_idx", table_name="documents")
    op.drop_table("documents")

    op.drop_table("users")
