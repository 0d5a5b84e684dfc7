"""Helper functions shared across tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import jwt
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docinsight_api.db import db
from docinsight_api.features.ingestion.exceptions import WorkerDispatchError
from docinsight_api.features.ingestion.workers import DispatchRequest
from docinsight_api.models import Document, DocumentStatus, IngestionJob, User, UserRole

TEST_JWT_SECRET = "test-jwt-secret-for-docinsight-tests-only"


class FakeWorker:
    """In-memory worker double that records calls."""

    def __init__(self) -> None:
        self.dispatched: list[DispatchRequest] = []
        self.cancelled: list[UUID] = []
        self.error: str | None = None

    async def dispatch(self, request: DispatchRequest) -> None:
        self.dispatched.append(request)
        if self.error is not None:
            raise WorkerDispatchError(self.error)

    def cancel(self, job_id: UUID) -> None:
        self.cancelled.append(job_id)

    async def aclose(self) -> None:
        return None


def issue_token(
    user_id: UUID,
    role: UserRole,
    *,
    email: str | None = None,
    secret: str = TEST_JWT_SECRET,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Mint an HS256 access token the API accepts."""

    claims: dict[str, Any] = {
        "user_id": str(user_id),
        "role": role.value,
        "exp": datetime.now(tz=UTC) + expires_in,
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def create_user(session: AsyncSession, *, role: UserRole) -> User:
    user = User(email=f"{role.value}+{uuid4().hex[:8]}@example.com", role=role, is_active=True)
    session.add(user)
    await session.flush()
    return user


async def create_document(
    session: AsyncSession,
    *,
    owner: User,
    title: str = "Quarterly report",
    status: DocumentStatus = DocumentStatus.PENDING,
) -> Document:
    document = Document(
        title=title,
        file_name="report.pdf",
        file_path=f"uploads/{uuid4().hex}.pdf",
        file_type="pdf",
        file_size=2048,
        mime_type="application/pdf",
        status=status,
        uploaded_by=owner.id,
    )
    session.add(document)
    await session.flush()
    return document


async def seed_identity_records() -> dict[str, Any]:
    """Create one user per role (plus a second viewer) with a document each.

    Requires a running application lifespan so the database is initialized.
    """

    async with db.sessionmaker() as session:
        users = {
            "admin": await create_user(session, role=UserRole.ADMIN),
            "editor": await create_user(session, role=UserRole.EDITOR),
            "viewer": await create_user(session, role=UserRole.VIEWER),
            "other_viewer": await create_user(session, role=UserRole.VIEWER),
        }
        documents = {
            name: await create_document(session, owner=user, title=f"{name} report")
            for name, user in users.items()
        }
        extra = await create_document(session, owner=users["viewer"], title="viewer appendix")
        await session.commit()

    seeded: dict[str, Any] = {}
    for name, user in users.items():
        token = issue_token(user.id, user.role, email=user.email)
        seeded[name] = {
            "id": str(user.id),
            "email": user.email,
            "token": token,
            "headers": auth_headers(token),
            "document_id": str(documents[name].id),
        }
    seeded["viewer"]["second_document_id"] = str(extra.id)
    return seeded


async def load_document(document_id: str | UUID) -> Document:
    async with db.sessionmaker() as session:
        document = await session.get(Document, UUID(str(document_id)))
        assert document is not None
        return document


async def count_jobs(document_id: str | UUID) -> int:
    async with db.sessionmaker() as session:
        stmt = (
            select(func.count())
            .select_from(IngestionJob)
            .where(IngestionJob.document_id == UUID(str(document_id)))
        )
        return int((await session.execute(stmt)).scalar_one())


async def trigger(client: AsyncClient, headers: dict[str, str], document_id: str) -> dict[str, Any]:
    response = await client.post(
        "/api/v1/ingestion/trigger",
        headers=headers,
        json={"document_id": document_id},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def post_status(client: AsyncClient, job_id: str, status: str, **fields: Any):
    return await client.post(
        "/api/v1/ingestion/webhook/status-update",
        json={"job_id": job_id, "status": status, **fields},
    )


async def wait_for_status(
    client: AsyncClient,
    headers: dict[str, str],
    job_id: str,
    expected: set[str],
    *,
    timeout: float = 5.0,
) -> dict[str, Any]:
    """Poll the status endpoint until the job reaches one of ``expected``."""

    async def _poll() -> dict[str, Any]:
        while True:
            response = await client.get(f"/api/v1/ingestion/status/{job_id}", headers=headers)
            assert response.status_code == 200, response.text
            data = response.json()["data"]
            if data["status"] in expected:
                return data
            await asyncio.sleep(0.02)

    return await asyncio.wait_for(_poll(), timeout=timeout)


__all__ = [
    "TEST_JWT_SECRET",
    "FakeWorker",
    "auth_headers",
    "count_jobs",
    "create_document",
    "create_user",
    "issue_token",
    "load_document",
    "post_status",
    "seed_identity_records",
    "trigger",
    "wait_for_status",
]
