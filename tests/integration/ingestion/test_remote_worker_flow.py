"""Remote worker mode: dispatch over HTTP and API-key protected webhook."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from docinsight_api.models import DocumentStatus
from tests.utils import load_document, post_status, seed_identity_records, trigger

pytestmark = pytest.mark.asyncio

WORKER_URL = "http://worker.test"
WORKER_KEY = "worker-shared-secret"


class StubProcessingService:
    """Record ``/ingest`` calls and answer with a configurable status code."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 202
        self.body = ""

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.body)

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


def _remote(service: StubProcessingService) -> dict[str, Any]:
    return {
        "worker_mode": "remote",
        "worker_service_url": WORKER_URL,
        "worker_api_key": WORKER_KEY,
        "worker_transport": httpx.MockTransport(service),
    }


async def test_trigger_posts_job_to_processing_service(client_factory) -> None:
    service = StubProcessingService()
    async with client_factory(**_remote(service)) as client:
        seeded = await seed_identity_records()
        editor = seeded["editor"]

        job = await trigger(client, editor["headers"], editor["document_id"])

        assert len(service.requests) == 1
        request = service.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{WORKER_URL}/ingest"
        assert request.headers["Authorization"] == f"Bearer {WORKER_KEY}"
        document = await load_document(editor["document_id"])
        assert service.payloads[0] == {
            "document_id": editor["document_id"],
            "job_id": job["id"],
            "file_path": document.file_path,
            "file_type": "pdf",
        }


async def test_dispatch_failure_fails_job_and_document(client_factory) -> None:
    service = StubProcessingService()
    service.status_code = 503
    service.body = "overloaded"
    async with client_factory(**_remote(service)) as client:
        seeded = await seed_identity_records()
        editor = seeded["editor"]

        response = await client.post(
            "/api/v1/ingestion/trigger",
            headers=editor["headers"],
            json={"document_id": editor["document_id"]},
        )

        assert response.status_code == 500
        assert response.json()["error"] == (
            "Failed to dispatch ingestion job: 503 Service Unavailable: overloaded"
        )
        listing = await client.get("/api/v1/ingestion/jobs", headers=editor["headers"])
        (job,) = listing.json()["data"]
        assert job["status"] == "failed"
        assert job["error_message"].startswith("Failed to dispatch ingestion job")
        assert "completed_at" in job
        assert (await load_document(editor["document_id"])).status == DocumentStatus.FAILED

        retry = await client.post(
            f"/api/v1/ingestion/jobs/{job['id']}/retry", headers=editor["headers"]
        )
        assert retry.status_code == 500
        assert retry.json()["error"].startswith("Retry failed: 503 Service Unavailable")
        assert service.payloads[-1]["retry_count"] == 1

        service.status_code = 202
        second = await client.post(
            f"/api/v1/ingestion/jobs/{job['id']}/retry", headers=editor["headers"]
        )
        assert second.status_code == 200, second.text
        assert second.json()["data"]["retry_count"] == 2
        assert service.payloads[-1]["retry_count"] == 2


async def test_retry_limit_is_enforced(client_factory) -> None:
    service = StubProcessingService()
    service.status_code = 500
    async with client_factory(ingestion_max_retries=1, **_remote(service)) as client:
        seeded = await seed_identity_records()
        editor = seeded["editor"]
        await client.post(
            "/api/v1/ingestion/trigger",
            headers=editor["headers"],
            json={"document_id": editor["document_id"]},
        )
        (job,) = (await client.get("/api/v1/ingestion/jobs", headers=editor["headers"])).json()[
            "data"
        ]

        first = await client.post(
            f"/api/v1/ingestion/jobs/{job['id']}/retry", headers=editor["headers"]
        )
        assert first.status_code == 500

        second = await client.post(
            f"/api/v1/ingestion/jobs/{job['id']}/retry", headers=editor["headers"]
        )
        assert second.status_code == 400
        assert second.json()["error"] == "Job has reached the maximum of 1 retries"


async def test_webhook_requires_worker_api_key(client_factory) -> None:
    service = StubProcessingService()
    async with client_factory(**_remote(service)) as client:
        seeded = await seed_identity_records()
        editor = seeded["editor"]
        job = await trigger(client, editor["headers"], editor["document_id"])

        missing = await post_status(client, job["id"], "processing")
        assert missing.status_code == 401
        assert missing.json()["error"] == "Invalid API key"

        wrong = await post_status(client, job["id"], "processing", api_key="nope")
        assert wrong.status_code == 401

        # The key is checked before the body is validated.
        empty = await client.post("/api/v1/ingestion/webhook/status-update", json={})
        assert empty.status_code == 401

        accepted = await post_status(
            client,
            job["id"],
            "completed",
            api_key=WORKER_KEY,
            progress={"step": "completed", "percentage": 100},
        )
        assert accepted.status_code == 200
        assert (await load_document(editor["document_id"])).status == DocumentStatus.COMPLETED
