"""Settings parsing and validation."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from docinsight_api.settings import Settings
from tests.utils import TEST_JWT_SECRET


def test_defaults() -> None:
    settings = Settings(jwt_secret=TEST_JWT_SECRET)

    assert settings.worker_mode == "simulated"
    assert settings.simulated is True
    assert settings.ingestion_max_retries == 3
    assert settings.worker_dispatch_timeout == timedelta(seconds=30)
    assert settings.simulation_failure_rate == 0.1
    assert settings.jwt_secret_generated is False


@pytest.mark.parametrize("alias", ["mock", "Simulation", " simulated "])
def test_worker_mode_aliases(alias: str) -> None:
    assert Settings(jwt_secret=TEST_JWT_SECRET, worker_mode=alias).worker_mode == "simulated"


def test_remote_mode_requires_url_and_key() -> None:
    with pytest.raises(ValidationError) as excinfo:
        Settings(jwt_secret=TEST_JWT_SECRET, worker_mode="remote")

    message = str(excinfo.value)
    assert "DOCINSIGHT_WORKER_SERVICE_URL" in message
    assert "DOCINSIGHT_WORKER_API_KEY" in message


def test_remote_mode_settings() -> None:
    settings = Settings(
        jwt_secret=TEST_JWT_SECRET,
        worker_mode="remote",
        worker_service_url="https://worker.example.com/",
        worker_api_key="key",
        worker_dispatch_timeout="2m",
    )

    assert settings.simulated is False
    assert settings.worker_service_url == "https://worker.example.com"
    assert settings.worker_dispatch_timeout == timedelta(minutes=2)


def test_worker_url_must_be_http() -> None:
    with pytest.raises(ValidationError, match="http\\(s\\) URL"):
        Settings(jwt_secret=TEST_JWT_SECRET, worker_service_url="ftp://worker")


def test_short_jwt_secret_is_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(jwt_secret="too-short")


def test_missing_jwt_secret_is_generated(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DOCINSIGHT_JWT_SECRET", raising=False)

    settings = Settings(_env_file=None)

    assert settings.jwt_secret_generated is True
    assert len(settings.jwt_secret_value) >= 32


def test_env_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCINSIGHT_SERVER_CORS_ORIGINS", "http://a.test, http://b.test,http://a.test")
    monkeypatch.setenv("DOCINSIGHT_SIMULATION_FAILURE_RATE", "0.25")
    monkeypatch.setenv("DOCINSIGHT_INGESTION_MAX_RETRIES", "5")
    monkeypatch.setenv("DOCINSIGHT_LOGGING_LEVEL", "debug")

    settings = Settings(jwt_secret=TEST_JWT_SECRET, _env_file=None)

    assert settings.server_cors_origins == ["http://a.test", "http://b.test"]
    assert settings.simulation_failure_rate == 0.25
    assert settings.ingestion_max_retries == 5
    assert settings.logging_level == "DEBUG"
