"""DocInsight settings (conventional Pydantic v2)."""

from __future__ import annotations

import json
import secrets
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field, PrivateAttr, SecretStr, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import DotEnvSettingsSource, EnvSettingsSource

# ---- Defaults ---------------------------------------------------------------

MODULE_DIR = Path(__file__).resolve().parent

DEFAULT_PROJECT_ROOT = MODULE_DIR.parent.parent
DEFAULT_ALEMBIC_INI = DEFAULT_PROJECT_ROOT / "alembic.ini"
DEFAULT_ALEMBIC_MIGRATIONS = DEFAULT_PROJECT_ROOT / "migrations"
DEFAULT_DATABASE_URL = "sqlite:///./data/db/docinsight.sqlite"
DEFAULT_CORS_ORIGINS = ["http://localhost:4200"]
DEFAULT_DISPATCH_TIMEOUT = timedelta(seconds=30)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_BULK_DOCUMENTS = 100

_LENIENT_LIST_FIELDS = {"server_cors_origins"}

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


class SimulationStepSettings(BaseModel):
    """One named step of the simulated processing sequence."""

    name: str
    duration_ms: int
    percentage: int


DEFAULT_SIMULATION_STEPS: tuple[SimulationStepSettings, ...] = (
    SimulationStepSettings(name="initializing", duration_ms=500, percentage=10),
    SimulationStepSettings(name="extracting_text", duration_ms=1000, percentage=30),
    SimulationStepSettings(name="analyzing_content", duration_ms=1000, percentage=60),
    SimulationStepSettings(name="generating_embeddings", duration_ms=1000, percentage=80),
    SimulationStepSettings(name="finalizing", duration_ms=500, percentage=95),
)


# ---- Helpers ----------------------------------------------------------------

def _parse_duration(value: Any, *, field_name: str) -> timedelta:
    """Accept seconds (int/float/str) or '60s'/'5m'/'1h'/'14d'."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            raise ValueError(f"{field_name} must not be blank")
        try:
            seconds = float(s)  # plain seconds
        except ValueError:
            unit = s[-1].lower()
            num = s[:-1].strip()
            if unit not in _UNIT_SECONDS or not num:
                raise ValueError(
                    f"{field_name} must be secs or 'Xs','Xm','Xh','Xd'"
                ) from None
            try:
                seconds = float(num) * _UNIT_SECONDS[unit]
            except ValueError as exc:
                raise ValueError(
                    f"{field_name} must be secs or 'Xs','Xm','Xh','Xd'"
                ) from exc
    else:
        raise TypeError(f"{field_name} must be number, duration string, or timedelta")
    if seconds <= 0:
        raise ValueError(f"{field_name} must be > 0 seconds")
    return timedelta(seconds=seconds)


def _list_from_env(value: Any, *, default: list[str]) -> list[str]:
    """JSON array or comma string; strip empties; dedupe preserving order."""
    if value in (None, "", []):
        items = list(default)
    elif isinstance(value, str):
        s = value.strip()
        if s.startswith("["):
            try:
                parsed = json.loads(s)
            except json.JSONDecodeError as exc:
                raise ValueError("Expected a JSON array") from exc
            if not isinstance(parsed, list):
                raise ValueError("Expected a JSON array")
            items = [str(x).strip() for x in parsed if str(x).strip()]
        else:
            items = [seg.strip() for seg in s.split(",") if seg.strip()]
    elif isinstance(value, (list, tuple, set)):
        items = [str(x).strip() for x in value if str(x).strip()]
    else:
        raise TypeError("Expected string or list")

    seen, out = set(), []
    for x in items:
        if x not in seen:
            seen.add(x)
            out.append(x)
    return out


# ---- Settings ---------------------------------------------------------------

class _LenientEnvSettingsSource(EnvSettingsSource):
    """Environment source that preserves raw strings for list-like fields."""

    lenient_fields: ClassVar[set[str]] = _LENIENT_LIST_FIELDS

    def prepare_field_value(
        self,
        field_name: str,
        field,
        value: Any,
        value_is_complex: bool,
    ) -> Any:
        if field_name in self.lenient_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)


class _LenientDotEnvSettingsSource(DotEnvSettingsSource):
    """Dotenv source that preserves raw strings for list-like fields."""

    lenient_fields: ClassVar[set[str]] = _LENIENT_LIST_FIELDS

    def prepare_field_value(
        self,
        field_name: str,
        field,
        value: Any,
        value_is_complex: bool,
    ) -> Any:
        if field_name in self.lenient_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)


class Settings(BaseSettings):
    """FastAPI settings loaded from DOCINSIGHT_* environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DOCINSIGHT_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    _jwt_secret_generated: bool = PrivateAttr(default=False)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        env_source = _LenientEnvSettingsSource(
            settings_cls,
            case_sensitive=getattr(env_settings, "case_sensitive", None),
            env_prefix=getattr(env_settings, "env_prefix", None),
            env_nested_delimiter=getattr(env_settings, "env_nested_delimiter", None),
            env_ignore_empty=getattr(env_settings, "env_ignore_empty", None),
            env_parse_none_str=getattr(env_settings, "env_parse_none_str", None),
            env_parse_enums=getattr(env_settings, "env_parse_enums", None),
        )
        dotenv_source = _LenientDotEnvSettingsSource(
            settings_cls,
            env_file=getattr(dotenv_settings, "env_file", None),
            env_file_encoding=getattr(dotenv_settings, "env_file_encoding", None),
            case_sensitive=getattr(dotenv_settings, "case_sensitive", None),
            env_prefix=getattr(dotenv_settings, "env_prefix", None),
            env_nested_delimiter=getattr(dotenv_settings, "env_nested_delimiter", None),
            env_ignore_empty=getattr(dotenv_settings, "env_ignore_empty", None),
            env_parse_none_str=getattr(dotenv_settings, "env_parse_none_str", None),
            env_parse_enums=getattr(dotenv_settings, "env_parse_enums", None),
        )
        return (init_settings, env_source, dotenv_source, file_secret_settings)

    # ---- App ----
    app_name: str = "DocInsight API"
    app_version: str = "0.1.0"
    logging_level: str = "INFO"
    server_cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    alembic_ini_path: Path = Field(default=DEFAULT_ALEMBIC_INI)
    alembic_migrations_dir: Path = Field(default=DEFAULT_ALEMBIC_MIGRATIONS)

    # ---- Database ----
    database_url: str = DEFAULT_DATABASE_URL
    database_echo: bool = False
    database_sqlite_journal_mode: str = "WAL"
    database_sqlite_synchronous: str = "NORMAL"
    database_sqlite_busy_timeout_ms: int = Field(30_000, ge=0)

    # ---- Auth ----
    jwt_secret: SecretStr | None = Field(default=None)
    jwt_algorithm: str = "HS256"

    # ---- Worker ----
    worker_mode: Literal["remote", "simulated"] = "simulated"
    worker_service_url: str | None = None
    worker_api_key: SecretStr | None = None
    worker_dispatch_timeout: timedelta = Field(default=DEFAULT_DISPATCH_TIMEOUT)
    ingestion_max_retries: int = 3

    # ---- Simulation (range/ordering checks live in validate_simulation_config) ----
    simulation_min_processing_ms: int = 2000
    simulation_max_processing_ms: int = 10000
    simulation_failure_rate: float = 0.1
    simulation_steps: list[SimulationStepSettings] = Field(
        default_factory=lambda: list(DEFAULT_SIMULATION_STEPS)
    )
    simulation_auto_cleanup: bool = False
    simulation_cleanup_interval_ms: int = 300_000
    simulation_cleanup_max_age_ms: int = 3_600_000

    # ---- Validators ----

    @field_validator("logging_level", mode="before")
    @classmethod
    def _v_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v).strip()).upper()
        return s or "INFO"

    @field_validator("server_cors_origins", mode="before")
    @classmethod
    def _v_cors(cls, v: Any) -> list[str]:
        return _list_from_env(v, default=DEFAULT_CORS_ORIGINS)

    @field_validator("worker_mode", mode="before")
    @classmethod
    def _v_worker_mode(cls, v: Any) -> str:
        if v in (None, ""):
            return "simulated"
        mode = str(v).strip().lower()
        if mode in {"mock", "simulation"}:
            return "simulated"
        return mode

    @field_validator("worker_service_url", mode="before")
    @classmethod
    def _v_worker_url(cls, v: Any) -> str | None:
        if v in (None, ""):
            return None
        s = str(v).strip()
        if not s.startswith(("http://", "https://")):
            raise ValueError("DOCINSIGHT_WORKER_SERVICE_URL must be an http(s) URL")
        return s.rstrip("/")

    @field_validator("jwt_secret", mode="before")
    @classmethod
    def _v_jwt_secret(cls, v: Any) -> SecretStr | None:
        if v is None:
            return None  # handled in finalize
        raw = v.get_secret_value() if isinstance(v, SecretStr) else str(v or "").strip()
        if raw and len(raw) < 32:
            raise ValueError("DOCINSIGHT_JWT_SECRET must be at least 32 characters.")
        return SecretStr(raw) if raw else None

    @field_validator("worker_dispatch_timeout", mode="before")
    @classmethod
    def _v_durations(cls, v: Any, info: ValidationInfo) -> timedelta:
        return _parse_duration(v, field_name=info.field_name)

    @model_validator(mode="after")
    def _finalize(self) -> Settings:
        if self.worker_mode == "remote":
            missing = []
            if not self.worker_service_url:
                missing.append("DOCINSIGHT_WORKER_SERVICE_URL")
            if self.worker_api_key is None or not self.worker_api_key.get_secret_value():
                missing.append("DOCINSIGHT_WORKER_API_KEY")
            if missing:
                raise ValueError(
                    "Remote worker mode requires " + ", ".join(missing)
                )

        if self.jwt_secret is None or not self.jwt_secret.get_secret_value().strip():
            self.jwt_secret = SecretStr(secrets.token_urlsafe(64))
            self._jwt_secret_generated = True
        return self

    @property
    def simulated(self) -> bool:
        return self.worker_mode == "simulated"

    @property
    def jwt_secret_value(self) -> str:
        assert self.jwt_secret is not None
        return self.jwt_secret.get_secret_value()

    @property
    def jwt_secret_generated(self) -> bool:
        return self._jwt_secret_generated


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_BULK_DOCUMENTS",
    "MAX_PAGE_SIZE",
    "Settings",
    "SimulationStepSettings",
    "get_settings",
    "reload_settings",
]
