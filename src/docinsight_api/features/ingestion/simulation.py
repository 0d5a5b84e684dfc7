"""Configuration of the simulated worker's processing sequence."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from docinsight_api.settings import Settings

__all__ = [
    "SimulationConfig",
    "SimulationStep",
    "validate_simulation_config",
]


@dataclass(frozen=True, slots=True)
class SimulationStep:
    name: str
    duration_ms: int
    percentage: int


@dataclass(frozen=True, slots=True)
class SimulationConfig:
    """Timing, outcome and cleanup parameters for :class:`SimulatedWorker`."""

    min_processing_ms: int
    max_processing_ms: int
    failure_rate: float
    steps: tuple[SimulationStep, ...]
    max_retries: int
    auto_cleanup_enabled: bool = False
    cleanup_interval_ms: int = 300_000
    cleanup_max_age_ms: int = 3_600_000

    @classmethod
    def from_settings(cls, settings: Settings) -> SimulationConfig:
        return cls(
            min_processing_ms=settings.simulation_min_processing_ms,
            max_processing_ms=settings.simulation_max_processing_ms,
            failure_rate=settings.simulation_failure_rate,
            steps=tuple(
                SimulationStep(
                    name=step.name,
                    duration_ms=step.duration_ms,
                    percentage=step.percentage,
                )
                for step in settings.simulation_steps
            ),
            max_retries=settings.ingestion_max_retries,
            auto_cleanup_enabled=settings.simulation_auto_cleanup,
            cleanup_interval_ms=settings.simulation_cleanup_interval_ms,
            cleanup_max_age_ms=settings.simulation_cleanup_max_age_ms,
        )

    @property
    def cleanup_interval(self) -> timedelta:
        return timedelta(milliseconds=self.cleanup_interval_ms)

    @property
    def cleanup_max_age(self) -> timedelta:
        return timedelta(milliseconds=self.cleanup_max_age_ms)


def validate_simulation_config(config: SimulationConfig) -> list[str]:
    """Return every rule ``config`` violates; an empty list means it is usable."""

    errors: list[str] = []

    if config.min_processing_ms < 0:
        errors.append("Minimum processing time cannot be negative")
    if config.max_processing_ms < config.min_processing_ms:
        errors.append("Maximum processing time must be greater than or equal to minimum")
    if not 0 <= config.failure_rate <= 1:
        errors.append("Failure rate must be between 0 and 1")
    if config.max_retries < 0:
        errors.append("Max retries cannot be negative")

    if config.auto_cleanup_enabled:
        if config.cleanup_interval_ms <= 0:
            errors.append("Auto cleanup interval must be positive")
        if config.cleanup_max_age_ms <= 0:
            errors.append("Auto cleanup max age must be positive")

    if not config.steps:
        errors.append("At least one processing step is required")

    previous: int | None = None
    for index, step in enumerate(config.steps):
        label = f"Step {index + 1}"
        if not step.name or not step.name.strip():
            errors.append(f"{label}: name is required")
        if step.duration_ms < 0:
            errors.append(f"{label}: duration cannot be negative")
        if not 0 <= step.percentage <= 100:
            errors.append(f"{label}: percentage must be between 0 and 100")
        if previous is not None and step.percentage <= previous:
            errors.append(f"{label}: percentage must be greater than the previous step")
        previous = step.percentage

    return errors
