"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables into strongly-typed Pydantic models.
- Validating required fields and providing actionable error messages.
"""

import os
from typing import Any, TypeVar

import dotenv
from pydantic import BaseModel, Field, field_validator

_T = TypeVar("_T", int, float)

DEFAULT_RELATED_RESOURCE_TYPES: tuple[str, ...] = (
    "Observation",
    "Condition",
    "Procedure",
    "MedicationRequest",
    "Medication",
    "AllergyIntolerance",
    "DiagnosticReport",
    "Immunization",
    "CarePlan",
    "Appointment",
    "DocumentReference",
)


def _get_required_env(name: str) -> str:
    """Read a required env var or raise a helpful error."""
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"{name} is required. Please set it in your .env file.")
    if value.startswith("your_") and value.endswith("_here"):
        raise ValueError(f"{name} is required. Please replace the placeholder value in your .env file.")
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


def _get_env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Read a comma-separated env var into a tuple of non-empty items."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    items = tuple(item.strip() for item in raw.split(",") if item.strip())
    if not items:
        raise ValueError(f"{name} must list at least one resource type. Got: {raw!r}")
    return items


class FhirConfig(BaseModel):
    """Endpoints and transport settings for the upstream proxy and downstream node."""

    proxy_url: str = Field(..., description="Base URL of the read-side FHIR proxy")
    node_url: str = Field(..., description="Base URL of the write-side FHIR node")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")
    request_timeout: float = Field(default=30.0, description="Per-request timeout (seconds)")

    @field_validator("proxy_url", "node_url")
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"FHIR base URL must start with http:// or https://. Got: {v!r}")
        return v.rstrip("/")

    @field_validator("request_timeout")
    def validate_request_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"FHIR_REQUEST_TIMEOUT must be > 0. Got: {v}")
        return v


class ReplicationConfig(BaseModel):
    """Tuning knobs for the event replication pipeline."""

    max_attempts: int = Field(default=3, description="Max delivery attempts per resource")
    retry_base_delay: float = Field(default=0.5, description="Linear backoff base (seconds)")
    seen_file: str = Field(default="./seen.json", description="Path of the processed-event store")
    related_concurrency: int = Field(default=1, description="Related resource types fetched in parallel")
    related_resource_types: tuple[str, ...] = Field(
        default=DEFAULT_RELATED_RESOURCE_TYPES,
        description="Resource types queried by encounter for every event",
    )
    observability_db_path: str | None = Field(default=None, description="DuckDB file for audit records")

    @field_validator("max_attempts")
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"REPLICATION_MAX_ATTEMPTS must be >= 1. Got: {v}")
        return v

    @field_validator("retry_base_delay")
    def validate_retry_base_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"REPLICATION_RETRY_BASE_DELAY must be >= 0. Got: {v}")
        return v

    @field_validator("related_concurrency")
    def validate_related_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"REPLICATION_RELATED_CONCURRENCY must be >= 1. Got: {v}")
        return v


class Config(BaseModel):
    """Top-level application configuration."""

    fhir: FhirConfig = Field(..., description="FHIR endpoint configuration")
    replication: ReplicationConfig = Field(default_factory=ReplicationConfig)
    log_level: str = Field(default="INFO", description="Root logging level")

    @field_validator("log_level")
    def validate_log_level(cls, v: str) -> str:
        normalized = v.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LOG_LEVEL must be a standard logging level. Got: {v!r}")
        return normalized

    def redacted_summary(self) -> dict[str, Any]:
        """Return a flat, log-safe view of the effective configuration."""
        return {
            "fhir_proxy_url": self.fhir.proxy_url,
            "fhir_node_url": self.fhir.node_url,
            "verify_tls": self.fhir.verify_tls,
            "request_timeout": self.fhir.request_timeout,
            "max_attempts": self.replication.max_attempts,
            "retry_base_delay": self.replication.retry_base_delay,
            "seen_file": self.replication.seen_file,
            "related_concurrency": self.replication.related_concurrency,
            "related_resource_types": list(self.replication.related_resource_types),
            "observability_db_path": self.replication.observability_db_path or "disabled",
            "log_level": self.log_level,
        }


def load_config() -> Config:
    """Load application configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when required configuration is
      missing or invalid.
    - TLS verification defaults to off only when `NODE_ENV=development`, so that a
      local stack with self-signed certificates works without extra settings.
    """
    dotenv.load_dotenv()

    development = os.getenv("NODE_ENV", "").strip().lower() == "development"

    fhir = FhirConfig(
        proxy_url=_get_required_env("FHIR_PROXY_URL"),
        node_url=_get_required_env("FHIR_NODE_URL"),
        verify_tls=_get_env_bool("FHIR_VERIFY_TLS", not development),
        request_timeout=_get_env_number("FHIR_REQUEST_TIMEOUT", 30.0, float),
    )
    replication = ReplicationConfig(
        max_attempts=_get_env_number("REPLICATION_MAX_ATTEMPTS", 3, int),
        retry_base_delay=_get_env_number("REPLICATION_RETRY_BASE_DELAY", 0.5, float),
        seen_file=os.getenv("REPLICATION_SEEN_FILE", "").strip() or "./seen.json",
        related_concurrency=_get_env_number("REPLICATION_RELATED_CONCURRENCY", 1, int),
        related_resource_types=_get_env_list("REPLICATION_RELATED_TYPES", DEFAULT_RELATED_RESOURCE_TYPES),
        observability_db_path=os.getenv("OBSERVABILITY_DB_PATH", "").strip() or None,
    )
    return Config(fhir=fhir, replication=replication, log_level=os.getenv("LOG_LEVEL", "INFO"))
