"""Observability record models.

Records are designed to be:
- Durable and append-only (sink decides storage).
- Easy to group per inbound event via the event id.
- Safe by default (store a summary of the message, never full resource payloads).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


RecordKind = Literal["event", "error"]


class ObservabilityRecord(BaseModel):
    """A durable, structured record derived from a replication message."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: RecordKind

    # Stable label of the message (e.g., "event_admitted", "resource_delivered").
    event_type: str

    # Component that produced the record (e.g., "orchestrator").
    stage: str

    # Inbound event the record belongs to, plus the resource it concerns (if any).
    event_id: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None

    occurred_at: datetime
    logged_at: datetime = Field(default_factory=utc_now)

    summary: dict[str, Any] = Field(default_factory=dict)
