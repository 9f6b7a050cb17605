"""Normalized models for event replication.

These models cover:
- the inbound event and the static list of related resource queries
- per-delivery and per-branch outcomes aggregated while an event is processed
- the result handed back to the transport
- the messages published to observability as an event moves through its phases
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, TypeAlias
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator

EventId: TypeAlias = str

EventStatus = Literal["ok", "duplicate", "error"]

# Phases an admitted event moves through; `aborted` and `partially_completed`
# are the failure outcomes.
EventPhase = Literal[
    "admitted",
    "root_fetched",
    "root_delivered",
    "subject_resolved",
    "subject_delivered",
    "related_processed",
    "completed",
    "partially_completed",
    "aborted",
]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class Event(_Model):
    """An inbound notification naming a single root record."""

    id: EventId

    @field_validator("id")
    @classmethod
    def _require_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("event id must not be blank")
        return v


class RelatedResourceSpec(_Model):
    """A collection pulled for every event, e.g. `Observation?encounter={event_id}`."""

    resource_type: str
    query_template: str

    @classmethod
    def by_encounter(cls, resource_type: str) -> "RelatedResourceSpec":
        """Search `resource_type` by the `encounter` parameter."""
        return cls(resource_type=resource_type, query_template=f"/{resource_type}?encounter={{event_id}}")

    def render(self, event_id: EventId) -> str:
        """Render the search path for one event id (URL-escaped)."""
        return self.query_template.format(event_id=quote(event_id, safe=""))


class DeliveryOutcome(_Model):
    resource_type: str
    resource_id: str
    status: Literal["success", "failed"]
    attempts: int


class BranchOutcome(_Model):
    """What happened to one related resource type for one event."""

    resource_type: str
    delivered: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class EventResult(_Model):
    """Outcome of `process_event`, ready to be mapped onto a transport response."""

    status: EventStatus
    event_id: EventId
    delivered_count: int = 0
    phase: EventPhase | None = None
    error: str | None = None
    branch_errors: dict[str, str] = Field(default_factory=dict)

    @property
    def http_status(self) -> int:
        return 500 if self.status == "error" else 200

    def to_response(self) -> dict[str, Any]:
        """Build the JSON body returned to the caller (count only, no itemization)."""
        if self.status == "duplicate":
            return {"status": "duplicate", "uuid": self.event_id}
        if self.status == "error":
            return {"status": "error", "uuid": self.event_id, "error": self.error or "replication failed"}
        return {"status": "ok", "uuid": self.event_id, "sent": self.delivered_count}


class EventAdmitted(_Model):
    type: Literal["event_admitted"] = "event_admitted"
    event_id: EventId
    ts: datetime = Field(default_factory=utc_now)


class EventDuplicate(_Model):
    type: Literal["event_duplicate"] = "event_duplicate"
    event_id: EventId
    ts: datetime = Field(default_factory=utc_now)


class ResourceDelivered(_Model):
    type: Literal["resource_delivered"] = "resource_delivered"
    event_id: EventId
    resource_type: str
    resource_id: str
    attempts: int
    ts: datetime = Field(default_factory=utc_now)


class ResourceTypeSkipped(_Model):
    type: Literal["resource_type_skipped"] = "resource_type_skipped"
    event_id: EventId
    resource_type: str
    message: str
    ts: datetime = Field(default_factory=utc_now)


class EventCompleted(_Model):
    type: Literal["event_completed"] = "event_completed"
    event_id: EventId
    phase: EventPhase
    delivered_count: int
    ts: datetime = Field(default_factory=utc_now)


class EventFailed(_Model):
    type: Literal["event_failed"] = "event_failed"
    event_id: EventId
    phase: EventPhase
    message: str
    ts: datetime = Field(default_factory=utc_now)


ReplicationMessage = (
    EventAdmitted | EventDuplicate | ResourceDelivered | ResourceTypeSkipped | EventCompleted | EventFailed
)
