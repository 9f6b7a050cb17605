"""FHIR resource models used by the replication pipeline.

Resources are treated as opaque documents: only `resourceType`, `id` and the
subject pointer are interpreted. The payload is forwarded verbatim.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


def _is_identifier(value: Any) -> bool:
    return isinstance(value, str) and value != ""


class FhirResource(_Model):
    """A single typed FHIR resource, identified by `(resource_type, id)`."""

    resource_type: str
    id: str
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        """Relative reference for this resource, e.g. `Encounter/enc-1`."""
        return f"{self.resource_type}/{self.id}"

    @classmethod
    def is_well_formed(cls, payload: Any) -> bool:
        """Return True when the payload carries both a resource type and an id."""
        return (
            isinstance(payload, dict)
            and _is_identifier(payload.get("resourceType"))
            and _is_identifier(payload.get("id"))
        )

    @classmethod
    def from_api(cls, payload: Any) -> "FhirResource":
        """Wrap a resource document returned by a FHIR server.

        Raises `ValueError` if the document lacks `resourceType` or `id`.
        """
        if not cls.is_well_formed(payload):
            raise ValueError("FHIR resource must carry a non-empty resourceType and id")
        return cls(resource_type=payload["resourceType"], id=payload["id"], payload=payload)

    def subject_reference(self) -> tuple[str | None, str] | None:
        """Parse `subject.reference` into `(resource_type, id)`.

        `"Patient/pat-1"` gives `("Patient", "pat-1")`; a bare `"pat-1"` gives
        `(None, "pat-1")`. Returns None when the resource has no usable subject.
        """
        subject = self.payload.get("subject")
        if not isinstance(subject, dict):
            return None
        reference = subject.get("reference")
        if not _is_identifier(reference):
            return None

        # Absolute references carry the server base before `Type/id`; keep the tail.
        parts = [p for p in reference.split("/") if p]
        if not parts:
            return None
        subject_id = parts[-1]
        subject_type = parts[-2] if len(parts) >= 2 else None
        return subject_type, subject_id


def bundle_resources(payload: Any) -> list[FhirResource]:
    """Return the well-formed resources contained in a search Bundle, in order.

    Entries without a resource, or whose resource lacks a type or id, are skipped.
    A payload without `entry` is an empty result; a non-list `entry` is a `ValueError`.
    """
    if not isinstance(payload, dict):
        raise ValueError("FHIR search result must be a Bundle object")
    entries = payload.get("entry") or []
    if not isinstance(entries, list):
        raise ValueError("FHIR Bundle entry must be an array")
    resources: list[FhirResource] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        resource = entry.get("resource")
        if not FhirResource.is_well_formed(resource):
            continue
        resources.append(FhirResource.from_api(resource))
    return resources
