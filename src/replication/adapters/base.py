"""Source and sink interfaces.

The orchestrator depends on these small interfaces so the upstream and
downstream servers can be swapped (or faked in tests) without touching the
replication logic.
"""

from __future__ import annotations

from typing import Protocol

from fhir.models import FhirResource


class ResourceSource(Protocol):
    async def fetch_one(self, path: str) -> FhirResource:
        """Fetch a single resource, e.g. `/Encounter/enc-1`. Raises `FetchError`."""

    async def fetch_collection(self, query: str) -> list[FhirResource]:
        """Run a search, e.g. `/Observation?encounter=enc-1`. Raises `FetchError`."""


class ResourceSink(Protocol):
    async def deliver(self, resource: FhirResource) -> int:
        """Upsert one full resource by type and id, returning the HTTP status. Raises `DeliveryError`."""
