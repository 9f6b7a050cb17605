"""Entry points used by the inbound transport.

The HTTP layer is expected to:
- call `parse_event(body)` and answer 400 on `ValidationError`
- await `orchestrator.process_event(event.id)`
- answer with `result.http_status` and `result.to_response()`
- serve `health()` as its liveness probe
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from config import Config
from fhir.client import FhirClient
from observability.recorder import ObservabilityRecorder

from .adapters.fhir import FhirNodeSink, FhirProxySource
from .dedup import DuplicateSuppressor
from .errors import ValidationError
from .models import Event, RelatedResourceSpec
from .orchestrator import ReplicationOrchestrator
from .retry import RetryingExecutor

logger = logging.getLogger(__name__)


def parse_event(body: Any) -> Event:
    """Extract the event id from a notification body.

    Accepts `{"uuid": ...}` (the notifier's field name) or `{"id": ...}`.
    """
    if not isinstance(body, Mapping):
        raise ValidationError("event body must be a JSON object")
    raw_id = body.get("uuid", body.get("id"))
    if not isinstance(raw_id, str):
        raise ValidationError("event body must carry a string 'uuid'")
    try:
        return Event(id=raw_id)
    except PydanticValidationError as exc:
        raise ValidationError("event 'uuid' must not be blank") from exc


def health() -> dict[str, str]:
    """Static liveness payload."""
    return {"status": "ok"}


def build_orchestrator(config: Config, *, recorder: ObservabilityRecorder | None = None) -> ReplicationOrchestrator:
    """Wire clients, adapters, executor and the persisted seen set from configuration."""
    fhir = config.fhir
    replication = config.replication

    proxy = FhirClient(fhir.proxy_url, verify_tls=fhir.verify_tls, timeout=fhir.request_timeout)
    node = FhirClient(fhir.node_url, verify_tls=fhir.verify_tls, timeout=fhir.request_timeout)
    if not fhir.verify_tls:
        logger.warning("TLS certificate verification is disabled for FHIR requests")

    return ReplicationOrchestrator(
        source=FhirProxySource(proxy),
        sink=FhirNodeSink(node),
        executor=RetryingExecutor(max_attempts=replication.max_attempts, base_delay=replication.retry_base_delay),
        suppressor=DuplicateSuppressor.load(replication.seen_file),
        related_resources=[RelatedResourceSpec.by_encounter(t) for t in replication.related_resource_types],
        recorder=recorder,
        related_concurrency=replication.related_concurrency,
    )
