"""Replication orchestrator.

Responsibilities:
- admit an inbound event exactly once (duplicate suppression)
- fetch the root resource named by the event and deliver it downstream
- resolve the root's subject, then fetch and deliver it
- pull every configured related collection keyed by the event id and deliver
  each resource in it
- aggregate a per-event result

Failure policy:
- any failure on the root or subject path aborts the event (the id stays seen)
- a failure inside one related resource type ends that type only; the other
  types still run and the event completes as `ok`
- deliveries are retried by the `RetryingExecutor`; fetches are not
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from urllib.parse import quote

from fhir.models import FhirResource

from .adapters.base import ResourceSink, ResourceSource
from .dedup import DuplicateSuppressor
from .errors import StorageError, ValidationError
from .models import (
    BranchOutcome,
    DeliveryOutcome,
    EventAdmitted,
    EventCompleted,
    EventDuplicate,
    EventFailed,
    EventId,
    EventPhase,
    EventResult,
    RelatedResourceSpec,
    ReplicationMessage,
    ResourceDelivered,
    ResourceTypeSkipped,
)
from .retry import RetryingExecutor
from observability.models import RecordKind
from observability.recorder import ObservabilityRecorder

logger = logging.getLogger(__name__)

STAGE = "orchestrator"


@dataclass
class _EventRun:
    """Mutable bookkeeping for one admitted event."""

    event_id: EventId
    phase: EventPhase = "admitted"
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    @property
    def delivered_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "success")


class ReplicationOrchestrator:
    """Drives one event from admission to a result.

    The orchestrator owns no I/O itself; it is wired with:
    - a `ResourceSource` (upstream reads) and a `ResourceSink` (downstream upserts)
    - a `RetryingExecutor` applied around every delivery
    - a `DuplicateSuppressor` shared by all events handled by this process
    - the static list of related resource queries
    """

    def __init__(
        self,
        *,
        source: ResourceSource,
        sink: ResourceSink,
        executor: RetryingExecutor,
        suppressor: DuplicateSuppressor,
        related_resources: Sequence[RelatedResourceSpec],
        recorder: ObservabilityRecorder | None = None,
        related_concurrency: int = 1,
        root_resource_type: str = "Encounter",
        default_subject_type: str = "Patient",
    ) -> None:
        """Create an orchestrator; `related_concurrency > 1` fetches related types in parallel."""
        if related_concurrency < 1:
            raise ValueError(f"related_concurrency must be >= 1. Got: {related_concurrency}")
        self._source = source
        self._sink = sink
        self._executor = executor
        self._suppressor = suppressor
        self._related = tuple(related_resources)
        self._recorder = recorder
        self._related_concurrency = related_concurrency
        self._root_resource_type = root_resource_type
        self._default_subject_type = default_subject_type

    @property
    def suppressor(self) -> DuplicateSuppressor:
        return self._suppressor

    @property
    def related_resources(self) -> tuple[RelatedResourceSpec, ...]:
        return self._related

    async def process_event(self, event_id: EventId) -> EventResult:
        """Replicate everything reachable from `event_id` and return the outcome.

        Raises `ValidationError` for a blank id; every other failure is reported
        through the returned `EventResult`.
        """
        if not isinstance(event_id, str) or not event_id.strip():
            raise ValidationError("event id is required")
        event_id = event_id.strip()

        if not self._suppressor.admit(event_id):
            logger.info("Duplicate event %s ignored", event_id)
            await self._record(EventDuplicate(event_id=event_id))
            return EventResult(status="duplicate", event_id=event_id)

        logger.info("New event %s admitted", event_id)
        await self._record(EventAdmitted(event_id=event_id))
        await self._persist_seen()

        run = _EventRun(event_id=event_id)
        try:
            await self._replicate_root_and_subject(run)
        except Exception as exc:  # noqa: BLE001 - any root/subject failure aborts the event
            failed_phase = run.phase
            run.phase = "aborted"
            logger.exception("Event %s aborted after phase %s", event_id, failed_phase)
            await self._record(EventFailed(event_id=event_id, phase=failed_phase, message=str(exc)), kind="error")
            return EventResult(
                status="error",
                event_id=event_id,
                delivered_count=run.delivered_count,
                phase="aborted",
                error=str(exc),
            )

        branches = await self._replicate_related(run)
        run.phase = "related_processed"

        branch_errors = {b.resource_type: b.error for b in branches if b.error is not None}
        run.phase = "partially_completed" if branch_errors else "completed"

        logger.info(
            "Event %s %s: %d resources delivered (%d related types failed)",
            event_id,
            run.phase,
            run.delivered_count,
            len(branch_errors),
        )
        await self._record(EventCompleted(event_id=event_id, phase=run.phase, delivered_count=run.delivered_count))
        return EventResult(
            status="ok",
            event_id=event_id,
            delivered_count=run.delivered_count,
            phase=run.phase,
            branch_errors=branch_errors,
        )

    async def _replicate_root_and_subject(self, run: _EventRun) -> None:
        """Steps that must succeed, in order, before related resources are pulled."""
        root_path = f"/{self._root_resource_type}/{quote(run.event_id, safe='')}"
        root = await self._source.fetch_one(root_path)
        run.phase = "root_fetched"

        await self._deliver(run, root)
        run.phase = "root_delivered"

        reference = root.subject_reference()
        if reference is None:
            logger.info("Event %s: %s has no subject reference, skipping subject", run.event_id, root.key)
            return

        subject_type, subject_id = reference
        subject_path = f"/{subject_type or self._default_subject_type}/{quote(subject_id, safe='')}"
        run.phase = "subject_resolved"

        subject = await self._source.fetch_one(subject_path)
        await self._deliver(run, subject)
        run.phase = "subject_delivered"

    async def _replicate_related(self, run: _EventRun) -> list[BranchOutcome]:
        """Process every related resource type; failures stay inside their branch."""
        if self._related_concurrency == 1:
            return [await self._replicate_branch(run, spec) for spec in self._related]

        semaphore = asyncio.Semaphore(self._related_concurrency)

        async def _bounded(spec: RelatedResourceSpec) -> BranchOutcome:
            async with semaphore:
                return await self._replicate_branch(run, spec)

        return list(await asyncio.gather(*(_bounded(spec) for spec in self._related)))

    async def _replicate_branch(self, run: _EventRun, spec: RelatedResourceSpec) -> BranchOutcome:
        query = spec.render(run.event_id)
        try:
            resources = await self._source.fetch_collection(query)
        except Exception as exc:  # noqa: BLE001 - a failed type never fails the event
            logger.warning("Event %s: %s unavailable: %s", run.event_id, spec.resource_type, exc)
            await self._record(
                ResourceTypeSkipped(event_id=run.event_id, resource_type=spec.resource_type, message=str(exc)),
                kind="error",
            )
            return BranchOutcome(resource_type=spec.resource_type, error=str(exc))

        logger.debug("Event %s: %d %s resources to deliver", run.event_id, len(resources), spec.resource_type)
        delivered = 0
        for resource in resources:
            try:
                await self._deliver(run, resource)
            except Exception as exc:  # noqa: BLE001 - same boundary as the fetch above
                # Ends this type only; resources already delivered still count.
                logger.warning(
                    "Event %s: stopping %s after delivery failure of %s: %s",
                    run.event_id,
                    spec.resource_type,
                    resource.key,
                    exc,
                )
                await self._record(
                    ResourceTypeSkipped(event_id=run.event_id, resource_type=spec.resource_type, message=str(exc)),
                    kind="error",
                )
                return BranchOutcome(resource_type=spec.resource_type, delivered=delivered, error=str(exc))
            delivered += 1
        return BranchOutcome(resource_type=spec.resource_type, delivered=delivered)

    async def _deliver(self, run: _EventRun, resource: FhirResource) -> None:
        """Deliver one resource through the retrying executor and record the outcome."""
        try:
            _, attempts = await self._executor.execute(
                lambda: self._sink.deliver(resource),
                description=f"PUT {resource.key}",
            )
        except Exception:
            run.outcomes.append(
                DeliveryOutcome(
                    resource_type=resource.resource_type,
                    resource_id=resource.id,
                    status="failed",
                    attempts=self._executor.max_attempts,
                )
            )
            raise

        run.outcomes.append(
            DeliveryOutcome(
                resource_type=resource.resource_type,
                resource_id=resource.id,
                status="success",
                attempts=attempts,
            )
        )
        logger.info("Event %s: delivered %s", run.event_id, resource.key)
        await self._record(
            ResourceDelivered(
                event_id=run.event_id,
                resource_type=resource.resource_type,
                resource_id=resource.id,
                attempts=attempts,
            )
        )

    async def _persist_seen(self) -> None:
        """Flush the seen set; a storage failure is logged and never fails the event."""
        try:
            await asyncio.to_thread(self._suppressor.persist)
        except StorageError as exc:
            logger.error("Processed-event store not saved, ids may be replayed after restart: %s", exc)

    async def _record(self, message: ReplicationMessage, *, kind: RecordKind = "event") -> None:
        if self._recorder is not None:
            await self._recorder.record_message(message, kind=kind, stage=STAGE)
