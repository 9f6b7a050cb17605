"""Async recorder that writes observability records without blocking the event loop."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from .models import ObservabilityRecord, RecordKind, utc_now
from .sinks import ObservabilitySink

logger = logging.getLogger(__name__)

# Fields that may hold clinical content; never copied into a summary.
_PAYLOAD_KEYS = ("payload", "resource", "body")


def _str_attr(message: Any, name: str) -> str | None:
    """Return `message.<name>` (or `message[name]` for dicts) if it is a non-empty string."""
    if isinstance(message, dict):
        value = message.get(name)
    else:
        value = getattr(message, name, None)
    if isinstance(value, str) and value:
        return value
    return None


def _extract_event_type(message: Any) -> str:
    """Prefer `message.type`; otherwise fall back to the class name."""
    return _str_attr(message, "type") or type(message).__name__


def _extract_occurred_at(message: Any) -> datetime:
    ts = message.get("ts") if isinstance(message, dict) else getattr(message, "ts", None)
    if isinstance(ts, datetime):
        return ts
    return utc_now()


def _extract_summary(message: Any) -> dict[str, Any]:
    """Build a small summary of the message, dropping identifiers stored as columns."""
    if hasattr(message, "model_dump"):
        data = message.model_dump()
    elif isinstance(message, dict):
        data = dict(message)
    else:
        data = {"repr": repr(message)}

    for key in ("type", "ts", "event_id", "resource_type", "resource_id", *_PAYLOAD_KEYS):
        data.pop(key, None)
    return data


class ObservabilityRecorder:
    """Queues records and writes them in a background task."""

    def __init__(self, *, sink: ObservabilitySink, max_queue_size: int = 10000) -> None:
        """Create a recorder backed by a synchronous sink.

        Args:
            sink: Storage backend used by the background writer.
            max_queue_size: Bound for in-memory buffering; records are dropped
                when full rather than slowing replication down.
        """
        self._sink = sink
        self._queue: asyncio.Queue[ObservabilityRecord | None] = asyncio.Queue(maxsize=max_queue_size)
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

        self._write_failures = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None

    def _ensure_started(self) -> None:
        """Start the background writer task if it hasn't been started yet."""
        if self._worker is not None:
            return
        self._worker = asyncio.create_task(self._run_worker(), name="observability-writer")

    def _note_failure(self) -> None:
        now = utc_now()
        self._write_failures += 1
        self._first_failure_at = self._first_failure_at or now
        self._last_failure_at = now

    async def record_message(self, message: Any, *, kind: RecordKind, stage: str) -> None:
        """Record a message by enqueueing an ObservabilityRecord (non-blocking)."""
        if self._closed:
            return

        self._ensure_started()

        record = ObservabilityRecord(
            kind=kind,
            event_type=_extract_event_type(message),
            stage=stage,
            event_id=_str_attr(message, "event_id"),
            resource_type=_str_attr(message, "resource_type"),
            resource_id=_str_attr(message, "resource_id"),
            occurred_at=_extract_occurred_at(message),
            logged_at=utc_now(),
            summary=_extract_summary(message),
        )

        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            self._note_failure()

    async def aclose(self) -> None:
        """Flush and close the recorder.

        Safe to call multiple times.
        """
        if self._closed:
            return
        self._closed = True
        if self._worker is not None:
            await self._queue.put(None)
            await self._worker
        await asyncio.to_thread(self._sink.close)

    async def _run_worker(self) -> None:
        """Background loop that drains the queue and writes to the sink."""
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                await asyncio.to_thread(self._sink.write, item)
            except Exception as exc:  # noqa: BLE001 - recording must not break replication
                logger.warning("Dropping observability record %s: %s", getattr(item, "event_type", "?"), exc)
                self._note_failure()
            finally:
                self._queue.task_done()

    def degraded_status(self) -> dict[str, Any]:
        """Return a minimal degraded-status snapshot."""
        return {
            "write_failures": self._write_failures,
            "first_failure_at": self._first_failure_at,
            "last_failure_at": self._last_failure_at,
        }
