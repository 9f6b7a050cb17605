"""Duplicate suppression for inbound events.

The suppressor owns the set of event ids that have already been admitted. The
in-memory set is authoritative for the running process; the JSON file is a
best-effort copy that lets a restarted process keep rejecting old ids.

A crash between admission and the next successful `persist()` can let an id be
processed again after restart. Deliveries are full-resource upserts, so a replay
rewrites the same documents.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterable
from pathlib import Path

from .errors import StorageError
from .models import EventId

logger = logging.getLogger(__name__)


class DuplicateSuppressor:
    """Append-only set of processed event ids with atomic check-and-mark."""

    def __init__(self, path: str | Path | None = None, *, seen: Iterable[EventId] = ()) -> None:
        """Create a suppressor backed by `path` (None keeps it memory-only)."""
        self._path = Path(path) if path is not None else None
        self._seen: set[EventId] = set(seen)
        self._lock = threading.Lock()
        # Serializes file writes so an older snapshot never lands after a newer one.
        self._write_lock = threading.Lock()

    @classmethod
    def load(cls, path: str | Path) -> "DuplicateSuppressor":
        """Load the persisted id set.

        A missing, unreadable or malformed file yields an empty set; start-up never
        fails because of the store.
        """
        store = Path(path)
        if not store.exists():
            logger.info("Seen store %s does not exist, starting with an empty set", store)
            return cls(store)

        try:
            raw = json.loads(store.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Could not read seen store %s, starting with an empty set: %s", store, exc)
            return cls(store)

        if not isinstance(raw, list):
            logger.warning("Seen store %s is not a JSON list, starting with an empty set", store)
            return cls(store)

        ids = [item for item in raw if isinstance(item, str) and item]
        logger.info("Loaded %d processed event ids from %s", len(ids), store)
        return cls(store, seen=ids)

    @property
    def path(self) -> Path | None:
        return self._path

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def __contains__(self, event_id: object) -> bool:
        with self._lock:
            return event_id in self._seen

    def is_seen(self, event_id: EventId) -> bool:
        return event_id in self

    def mark_seen(self, event_id: EventId) -> None:
        """Record `event_id` as processed; marking a known id is a no-op."""
        with self._lock:
            self._seen.add(event_id)

    def admit(self, event_id: EventId) -> bool:
        """Check-and-mark in one step.

        Returns True if the id was new (and is now marked), False if it had already
        been seen. Two concurrent callers with the same id never both get True.
        """
        with self._lock:
            if event_id in self._seen:
                return False
            self._seen.add(event_id)
            return True

    def snapshot(self) -> list[EventId]:
        """Return a sorted point-in-time copy of all known ids."""
        with self._lock:
            return sorted(self._seen)

    def persist(self) -> None:
        """Rewrite the store with the current id set.

        The file is replaced atomically (write to a sibling temp file, then rename).
        Raises `StorageError` if the write fails; the in-memory set is unaffected.
        """
        if self._path is None:
            return

        with self._write_lock:
            ids = self.snapshot()
            tmp_path = self._path.with_name(self._path.name + ".tmp")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(json.dumps(ids), encoding="utf-8")
                os.replace(tmp_path, self._path)
            except OSError as exc:
                raise StorageError(str(self._path), str(exc)) from exc
        logger.debug("Persisted %d processed event ids to %s", len(ids), self._path)
