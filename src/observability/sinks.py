"""Observability sinks (storage backends)."""

from __future__ import annotations

import json
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import duckdb

from .models import ObservabilityRecord

# Column order shared by the table definition and inserts.
_COLUMNS: tuple[tuple[str, str], ...] = (
    ("logged_at", "timestamptz not null"),
    ("occurred_at", "timestamptz not null"),
    ("kind", "varchar not null"),
    ("event_type", "varchar not null"),
    ("stage", "varchar not null"),
    ("event_id", "varchar"),
    ("resource_type", "varchar"),
    ("resource_id", "varchar"),
    ("summary_json", "varchar not null"),
)


class ObservabilitySink(Protocol):
    """A synchronous sink for observability records.

    The recorder calls sinks from a worker thread, so implementations may block.
    """

    def write(self, record: ObservabilityRecord) -> None:
        """Persist a single record."""

    def close(self) -> None:
        """Release any underlying resources."""


class InMemoryObservabilitySink:
    """In-memory sink used by tests and the CLI when no database path is configured."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[ObservabilityRecord] = []

    def write(self, record: ObservabilityRecord) -> None:
        with self._lock:
            self._records.append(record)

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""

    def snapshot(self) -> Sequence[ObservabilityRecord]:
        """Return a point-in-time copy of all recorded entries."""
        with self._lock:
            return list(self._records)

    def for_event(self, event_id: str) -> Sequence[ObservabilityRecord]:
        """Return the records of one inbound event, in write order."""
        with self._lock:
            return [r for r in self._records if r.event_id == event_id]


@dataclass(frozen=True)
class DuckDBOptions:
    path: Path
    table: str = "replication_records"


def _row(record: ObservabilityRecord) -> list[Any]:
    """Flatten a record into `_COLUMNS` order; the summary becomes sorted-key JSON."""
    summary_json = json.dumps(record.summary, separators=(",", ":"), sort_keys=True, default=str)
    return [
        record.logged_at,
        record.occurred_at,
        record.kind,
        record.event_type,
        record.stage,
        record.event_id,
        record.resource_type,
        record.resource_id,
        summary_json,
    ]


class DuckDBObservabilitySink:
    """Embedded DuckDB audit trail of what each event replicated."""

    def __init__(self, *, path: str | Path, table: str = "replication_records") -> None:
        """Create (or open) a DuckDB-backed sink at the given path."""
        self._opts = DuckDBOptions(path=Path(path), table=table)
        self._lock = threading.Lock()
        self._conn = duckdb.connect(str(self._opts.path))
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        columns = ",\n  ".join(f"{name} {ddl}" for name, ddl in _COLUMNS)
        with self._lock:
            self._conn.execute(f"create table if not exists {self._opts.table} (\n  {columns}\n)")

    def write(self, record: ObservabilityRecord) -> None:
        names = ", ".join(name for name, _ in _COLUMNS)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with self._lock:
            self._conn.execute(
                f"insert into {self._opts.table} ({names}) values ({placeholders})",
                _row(record),
            )

    def event_history(self, event_id: str) -> list[tuple[str, str | None, str | None]]:
        """Return `(event_type, resource_type, resource_id)` rows for one event, oldest first."""
        query_sql = f"""
        select event_type, resource_type, resource_id
        from {self._opts.table}
        where event_id = ?
        order by rowid
        """
        with self._lock:
            return [tuple(row) for row in self._conn.execute(query_sql, [event_id]).fetchall()]

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        with self._lock:
            self._conn.close()
