"""Observability primitives.

This package records what the replication pipeline did for each inbound event:
- One durable record per admission, delivery, skipped resource type and outcome.
- Both "occurred at" and "logged at" timestamps.
- Records are persisted to a sink (DuckDB by default) without blocking the event loop.
"""

from .models import ObservabilityRecord
from .recorder import ObservabilityRecorder
from .sinks import DuckDBObservabilitySink, InMemoryObservabilitySink, ObservabilitySink

__all__ = [
    "DuckDBObservabilitySink",
    "InMemoryObservabilitySink",
    "ObservabilityRecord",
    "ObservabilityRecorder",
    "ObservabilitySink",
]
