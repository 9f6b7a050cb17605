"""Error kinds raised by the replication pipeline."""

from __future__ import annotations


class ReplicationError(RuntimeError):
    """Base class for replication failures."""


class ValidationError(ReplicationError):
    """An inbound event could not be accepted (e.g. missing id)."""


class FetchError(ReplicationError):
    """Retrieving a resource or search result from the upstream proxy failed."""

    def __init__(self, path: str, message: str, *, status_code: int | None = None) -> None:
        self.path = path
        self.status_code = status_code
        super().__init__(f"fetch {path} failed: {message}")


class DeliveryError(ReplicationError):
    """Writing a resource to the downstream node failed."""

    def __init__(self, resource_type: str, resource_id: str, message: str, *, status_code: int | None = None) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.status_code = status_code
        super().__init__(f"delivery of {resource_type}/{resource_id} failed: {message}")


class StorageError(ReplicationError):
    """Persisting the processed-event store failed."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"could not persist {path}: {message}")
