"""Exception hierarchy for the sync engine.

Item-level errors (``ConflictError``, ``RemoteError``, ``PersistenceError``)
are counted against a job and never abort it.  ``JobConfigurationError``
fails the whole job.  ``ValidationError`` is raised before any mutation.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every error raised by tracker_sync."""


class ValidationError(SyncError):
    """A request was rejected before anything was written."""


class ConflictError(SyncError):
    """Unresolved field conflicts blocked syncing one item.

    Attributes:
        conflict_ids: Ids of the conflicts persisted for the item.
    """

    def __init__(self, message: str, conflict_ids: list[str] | None = None):
        super().__init__(message)
        self.conflict_ids = conflict_ids or []


class RemoteError(SyncError):
    """The remote item client failed or returned nothing."""


class PersistenceError(SyncError):
    """The local document store or the sync store failed."""


class UnmappedItemError(PersistenceError):
    """An item was created on one side but its mapping could not be saved.

    Attributes:
        created_id: Id or key of the item that now exists unmapped.
    """

    def __init__(self, message: str, created_id: str):
        super().__init__(message)
        self.created_id = created_id


class JobConfigurationError(SyncError):
    """A job was configured in a way the engine cannot run."""
