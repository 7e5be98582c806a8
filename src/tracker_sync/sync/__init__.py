"""Bidirectional sync between local documents and remote tracker items.

Modules:

- ``engine``      -- ``SyncService``: entry points and per-item sync.
- ``queue``       -- ``SyncJobQueue``: persisted jobs and the worker pool.
- ``mapper``      -- ``FieldMapper``: declarative field translation.
- ``resolver``    -- ``ConflictResolver``: three-way diff and resolution.
- ``merger``      -- equality, dot-path access, type-directed merges.
- ``transforms``  -- the closed set of value transforms.
- ``store``       -- ``SyncStore``: SQLAlchemy persistence.
- ``tables``      -- table definitions.
- ``models``      -- pydantic data contracts.
- ``reporter``    -- text and JSON formatting.

Usage example
-------------
::

    from tracker_sync.config import load_config
    from tracker_sync.sync import SyncService

    service = SyncService.from_config(load_config(), remote_client, doc_store)
    await service.start()

    result = service.import_from_remote("PROJ-42", actor="alice")
    await service.queue.join()
    print(service.get_job(result.job_id).status)
"""

from .engine import SyncService
from .mapper import FieldMapper
from .models import (
    BulkSyncRequest,
    BulkSyncResponse,
    ConflictStatus,
    ConflictType,
    FieldMapping,
    ResolutionStrategy,
    ResolveConflictRequest,
    SyncConflict,
    SyncDirection,
    SyncJob,
    SyncJobStatus,
    SyncMapping,
    SyncOperationType,
    SyncResult,
    WebhookPayload,
)
from .queue import SyncJobQueue
from .reporter import format_conflict, format_job_report, job_to_json
from .resolver import ConflictResolver
from .store import SyncStore

__all__ = [
    "BulkSyncRequest",
    "BulkSyncResponse",
    "ConflictResolver",
    "ConflictStatus",
    "ConflictType",
    "FieldMapper",
    "FieldMapping",
    "ResolutionStrategy",
    "ResolveConflictRequest",
    "SyncConflict",
    "SyncDirection",
    "SyncJob",
    "SyncJobQueue",
    "SyncJobStatus",
    "SyncMapping",
    "SyncOperationType",
    "SyncResult",
    "SyncService",
    "SyncStore",
    "WebhookPayload",
    "format_conflict",
    "format_job_report",
    "job_to_json",
]
