"""Pydantic models for the sync engine.

Defines the data contracts shared by every sync module:

- Enums: ``SyncDirection``, ``SyncOperationType``, ``SyncJobStatus``,
  ``ConflictType``, ``ResolutionStrategy``, ``ConflictStatus``.
- Persisted entities: ``SyncMapping``, ``SyncJob``, ``SyncConflict``,
  ``FieldMapping``, ``SyncHistoryEntry``.
- Requests and results: ``SyncJobRequest``, ``BulkSyncRequest``,
  ``WebhookPayload``, ``ResolveConflictRequest``, ``SyncResult``,
  ``BulkSyncResponse``, ``ResolveOutcome``, ``QueueStats``, ``FieldDiff``.

Persisted entities are frozen; the store returns a fresh instance after
every write.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .transforms import TransformKind


class SyncDirection(str, Enum):
    """Which side is the source of a sync."""

    REMOTE_TO_LOCAL = "remote_to_local"
    LOCAL_TO_REMOTE = "local_to_remote"
    BIDIRECTIONAL = "bidirectional"


class SyncOperationType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    BULK_IMPORT = "bulk_import"
    BULK_EXPORT = "bulk_export"
    SCHEDULED_SYNC = "scheduled_sync"
    WEBHOOK_SYNC = "webhook_sync"


class SyncJobStatus(str, Enum):
    """Job lifecycle: pending -> in_progress -> completed|failed|cancelled.

    A failed job may move to ``retrying`` and be dispatched again.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = frozenset(
    {SyncJobStatus.COMPLETED, SyncJobStatus.FAILED, SyncJobStatus.CANCELLED}
)
DISPATCHABLE_JOB_STATUSES = frozenset(
    {SyncJobStatus.PENDING, SyncJobStatus.RETRYING}
)


class ConflictType(str, Enum):
    STATUS_MISMATCH = "status_mismatch"
    DELETION = "deletion"
    CONCURRENT_MODIFICATION = "concurrent_modification"


class ResolutionStrategy(str, Enum):
    KEEP_LOCAL = "keep_local"
    KEEP_REMOTE = "keep_remote"
    MERGE = "merge"
    MANUAL = "manual"


class ConflictStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    IGNORED = "ignored"


# ---------------------------------------------------------------------------
# Persisted entities
# ---------------------------------------------------------------------------


class SyncMapping(BaseModel):
    """Binding between one local document and one remote item.

    Attributes:
        local_id: Local document id.
        remote_key: Remote item key.
        remote_internal_id: Remote tracker-internal id.
        remote_name: Epic name at the time of the last sync.
        last_synced_at: When the pair was last synced successfully.
        last_modified_local: Local ``updated_at`` seen at the last sync.
        last_modified_remote: Remote ``updated`` seen at the last sync.
        sync_enabled: Whether the pair may be synced at all.
        auto_sync: Whether webhooks may trigger a sync.
        conflict_count: Total conflicts ever recorded; never decreases.
        base_snapshot: Field values both sides agreed on at the last sync,
            in local shape.  Used as the three-way merge base.
        remote_snapshot: The remote item as it stood after the last sync,
            in remote shape.  Used to tell whether the remote side changed.
    """

    id: str
    local_id: str
    remote_key: str
    remote_internal_id: str
    remote_name: str | None = None
    last_synced_at: datetime
    last_modified_local: datetime | None = None
    last_modified_remote: datetime | None = None
    sync_enabled: bool = True
    auto_sync: bool = False
    conflict_count: int = 0
    base_snapshot: dict[str, Any] = Field(default_factory=dict)
    remote_snapshot: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"frozen": True}


class SyncJob(BaseModel):
    """A queued unit of sync work over one or more items."""

    id: str
    direction: SyncDirection
    operation_type: SyncOperationType
    status: SyncJobStatus = SyncJobStatus.PENDING
    progress: int = 0
    total_items: int = 1
    processed_items: int = 0
    failed_items: int = 0
    local_ids: list[str] = Field(default_factory=list)
    remote_keys: list[str] = Field(default_factory=list)
    project_key: str | None = None
    epic_key: str | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    created_by: str | None = None
    retry_count: int = 0
    max_retries: int = 3
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    @property
    def auto_resolve_conflicts(self) -> bool:
        return bool(self.metadata.get("auto_resolve_conflicts", False))

    @property
    def conflict_strategy(self) -> ResolutionStrategy | None:
        raw = self.metadata.get("conflict_strategy")
        return ResolutionStrategy(raw) if raw else None


class SyncConflict(BaseModel):
    """A field on which local and remote diverged from base differently.

    The three snapshots are kept after resolution for audit.
    """

    id: str
    job_id: str | None = None
    mapping_id: str
    local_id: str
    remote_key: str
    field: str
    conflict_type: ConflictType
    base_value: Any = None
    local_value: Any = None
    remote_value: Any = None
    resolution_strategy: ResolutionStrategy | None = None
    resolved_value: Any = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    status: ConflictStatus = ConflictStatus.PENDING
    created_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class FieldMapping(BaseModel):
    """One declarative field-translation rule.

    Attributes:
        source_field: Dot path read from the source side.
        target_field: Dot path written on the target side.
        direction: Direction the rule applies to (or ``bidirectional``).
        transform: Optional value conversion.
        is_custom_field: Whether the remote side keeps the value in
            ``custom_fields``.
        remote_field_id: Custom-field id on the remote side.
        default_value: Used when the source value is absent.
        required: Required rules are applied first.
        active: Inactive rules are ignored.
    """

    id: str
    source_field: str
    target_field: str
    direction: SyncDirection
    transform: TransformKind | None = None
    is_custom_field: bool = False
    remote_field_id: str | None = None
    default_value: Any = None
    required: bool = False
    active: bool = True

    model_config = {"frozen": True}


class SyncHistoryEntry(BaseModel):
    """Audit trail entry for a job."""

    id: str
    job_id: str
    timestamp: datetime
    action: str
    details: dict[str, Any] = Field(default_factory=dict)
    performed_by: str | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Diff result
# ---------------------------------------------------------------------------


class FieldDiff(BaseModel):
    """Outcome of a three-way comparison of one field.

    Attributes:
        accepted_value: The value to apply when there is no conflict:
            the side that changed, or local when neither changed or both
            changed to the same value.
    """

    field: str
    base_value: Any = None
    local_value: Any = None
    remote_value: Any = None
    local_changed: bool = False
    remote_changed: bool = False
    has_conflict: bool = False
    conflict_type: ConflictType | None = None
    accepted_value: Any = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class SyncJobRequest(BaseModel):
    """Everything needed to create a job."""

    direction: SyncDirection
    operation_type: SyncOperationType
    local_ids: list[str] = Field(default_factory=list)
    remote_keys: list[str] = Field(default_factory=list)
    project_key: str | None = None
    epic_key: str | None = None
    auto_resolve_conflicts: bool = False
    conflict_strategy: ResolutionStrategy | None = None
    max_retries: int | None = None


class BulkSyncRequest(BaseModel):
    project_key: str | None = None
    epic_key: str | None = None
    local_ids: list[str] = Field(default_factory=list)
    remote_keys: list[str] = Field(default_factory=list)
    auto_resolve_conflicts: bool = False
    conflict_strategy: ResolutionStrategy | None = None


class ChangelogEntry(BaseModel):
    field: str
    from_string: str | None = Field(default=None, alias="fromString")
    to_string: str | None = Field(default=None, alias="toString")

    model_config = {"populate_by_name": True}


class WebhookPayload(BaseModel):
    """Inbound tracker webhook body."""

    webhook_event: str = Field(alias="webhookEvent")
    issue_key: str = Field(alias="issueKey")
    issue_id: str = Field(alias="issueId")
    changelog: list[ChangelogEntry] | None = None
    timestamp: float

    model_config = {"populate_by_name": True}


class ResolveConflictRequest(BaseModel):
    """Request to resolve one conflict.

    ``resolved_value`` counts as supplied only when it was passed
    explicitly, so ``None`` is a valid manual resolution.
    """

    conflict_id: str
    strategy: ResolutionStrategy
    resolved_value: Any = None
    apply_to_similar: bool = False

    @property
    def has_resolved_value(self) -> bool:
        return "resolved_value" in self.model_fields_set


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class SyncResult(BaseModel):
    """Synchronous answer to a sync request.

    Counts are zero at creation time; poll the job for the outcome.
    """

    success: bool
    job_id: str | None = None
    direction: SyncDirection
    processed_items: int = 0
    failed_items: int = 0
    conflict_count: int = 0
    error: str | None = None

    model_config = {"frozen": True}


class BulkSyncResponse(BaseModel):
    job_id: str
    total_items: int
    successful: list[dict[str, Any]] = Field(default_factory=list)
    failed: list[dict[str, Any]] = Field(default_factory=list)
    conflicts: list[SyncConflict] = Field(default_factory=list)

    model_config = {"frozen": True}


class ResolveOutcome(BaseModel):
    conflict: SyncConflict
    similar_resolved: int = 0

    model_config = {"frozen": True}


class QueueStats(BaseModel):
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0

    model_config = {"frozen": True}
