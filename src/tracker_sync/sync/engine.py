"""Sync service: entry points, job processing, and per-item sync.

``SyncService`` ties the field mapper, conflict resolver, job queue, and
the two injected collaborators together.  Entry points only create jobs
and return immediately; the queue later calls ``process_job()`` in a
worker thread.

Per-item sync for an existing mapping:

1. Fetch both sides and project the source side through the mapper.
2. Three-way diff a fixed checklist of fields, using the mapping's base
   snapshot (the values agreed at the last sync) as the base.
3. Persist conflicts.  Without auto-resolve the item fails with
   ``ConflictError`` and the mapping is left untouched; with auto-resolve
   the job's strategy is applied and recorded on each conflict.
4. Write the merged values to the target side and refresh the mapping.

Error handling is per item: a failing item is counted and the job moves
on.  A job-level configuration problem fails the whole job.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from tracker_sync.config import Config
from tracker_sync.core.protocols import LocalDocumentStore, RemoteItemClient
from tracker_sync.errors import (
    ConflictError,
    JobConfigurationError,
    PersistenceError,
    RemoteError,
    SyncError,
    UnmappedItemError,
    ValidationError,
)
from tracker_sync.sync.mapper import FieldMapper, parse_timestamp
from tracker_sync.sync.models import (
    BulkSyncRequest,
    BulkSyncResponse,
    ConflictStatus,
    FieldDiff,
    QueueStats,
    ResolutionStrategy,
    ResolveConflictRequest,
    ResolveOutcome,
    SyncConflict,
    SyncDirection,
    SyncHistoryEntry,
    SyncJob,
    SyncJobRequest,
    SyncJobStatus,
    SyncMapping,
    SyncOperationType,
    SyncResult,
    WebhookPayload,
)
from tracker_sync.sync.queue import SyncJobQueue, default_resource_keys
from tracker_sync.sync.resolver import ConflictResolver
from tracker_sync.sync.store import SyncStore, utcnow

logger = logging.getLogger(__name__)

# Fields compared on import (local shape) and export (remote shape).
IMPORT_FIELDS = ("title", "narrative", "impact", "status", "budget")
EXPORT_FIELDS = ("title", "description", "status")

# Owned by each side's own store; never written across.
LOCAL_TIMESTAMPS = ("created_at", "updated_at")
REMOTE_TIMESTAMPS = ("created", "updated")

NEW_DOCUMENT_HORIZON = timedelta(days=90)


def _as_datetime(value: Any) -> datetime | None:
    parsed = parse_timestamp(value)
    return parsed if isinstance(parsed, datetime) else None


def _snapshot(doc: dict[str, Any]) -> dict[str, Any]:
    return {f: doc[f] for f in IMPORT_FIELDS if doc.get(f) is not None}


def _without(fields: dict[str, Any], names: tuple[str, ...]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in names}


def _remote_snapshot(item: dict[str, Any]) -> dict[str, Any]:
    return _without(item, REMOTE_TIMESTAMPS)


def _check_enabled(mapping: SyncMapping) -> None:
    if not mapping.sync_enabled:
        raise ValidationError(f"Sync is disabled for mapping {mapping.id}")


class SyncService:
    """Bidirectional sync between local documents and remote items.

    Args:
        store: Durable sync store.
        remote: Remote item client.
        documents: Local document store.
        mapper: Field mapper (built from *store* if omitted).
        resolver: Conflict resolver (built from *store* if omitted).
        queue: Job queue (built from *store* if omitted).
    """

    def __init__(
        self,
        store: SyncStore,
        remote: RemoteItemClient,
        documents: LocalDocumentStore,
        mapper: FieldMapper | None = None,
        resolver: ConflictResolver | None = None,
        queue: SyncJobQueue | None = None,
    ) -> None:
        self.store = store
        self.remote = remote
        self.documents = documents
        self.mapper = mapper or FieldMapper(store)
        self.resolver = resolver or ConflictResolver(store)
        self.queue = queue or SyncJobQueue(store)
        self.queue.set_handler(self.process_job, self.resource_keys)

    @classmethod
    def from_config(
        cls,
        config: Config,
        remote: RemoteItemClient,
        documents: LocalDocumentStore,
    ) -> SyncService:
        """Build a service, creating tables and seeding default rules."""
        store = SyncStore(config.database_url)
        store.create_all()
        store.seed_default_field_mappings()
        return cls(
            store,
            remote,
            documents,
            mapper=FieldMapper(store, cache_ttl=config.field_cache_ttl),
            queue=SyncJobQueue(
                store,
                max_concurrent=config.max_concurrent_jobs,
                retry_delays=config.retry_delays,
                default_max_retries=config.max_retries,
            ),
        )

    async def start(self) -> None:
        await self.queue.start()

    async def stop(self) -> None:
        await self.queue.stop()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def import_from_remote(
        self, remote_key: str, project_key: str | None = None, actor: str = "system"
    ) -> SyncResult:
        """Queue a single remote item import."""
        if not remote_key:
            raise ValidationError("remote_key is required")
        job = self.queue.create_job(
            SyncJobRequest(
                direction=SyncDirection.REMOTE_TO_LOCAL,
                operation_type=SyncOperationType.CREATE,
                remote_keys=[remote_key],
                project_key=project_key,
            ),
            actor,
        )
        return SyncResult(success=True, job_id=job.id, direction=job.direction)

    def export_to_remote(
        self, local_id: str, project_key: str | None = None, actor: str = "system"
    ) -> SyncResult:
        """Queue a single local document export."""
        if not local_id:
            raise ValidationError("local_id is required")
        job = self.queue.create_job(
            SyncJobRequest(
                direction=SyncDirection.LOCAL_TO_REMOTE,
                operation_type=SyncOperationType.CREATE,
                local_ids=[local_id],
                project_key=project_key,
            ),
            actor,
        )
        return SyncResult(success=True, job_id=job.id, direction=job.direction)

    def bulk_import(
        self, request: BulkSyncRequest, actor: str = "system"
    ) -> BulkSyncResponse:
        if not request.remote_keys:
            raise ValidationError("bulk import needs at least one remote key")
        job = self.queue.create_job(
            SyncJobRequest(
                direction=SyncDirection.REMOTE_TO_LOCAL,
                operation_type=SyncOperationType.BULK_IMPORT,
                remote_keys=request.remote_keys,
                project_key=request.project_key,
                epic_key=request.epic_key,
                auto_resolve_conflicts=request.auto_resolve_conflicts,
                conflict_strategy=request.conflict_strategy,
            ),
            actor,
        )
        return BulkSyncResponse(job_id=job.id, total_items=job.total_items)

    def bulk_export(
        self, request: BulkSyncRequest, actor: str = "system"
    ) -> BulkSyncResponse:
        if not request.local_ids:
            raise ValidationError("bulk export needs at least one local id")
        job = self.queue.create_job(
            SyncJobRequest(
                direction=SyncDirection.LOCAL_TO_REMOTE,
                operation_type=SyncOperationType.BULK_EXPORT,
                local_ids=request.local_ids,
                project_key=request.project_key,
                epic_key=request.epic_key,
                auto_resolve_conflicts=request.auto_resolve_conflicts,
                conflict_strategy=request.conflict_strategy,
            ),
            actor,
        )
        return BulkSyncResponse(job_id=job.id, total_items=job.total_items)

    def sync_mapping(
        self,
        mapping_id: str,
        direction: SyncDirection,
        actor: str = "system",
        auto_resolve_conflicts: bool = False,
        conflict_strategy: ResolutionStrategy | None = None,
    ) -> SyncResult:
        """Queue a sync of one existing mapping.

        Raises:
            ValidationError: If the mapping is missing or disabled.
        """
        mapping = self.store.get_mapping(mapping_id)
        if mapping is None:
            raise ValidationError(f"Sync mapping {mapping_id} not found")
        if not mapping.sync_enabled:
            raise ValidationError(f"Sync is disabled for mapping {mapping_id}")
        job = self.queue.create_job(
            SyncJobRequest(
                direction=direction,
                operation_type=SyncOperationType.UPDATE,
                local_ids=[mapping.local_id],
                remote_keys=[mapping.remote_key],
                auto_resolve_conflicts=auto_resolve_conflicts,
                conflict_strategy=conflict_strategy,
            ),
            actor,
        )
        return SyncResult(success=True, job_id=job.id, direction=job.direction)

    def handle_webhook(
        self, payload: WebhookPayload | dict[str, Any], actor: str = "webhook"
    ) -> SyncResult:
        """Queue an import for a changed remote item, if its mapping allows.

        Unmapped items and mappings without ``auto_sync`` are ignored
        without creating a job.
        """
        if not isinstance(payload, WebhookPayload):
            try:
                payload = WebhookPayload.model_validate(payload)
            except PydanticValidationError as exc:
                raise ValidationError(f"Invalid webhook payload: {exc}") from exc

        mapping = self.store.get_mapping_by_remote_key(payload.issue_key)
        if mapping is None or not mapping.sync_enabled or not mapping.auto_sync:
            logger.info(
                "Ignoring %s for %s: no auto-sync mapping",
                payload.webhook_event,
                payload.issue_key,
            )
            return SyncResult(
                success=False,
                job_id=None,
                direction=SyncDirection.REMOTE_TO_LOCAL,
                error="Mapping not found or sync not enabled",
            )

        job = self.queue.create_job(
            SyncJobRequest(
                direction=SyncDirection.REMOTE_TO_LOCAL,
                operation_type=SyncOperationType.WEBHOOK_SYNC,
                local_ids=[mapping.local_id],
                remote_keys=[payload.issue_key],
            ),
            actor,
        )
        return SyncResult(success=True, job_id=job.id, direction=job.direction)

    # ------------------------------------------------------------------
    # Job processing
    # ------------------------------------------------------------------

    def resource_keys(self, job: SyncJob) -> set[str]:
        """Resource keys a job claims, including both sides of known mappings."""
        keys = default_resource_keys(job)
        for remote_key in job.remote_keys:
            mapping = self.store.get_mapping_by_remote_key(remote_key)
            if mapping is not None:
                keys.add(f"mapping:{mapping.id}")
                keys.add(f"local:{mapping.local_id}")
        for local_id in job.local_ids:
            mapping = self.store.get_mapping_by_local_id(local_id)
            if mapping is not None:
                keys.add(f"mapping:{mapping.id}")
                keys.add(f"remote:{mapping.remote_key}")
        return keys

    def process_job(self, job: SyncJob) -> SyncJob:
        """Sync every item of *job*, then complete it.

        Raises:
            JobConfigurationError: For bidirectional jobs.
        """
        logger.info(
            "Processing job (%s)", job.direction.value, extra={"job_id": job.id}
        )
        sync_item: Callable[[str, SyncJob], None]
        if job.direction == SyncDirection.REMOTE_TO_LOCAL:
            items, sync_item = job.remote_keys, self.sync_remote_to_local
        elif job.direction == SyncDirection.LOCAL_TO_REMOTE:
            items, sync_item = job.local_ids, self.sync_local_to_remote
        else:
            raise JobConfigurationError(
                "Bidirectional jobs are not supported; queue one job per direction"
            )

        processed = 0
        failed = 0
        failed_ids: list[str] = []
        conflict_ids: list[str] = []
        unmapped: list[dict[str, str]] = []
        for item_id in items:
            try:
                sync_item(item_id, job)
                processed += 1
            except Exception as exc:
                if isinstance(exc, ConflictError):
                    conflict_ids.extend(exc.conflict_ids)
                elif isinstance(exc, UnmappedItemError):
                    unmapped.append({"item_id": item_id, "created_id": exc.created_id})
                logger.error(
                    "Failed to sync %s: %s",
                    item_id,
                    exc,
                    extra={"job_id": job.id, "item_id": item_id},
                )
                failed += 1
                failed_ids.append(item_id)
            self.queue.update_progress(job.id, processed, failed)

        metadata = dict(job.metadata)
        metadata["failed_ids"] = failed_ids
        if conflict_ids:
            metadata["conflict_ids"] = conflict_ids
        if unmapped:
            metadata["unmapped_created"] = unmapped
        return self.queue.complete_job(job.id, metadata)

    # ------------------------------------------------------------------
    # Collaborator calls
    # ------------------------------------------------------------------

    def _remote_call(self, what: str, key: str, func: Callable, *args: Any) -> Any:
        try:
            return func(*args)
        except SyncError:
            raise
        except Exception as exc:
            raise RemoteError(f"Could not {what} remote item {key}: {exc}") from exc

    def _document_call(
        self, what: str, doc_id: str, func: Callable, *args: Any
    ) -> Any:
        try:
            return func(*args)
        except SyncError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"Could not {what} local document {doc_id}: {exc}"
            ) from exc

    def _unmapped(
        self, job: SyncJob, item_id: str, created_id: str, exc: Exception
    ) -> UnmappedItemError:
        logger.error(
            "Created %s for %s but could not save its mapping: %s",
            created_id,
            item_id,
            exc,
            extra={"job_id": job.id, "item_id": item_id},
        )
        return UnmappedItemError(
            f"{created_id} was created for {item_id} but is not mapped: {exc}",
            created_id=created_id,
        )

    # ------------------------------------------------------------------
    # Conflict handling shared by both directions
    # ------------------------------------------------------------------

    def _settle(
        self,
        mapping: SyncMapping,
        diffs: list[FieldDiff],
        job: SyncJob,
        default_strategy: ResolutionStrategy,
    ) -> dict[str, Any]:
        """Return the value to write for every diffed field.

        Raises:
            ConflictError: If conflicts exist and cannot be auto-resolved.
        """
        values = {d.field: d.accepted_value for d in diffs}
        conflicting = [d for d in diffs if d.has_conflict]
        if not conflicting:
            return values

        conflicts = self.resolver.create_conflicts(
            mapping.id, mapping.local_id, mapping.remote_key, conflicting, job.id
        )
        conflict_ids = [c.id for c in conflicts]
        fields = [c.field for c in conflicts]
        logger.warning(
            "Conflicts on %s",
            fields,
            extra={"job_id": job.id, "mapping_id": mapping.id},
        )

        strategy = job.conflict_strategy or default_strategy
        if not job.auto_resolve_conflicts:
            raise ConflictError(
                f"Conflicts detected on {fields}; manual resolution required",
                conflict_ids=conflict_ids,
            )
        if strategy == ResolutionStrategy.MANUAL:
            raise ConflictError(
                f"Conflicts detected on {fields}; the manual strategy cannot auto-resolve",
                conflict_ids=conflict_ids,
            )

        for conflict in conflicts:
            outcome = self.resolver.resolve_conflict(
                ResolveConflictRequest(conflict_id=conflict.id, strategy=strategy),
                "system",
            )
            values[conflict.field] = outcome.conflict.resolved_value
        return values

    # ------------------------------------------------------------------
    # Remote -> local
    # ------------------------------------------------------------------

    def sync_remote_to_local(self, remote_key: str, job: SyncJob) -> dict[str, Any]:
        """Import one remote item; return the resulting local document."""
        mapping = self.store.get_mapping_by_remote_key(remote_key)
        if mapping is not None:
            _check_enabled(mapping)

        item = self._remote_call("fetch", remote_key, self.remote.fetch_item, remote_key)
        if not item:
            raise RemoteError(f"Remote item not found: {remote_key}")

        remote_mapped = self.mapper.map_remote_to_local(item)
        if mapping is None:
            return self._create_local(remote_key, item, remote_mapped, job)

        doc = self._document_call(
            "fetch", mapping.local_id, self.documents.get_document, mapping.local_id
        )
        if not doc:
            raise PersistenceError(f"Local document not found: {mapping.local_id}")

        remote_base = None
        if mapping.remote_snapshot:
            remote_base = self.mapper.map_remote_to_local(mapping.remote_snapshot)
        fields = [f for f in IMPORT_FIELDS if f in remote_mapped]
        diffs = self.resolver.detect_conflicts(
            mapping.base_snapshot, doc, remote_mapped, fields, remote_base=remote_base
        )
        values = self._settle(mapping, diffs, job, ResolutionStrategy.KEEP_REMOTE)

        update = _without(remote_mapped, LOCAL_TIMESTAMPS)
        update.update(values)
        updated = self._document_call(
            "update",
            mapping.local_id,
            self.documents.update_document,
            mapping.local_id,
            update,
            job.created_by or "system",
        )
        result = {**doc, **update, **(updated or {})}

        self.store.update_mapping(
            mapping.id,
            remote_internal_id=str(item.get("id") or mapping.remote_internal_id),
            remote_name=item.get("name") or mapping.remote_name,
            last_synced_at=utcnow(),
            last_modified_local=_as_datetime(result.get("updated_at")),
            last_modified_remote=_as_datetime(item.get("updated")),
            base_snapshot=_snapshot(result),
            remote_snapshot=_remote_snapshot(item),
        )
        logger.info(
            "Imported %s into %s",
            remote_key,
            mapping.local_id,
            extra={"job_id": job.id, "mapping_id": mapping.id},
        )
        return result

    def _create_local(
        self,
        remote_key: str,
        item: dict[str, Any],
        remote_mapped: dict[str, Any],
        job: SyncJob,
    ) -> dict[str, Any]:
        if not remote_mapped.get("title"):
            raise ValidationError(f"Remote item {remote_key} has no title")
        if not remote_mapped.get("narrative"):
            raise ValidationError(f"Remote item {remote_key} has no description")

        now = utcnow()
        fields = _without(remote_mapped, LOCAL_TIMESTAMPS)
        fields.setdefault("impact", "")
        fields.setdefault("success_criteria", [])
        fields.setdefault(
            "timeline",
            {
                "start_date": now.isoformat(),
                "target_date": (now + NEW_DOCUMENT_HORIZON).isoformat(),
            },
        )
        fields.setdefault("budget", 0)
        fields.setdefault("stakeholders", [])

        created = self._document_call(
            "create",
            remote_key,
            self.documents.create_document,
            fields,
            job.created_by or "system",
        )
        doc = {**fields, **created}
        try:
            mapping = self.store.create_mapping(
                local_id=str(doc["id"]),
                remote_key=remote_key,
                remote_internal_id=str(item.get("id", "")),
                remote_name=item.get("name"),
                last_modified_local=_as_datetime(doc.get("updated_at")),
                last_modified_remote=_as_datetime(item.get("updated")),
                base_snapshot=_snapshot(doc),
                remote_snapshot=_remote_snapshot(item),
            )
        except SyncError as exc:
            raise self._unmapped(job, remote_key, str(doc["id"]), exc) from exc
        logger.info(
            "Created local document %s from %s",
            doc["id"],
            remote_key,
            extra={"job_id": job.id, "mapping_id": mapping.id},
        )
        return doc

    # ------------------------------------------------------------------
    # Local -> remote
    # ------------------------------------------------------------------

    def sync_local_to_remote(self, local_id: str, job: SyncJob) -> dict[str, Any]:
        """Export one local document; return the resulting remote item."""
        mapping = self.store.get_mapping_by_local_id(local_id)
        if mapping is not None:
            _check_enabled(mapping)

        doc = self._document_call(
            "fetch", local_id, self.documents.get_document, local_id
        )
        if not doc:
            raise PersistenceError(f"Local document not found: {local_id}")

        local_mapped = self.mapper.map_local_to_remote(doc)
        if mapping is None:
            return self._create_remote(local_id, doc, local_mapped, job)

        item = self._remote_call(
            "fetch", mapping.remote_key, self.remote.fetch_item, mapping.remote_key
        )
        if not item:
            raise RemoteError(f"Remote item not found: {mapping.remote_key}")

        # The local base goes through the same projection as the document;
        # the remote side is compared with what the remote actually held.
        local_base = self.mapper.map_local_to_remote(mapping.base_snapshot)
        base = mapping.remote_snapshot or local_base
        fields = [f for f in EXPORT_FIELDS if f in local_mapped]
        diffs = self.resolver.detect_conflicts(
            base, local_mapped, item, fields, local_base=local_base
        )
        values = self._settle(mapping, diffs, job, ResolutionStrategy.KEEP_LOCAL)
        update = _without(local_mapped, REMOTE_TIMESTAMPS)
        update.update(values)
        for diff in diffs:
            if not diff.local_changed:
                # Unchanged locally; the remote keeps its own value.
                update.pop(diff.field, None)
        updated = self._remote_call(
            "update",
            mapping.remote_key,
            self.remote.update_item,
            mapping.remote_key,
            update,
        )
        result = {**item, **update, **(updated or {})}

        self.store.update_mapping(
            mapping.id,
            last_synced_at=utcnow(),
            last_modified_local=_as_datetime(doc.get("updated_at")),
            last_modified_remote=_as_datetime(result.get("updated")),
            base_snapshot=_snapshot(doc),
            remote_snapshot=_remote_snapshot(result),
        )
        logger.info(
            "Exported %s to %s",
            local_id,
            mapping.remote_key,
            extra={"job_id": job.id, "mapping_id": mapping.id},
        )
        return result

    def _create_remote(
        self,
        local_id: str,
        doc: dict[str, Any],
        local_mapped: dict[str, Any],
        job: SyncJob,
    ) -> dict[str, Any]:
        if not job.project_key:
            raise ValidationError(
                f"project_key is required to export unmapped document {local_id}"
            )
        fields = _without(local_mapped, REMOTE_TIMESTAMPS)
        created = self._remote_call(
            "create", local_id, self.remote.create_item, job.project_key, fields
        )
        if not created or not created.get("key"):
            raise RemoteError(f"Remote client returned no key for {local_id}")

        try:
            mapping = self.store.create_mapping(
                local_id=local_id,
                remote_key=created["key"],
                remote_internal_id=str(created.get("id", "")),
                remote_name=created.get("name"),
                last_modified_local=_as_datetime(doc.get("updated_at")),
                last_modified_remote=_as_datetime(created.get("updated")),
                base_snapshot=_snapshot(doc),
                remote_snapshot=_remote_snapshot({**fields, **created}),
            )
        except SyncError as exc:
            raise self._unmapped(job, local_id, created["key"], exc) from exc
        logger.info(
            "Created remote item %s from %s",
            created["key"],
            local_id,
            extra={"job_id": job.id, "mapping_id": mapping.id},
        )
        return created

    # ------------------------------------------------------------------
    # Mappings
    # ------------------------------------------------------------------

    def get_mapping(self, mapping_id: str) -> SyncMapping | None:
        return self.store.get_mapping(mapping_id)

    def get_mapping_by_local_id(self, local_id: str) -> SyncMapping | None:
        return self.store.get_mapping_by_local_id(local_id)

    def get_mapping_by_remote_key(self, remote_key: str) -> SyncMapping | None:
        return self.store.get_mapping_by_remote_key(remote_key)

    def get_all_mappings(self, sync_enabled: bool | None = None) -> list[SyncMapping]:
        return self.store.list_mappings(sync_enabled)

    def set_mapping_flags(
        self,
        mapping_id: str,
        sync_enabled: bool | None = None,
        auto_sync: bool | None = None,
    ) -> SyncMapping:
        fields: dict[str, Any] = {}
        if sync_enabled is not None:
            fields["sync_enabled"] = sync_enabled
        if auto_sync is not None:
            fields["auto_sync"] = auto_sync
        if not fields:
            mapping = self.store.get_mapping(mapping_id)
            if mapping is None:
                raise ValidationError(f"Sync mapping {mapping_id} not found")
            return mapping
        return self.store.update_mapping(mapping_id, **fields)

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def resolve_conflict(
        self, request: ResolveConflictRequest, actor: str
    ) -> ResolveOutcome:
        return self.resolver.resolve_conflict(request, actor)

    def ignore_conflict(self, conflict_id: str, actor: str) -> SyncConflict:
        return self.resolver.ignore_conflict(conflict_id, actor)

    def get_conflicts(
        self,
        mapping_id: str | None = None,
        local_id: str | None = None,
        job_id: str | None = None,
        status: ConflictStatus | None = None,
    ) -> list[SyncConflict]:
        return self.store.list_conflicts(
            mapping_id=mapping_id, local_id=local_id, job_id=job_id, status=status
        )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> SyncJob | None:
        return self.queue.get_job(job_id)

    def get_jobs(
        self,
        statuses: list[SyncJobStatus] | None = None,
        direction: SyncDirection | None = None,
        created_by: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[SyncJob]:
        return self.queue.get_jobs(statuses, direction, created_by, limit, offset)

    def cancel_job(self, job_id: str, actor: str) -> SyncJob:
        return self.queue.cancel_job(job_id, actor)

    def retry_job(self, job_id: str, actor: str) -> SyncJob:
        return self.queue.retry_job(job_id, actor)

    def get_job_history(self, job_id: str) -> list[SyncHistoryEntry]:
        return self.queue.get_history(job_id)

    def get_stats(self) -> QueueStats:
        return self.queue.get_stats()

    def cleanup(self, job_days: int = 30, conflict_days: int = 30) -> dict[str, int]:
        """Purge finished jobs and settled conflicts past their horizons."""
        return {
            "jobs": self.queue.cleanup_old_jobs(job_days),
            "conflicts": self.resolver.cleanup_old_conflicts(conflict_days),
        }
