"""Durable store for mappings, jobs, conflicts, field rules, and history.

``SyncStore`` wraps a SQLAlchemy engine and hands out frozen pydantic
models.  All access goes through one re-entrant lock so the queue workers
(running in threads) and the event loop never interleave writes.

SQLite drops timezone information, so datetimes read back are re-tagged
as UTC.  Every datetime written is UTC.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tracker_sync.errors import PersistenceError, ValidationError
from tracker_sync.sync.models import (
    ConflictStatus,
    FieldMapping,
    SyncConflict,
    SyncDirection,
    SyncHistoryEntry,
    SyncJob,
    SyncJobStatus,
    SyncMapping,
)
from tracker_sync.sync.tables import (
    Base,
    FieldMappingRow,
    SyncConflictRow,
    SyncHistoryRow,
    SyncJobRow,
    SyncMappingRow,
)
from tracker_sync.sync.transforms import TransformKind, parse_transform

logger = logging.getLogger(__name__)


DEFAULT_FIELD_MAPPINGS: list[dict[str, Any]] = [
    {
        "id": "map-title",
        "source_field": "title",
        "target_field": "title",
        "direction": SyncDirection.BIDIRECTIONAL,
        "required": True,
    },
    {
        "id": "map-narrative-description",
        "source_field": "narrative",
        "target_field": "description",
        "direction": SyncDirection.BIDIRECTIONAL,
    },
    {
        "id": "map-status",
        "source_field": "status",
        "target_field": "status",
        "direction": SyncDirection.BIDIRECTIONAL,
        "transform": TransformKind.STATUS,
        "required": True,
    },
    {
        "id": "map-epic-name",
        "source_field": "title",
        "target_field": "customfield_10011",
        "direction": SyncDirection.LOCAL_TO_REMOTE,
        "is_custom_field": True,
        "remote_field_id": "customfield_10011",
    },
    {
        "id": "map-story-points",
        "source_field": "budget",
        "target_field": "customfield_10014",
        "direction": SyncDirection.LOCAL_TO_REMOTE,
        "transform": TransformKind.BUDGET_TO_POINTS,
        "is_custom_field": True,
        "remote_field_id": "customfield_10014",
        "active": False,
    },
    {
        "id": "map-reporter",
        "source_field": "created_by",
        "target_field": "reporter",
        "direction": SyncDirection.LOCAL_TO_REMOTE,
        "transform": TransformKind.USER_TO_ACCOUNT,
    },
    {
        "id": "map-created",
        "source_field": "created",
        "target_field": "created_at",
        "direction": SyncDirection.REMOTE_TO_LOCAL,
    },
    {
        "id": "map-updated",
        "source_field": "updated_at",
        "target_field": "updated",
        "direction": SyncDirection.BIDIRECTIONAL,
    },
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_json_value(value: Any) -> Any:
    """Coerce *value* into something a JSON column accepts."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return json.loads(json.dumps(value, default=str))


# ---------------------------------------------------------------------------
# Row -> model conversion
# ---------------------------------------------------------------------------


def _mapping_from_row(row: SyncMappingRow) -> SyncMapping:
    return SyncMapping(
        id=row.id,
        local_id=row.local_id,
        remote_key=row.remote_key,
        remote_internal_id=row.remote_internal_id,
        remote_name=row.remote_name,
        last_synced_at=_aware(row.last_synced_at),
        last_modified_local=_aware(row.last_modified_local),
        last_modified_remote=_aware(row.last_modified_remote),
        sync_enabled=row.sync_enabled,
        auto_sync=row.auto_sync,
        conflict_count=row.conflict_count,
        base_snapshot=row.base_snapshot or {},
        remote_snapshot=row.remote_snapshot or {},
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _job_from_row(row: SyncJobRow) -> SyncJob:
    return SyncJob(
        id=row.id,
        direction=row.direction,
        operation_type=row.operation_type,
        status=row.status,
        progress=row.progress,
        total_items=row.total_items,
        processed_items=row.processed_items,
        failed_items=row.failed_items,
        local_ids=row.local_ids or [],
        remote_keys=row.remote_keys or [],
        project_key=row.project_key,
        epic_key=row.epic_key,
        error=row.error,
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
        created_at=_aware(row.created_at),
        created_by=row.created_by,
        retry_count=row.retry_count,
        max_retries=row.max_retries,
        metadata=row.job_metadata or {},
    )


def _conflict_from_row(row: SyncConflictRow) -> SyncConflict:
    return SyncConflict(
        id=row.id,
        job_id=row.job_id,
        mapping_id=row.mapping_id,
        local_id=row.local_id,
        remote_key=row.remote_key,
        field=row.field,
        conflict_type=row.conflict_type,
        base_value=row.base_value,
        local_value=row.local_value,
        remote_value=row.remote_value,
        resolution_strategy=row.resolution_strategy,
        resolved_value=row.resolved_value,
        resolved_by=row.resolved_by,
        resolved_at=_aware(row.resolved_at),
        status=row.status,
        created_at=_aware(row.created_at),
        metadata=row.conflict_metadata or {},
    )


def _field_mapping_from_row(row: FieldMappingRow) -> FieldMapping:
    return FieldMapping(
        id=row.id,
        source_field=row.source_field,
        target_field=row.target_field,
        direction=row.direction,
        transform=parse_transform(row.transform),
        is_custom_field=row.is_custom_field,
        remote_field_id=row.remote_field_id,
        default_value=row.default_value,
        required=row.required,
        active=row.active,
    )


def _history_from_row(row: SyncHistoryRow) -> SyncHistoryEntry:
    return SyncHistoryEntry(
        id=row.id,
        job_id=row.job_id,
        timestamp=_aware(row.timestamp),
        action=row.action,
        details=row.details or {},
        performed_by=row.performed_by,
    )


def _enum_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SyncStore:
    """SQLAlchemy-backed persistence for the sync engine.

    Args:
        database_url: SQLAlchemy URL.  ``sqlite://`` (in-memory) shares one
            connection across threads.
        echo: Log SQL statements.
    """

    _MAPPING_FIELDS = frozenset(
        {
            "remote_internal_id",
            "remote_name",
            "last_synced_at",
            "last_modified_local",
            "last_modified_remote",
            "sync_enabled",
            "auto_sync",
            "base_snapshot",
            "remote_snapshot",
        }
    )
    _JOB_FIELDS = frozenset(
        {
            "status",
            "progress",
            "total_items",
            "processed_items",
            "failed_items",
            "error",
            "started_at",
            "completed_at",
            "retry_count",
            "metadata",
        }
    )
    _CONFLICT_FIELDS = frozenset(
        {
            "resolution_strategy",
            "resolved_value",
            "resolved_by",
            "resolved_at",
            "status",
            "metadata",
        }
    )
    _FIELD_MAPPING_FIELDS = frozenset(
        {
            "source_field",
            "target_field",
            "direction",
            "transform",
            "is_custom_field",
            "remote_field_id",
            "default_value",
            "required",
            "active",
        }
    )

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = database_url
        engine_kwargs: dict[str, Any] = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True
        self.engine = create_engine(database_url, **engine_kwargs)
        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )
        self._lock = threading.RLock()

    def create_all(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except IntegrityError:
                session.rollback()
                raise
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error("Sync store operation failed: %s", exc)
                raise PersistenceError(f"Sync store error: {exc}") from exc
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    # ------------------------------------------------------------------
    # Mappings
    # ------------------------------------------------------------------

    def create_mapping(
        self,
        local_id: str,
        remote_key: str,
        remote_internal_id: str,
        remote_name: str | None = None,
        last_modified_local: datetime | None = None,
        last_modified_remote: datetime | None = None,
        base_snapshot: dict[str, Any] | None = None,
        remote_snapshot: dict[str, Any] | None = None,
        sync_enabled: bool = True,
        auto_sync: bool = False,
    ) -> SyncMapping:
        """Insert a mapping.

        Raises:
            ValidationError: If the pair or the remote key is already mapped.
        """
        now = utcnow()
        row = SyncMappingRow(
            id=new_id(),
            local_id=local_id,
            remote_key=remote_key,
            remote_internal_id=remote_internal_id,
            remote_name=remote_name,
            last_synced_at=now,
            last_modified_local=last_modified_local,
            last_modified_remote=last_modified_remote,
            sync_enabled=sync_enabled,
            auto_sync=auto_sync,
            conflict_count=0,
            base_snapshot=to_json_value(base_snapshot or {}),
            remote_snapshot=to_json_value(remote_snapshot or {}),
            created_at=now,
            updated_at=now,
        )
        try:
            with self._session() as session:
                session.add(row)
        except IntegrityError as exc:
            raise ValidationError(
                f"Remote item {remote_key} is already mapped"
            ) from exc
        logger.info(
            "Created mapping %s <-> %s",
            local_id,
            remote_key,
            extra={"mapping_id": row.id},
        )
        return _mapping_from_row(row)

    def get_mapping(self, mapping_id: str) -> SyncMapping | None:
        with self._session() as session:
            row = session.get(SyncMappingRow, mapping_id)
            return _mapping_from_row(row) if row else None

    def get_mapping_by_local_id(self, local_id: str) -> SyncMapping | None:
        with self._session() as session:
            row = session.scalars(
                select(SyncMappingRow)
                .where(SyncMappingRow.local_id == local_id)
                .order_by(SyncMappingRow.created_at)
            ).first()
            return _mapping_from_row(row) if row else None

    def get_mapping_by_remote_key(self, remote_key: str) -> SyncMapping | None:
        with self._session() as session:
            row = session.scalars(
                select(SyncMappingRow).where(
                    SyncMappingRow.remote_key == remote_key
                )
            ).first()
            return _mapping_from_row(row) if row else None

    def list_mappings(
        self, sync_enabled: bool | None = None
    ) -> list[SyncMapping]:
        with self._session() as session:
            stmt = select(SyncMappingRow).order_by(
                SyncMappingRow.updated_at.desc()
            )
            if sync_enabled is not None:
                stmt = stmt.where(SyncMappingRow.sync_enabled == sync_enabled)
            return [_mapping_from_row(r) for r in session.scalars(stmt)]

    def update_mapping(self, mapping_id: str, **fields: Any) -> SyncMapping:
        """Update mutable mapping columns and bump ``updated_at``.

        Raises:
            ValidationError: If the mapping does not exist or a field is
                not updatable.
        """
        unknown = set(fields) - self._MAPPING_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update mapping fields: {sorted(unknown)}"
            )
        with self._session() as session:
            row = session.get(SyncMappingRow, mapping_id)
            if row is None:
                raise ValidationError(f"Sync mapping {mapping_id} not found")
            for key, value in fields.items():
                if key in ("base_snapshot", "remote_snapshot"):
                    value = to_json_value(value or {})
                setattr(row, key, value)
            row.updated_at = utcnow()
            session.flush()
            return _mapping_from_row(row)

    def increment_conflict_count(
        self, mapping_id: str, amount: int
    ) -> SyncMapping:
        if amount < 0:
            raise ValidationError("Conflict count can only grow")
        with self._session() as session:
            row = session.get(SyncMappingRow, mapping_id)
            if row is None:
                raise ValidationError(f"Sync mapping {mapping_id} not found")
            row.conflict_count = (row.conflict_count or 0) + amount
            row.updated_at = utcnow()
            session.flush()
            return _mapping_from_row(row)

    # ------------------------------------------------------------------
    # Jobs and history
    # ------------------------------------------------------------------

    def insert_job(self, job: SyncJob) -> SyncJob:
        with self._session() as session:
            row = SyncJobRow(
                id=job.id,
                direction=_enum_value(job.direction),
                operation_type=_enum_value(job.operation_type),
                status=_enum_value(job.status),
                progress=job.progress,
                total_items=job.total_items,
                processed_items=job.processed_items,
                failed_items=job.failed_items,
                local_ids=list(job.local_ids),
                remote_keys=list(job.remote_keys),
                project_key=job.project_key,
                epic_key=job.epic_key,
                error=job.error,
                started_at=job.started_at,
                completed_at=job.completed_at,
                created_at=job.created_at or utcnow(),
                created_by=job.created_by,
                retry_count=job.retry_count,
                max_retries=job.max_retries,
                job_metadata=to_json_value(job.metadata),
            )
            session.add(row)
            session.flush()
            return _job_from_row(row)

    def get_job(self, job_id: str) -> SyncJob | None:
        with self._session() as session:
            row = session.get(SyncJobRow, job_id)
            return _job_from_row(row) if row else None

    def update_job(self, job_id: str, **fields: Any) -> SyncJob:
        unknown = set(fields) - self._JOB_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update job fields: {sorted(unknown)}")
        with self._session() as session:
            row = session.get(SyncJobRow, job_id)
            if row is None:
                raise ValidationError(f"Sync job {job_id} not found")
            for key, value in fields.items():
                if key == "metadata":
                    row.job_metadata = to_json_value(value or {})
                else:
                    setattr(row, key, _enum_value(value))
            session.flush()
            return _job_from_row(row)

    def list_jobs(
        self,
        statuses: Iterable[SyncJobStatus] | None = None,
        direction: SyncDirection | None = None,
        created_by: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[SyncJob]:
        with self._session() as session:
            stmt = select(SyncJobRow)
            if statuses is not None:
                stmt = stmt.where(
                    SyncJobRow.status.in_([_enum_value(s) for s in statuses])
                )
            if direction is not None:
                stmt = stmt.where(
                    SyncJobRow.direction == _enum_value(direction)
                )
            if created_by is not None:
                stmt = stmt.where(SyncJobRow.created_by == created_by)
            stmt = (
                stmt.order_by(SyncJobRow.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return [_job_from_row(r) for r in session.scalars(stmt)]

    def list_dispatchable_jobs(self) -> list[SyncJob]:
        """Return pending and retrying jobs, oldest first."""
        with self._session() as session:
            stmt = (
                select(SyncJobRow)
                .where(
                    SyncJobRow.status.in_(
                        [
                            SyncJobStatus.PENDING.value,
                            SyncJobStatus.RETRYING.value,
                        ]
                    )
                )
                .order_by(SyncJobRow.created_at)
            )
            return [_job_from_row(r) for r in session.scalars(stmt)]

    def count_jobs_by_status(self) -> dict[str, int]:
        with self._session() as session:
            rows = session.execute(
                select(SyncJobRow.status, func.count()).group_by(
                    SyncJobRow.status
                )
            ).all()
            return {status: count for status, count in rows}

    def delete_jobs_before(
        self, cutoff: datetime, statuses: Iterable[SyncJobStatus]
    ) -> int:
        """Delete jobs in *statuses* completed before *cutoff*, with history."""
        with self._session() as session:
            ids = list(
                session.scalars(
                    select(SyncJobRow.id).where(
                        SyncJobRow.status.in_(
                            [_enum_value(s) for s in statuses]
                        ),
                        SyncJobRow.completed_at < cutoff,
                    )
                )
            )
            if not ids:
                return 0
            session.query(SyncHistoryRow).filter(
                SyncHistoryRow.job_id.in_(ids)
            ).delete(synchronize_session=False)
            session.query(SyncJobRow).filter(SyncJobRow.id.in_(ids)).delete(
                synchronize_session=False
            )
            return len(ids)

    def add_history(
        self,
        job_id: str,
        action: str,
        details: dict[str, Any] | None = None,
        performed_by: str | None = None,
    ) -> SyncHistoryEntry:
        with self._session() as session:
            row = SyncHistoryRow(
                id=new_id(),
                job_id=job_id,
                timestamp=utcnow(),
                action=action,
                details=to_json_value(details or {}),
                performed_by=performed_by,
            )
            session.add(row)
            session.flush()
            return _history_from_row(row)

    def get_history(self, job_id: str) -> list[SyncHistoryEntry]:
        with self._session() as session:
            rows = session.scalars(
                select(SyncHistoryRow)
                .where(SyncHistoryRow.job_id == job_id)
                .order_by(SyncHistoryRow.timestamp)
            )
            return [_history_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def insert_conflict(self, conflict: SyncConflict) -> SyncConflict:
        with self._session() as session:
            row = SyncConflictRow(
                id=conflict.id,
                job_id=conflict.job_id,
                mapping_id=conflict.mapping_id,
                local_id=conflict.local_id,
                remote_key=conflict.remote_key,
                field=conflict.field,
                conflict_type=_enum_value(conflict.conflict_type),
                base_value=to_json_value(conflict.base_value),
                local_value=to_json_value(conflict.local_value),
                remote_value=to_json_value(conflict.remote_value),
                resolution_strategy=_enum_value(conflict.resolution_strategy),
                resolved_value=to_json_value(conflict.resolved_value),
                resolved_by=conflict.resolved_by,
                resolved_at=conflict.resolved_at,
                status=_enum_value(conflict.status),
                created_at=conflict.created_at or utcnow(),
                conflict_metadata=to_json_value(conflict.metadata),
            )
            session.add(row)
            session.flush()
            return _conflict_from_row(row)

    def get_conflict(self, conflict_id: str) -> SyncConflict | None:
        with self._session() as session:
            row = session.get(SyncConflictRow, conflict_id)
            return _conflict_from_row(row) if row else None

    def update_conflict(
        self,
        conflict_id: str,
        expected_status: ConflictStatus | None = None,
        **fields: Any,
    ) -> SyncConflict:
        """Record a resolution; the value snapshots are never rewritten.

        With *expected_status* the update only happens if the conflict is
        still in that status, checked and written under the store lock.

        Raises:
            ValidationError: If the conflict is missing, a field is not
                updatable, or the status no longer matches.
        """
        unknown = set(fields) - self._CONFLICT_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update conflict fields: {sorted(unknown)}"
            )
        with self._session() as session:
            row = session.get(SyncConflictRow, conflict_id, with_for_update=True)
            if row is None:
                raise ValidationError(f"Conflict {conflict_id} not found")
            if expected_status is not None and row.status != expected_status.value:
                raise ValidationError(
                    f"Conflict {conflict_id} is already {row.status}"
                )
            for key, value in fields.items():
                if key == "metadata":
                    row.conflict_metadata = to_json_value(value or {})
                elif key == "resolved_value":
                    row.resolved_value = to_json_value(value)
                else:
                    setattr(row, key, _enum_value(value))
            session.flush()
            return _conflict_from_row(row)

    def list_conflicts(
        self,
        mapping_id: str | None = None,
        local_id: str | None = None,
        job_id: str | None = None,
        status: ConflictStatus | None = None,
        field: str | None = None,
        conflict_type: str | None = None,
    ) -> list[SyncConflict]:
        with self._session() as session:
            stmt = select(SyncConflictRow)
            if mapping_id is not None:
                stmt = stmt.where(SyncConflictRow.mapping_id == mapping_id)
            if local_id is not None:
                stmt = stmt.where(SyncConflictRow.local_id == local_id)
            if job_id is not None:
                stmt = stmt.where(SyncConflictRow.job_id == job_id)
            if status is not None:
                stmt = stmt.where(SyncConflictRow.status == _enum_value(status))
            if field is not None:
                stmt = stmt.where(SyncConflictRow.field == field)
            if conflict_type is not None:
                stmt = stmt.where(
                    SyncConflictRow.conflict_type == _enum_value(conflict_type)
                )
            stmt = stmt.order_by(SyncConflictRow.created_at.desc())
            return [_conflict_from_row(r) for r in session.scalars(stmt)]

    def count_conflicts(
        self, status: ConflictStatus, local_id: str | None = None
    ) -> int:
        with self._session() as session:
            stmt = select(func.count()).select_from(SyncConflictRow).where(
                SyncConflictRow.status == _enum_value(status)
            )
            if local_id is not None:
                stmt = stmt.where(SyncConflictRow.local_id == local_id)
            return int(session.scalar(stmt) or 0)

    def delete_conflicts_resolved_before(self, cutoff: datetime) -> int:
        with self._session() as session:
            return (
                session.query(SyncConflictRow)
                .filter(
                    SyncConflictRow.status.in_(
                        [
                            ConflictStatus.RESOLVED.value,
                            ConflictStatus.IGNORED.value,
                        ]
                    ),
                    SyncConflictRow.resolved_at < cutoff,
                )
                .delete(synchronize_session=False)
            )

    # ------------------------------------------------------------------
    # Field mappings
    # ------------------------------------------------------------------

    def list_field_mappings(
        self,
        direction: SyncDirection | None = None,
        active_only: bool = False,
    ) -> list[FieldMapping]:
        """List rules, ordered required-first then by source field.

        With *direction*, rules for that direction and bidirectional rules
        are returned.
        """
        with self._session() as session:
            stmt = select(FieldMappingRow)
            if direction is not None:
                stmt = stmt.where(
                    FieldMappingRow.direction.in_(
                        [
                            _enum_value(direction),
                            SyncDirection.BIDIRECTIONAL.value,
                        ]
                    )
                )
            if active_only:
                stmt = stmt.where(FieldMappingRow.active.is_(True))
            stmt = stmt.order_by(
                FieldMappingRow.required.desc(),
                FieldMappingRow.source_field,
                FieldMappingRow.id,
            )
            return [_field_mapping_from_row(r) for r in session.scalars(stmt)]

    def get_field_mapping(self, rule_id: str) -> FieldMapping | None:
        with self._session() as session:
            row = session.get(FieldMappingRow, rule_id)
            return _field_mapping_from_row(row) if row else None

    def insert_field_mapping(self, rule: FieldMapping) -> FieldMapping:
        row = FieldMappingRow(
            id=rule.id,
            source_field=rule.source_field,
            target_field=rule.target_field,
            direction=_enum_value(rule.direction),
            transform=_enum_value(rule.transform),
            is_custom_field=rule.is_custom_field,
            remote_field_id=rule.remote_field_id,
            default_value=to_json_value(rule.default_value),
            required=rule.required,
            active=rule.active,
        )
        try:
            with self._session() as session:
                session.add(row)
        except IntegrityError as exc:
            raise ValidationError(
                f"Field mapping {rule.id} already exists"
            ) from exc
        return _field_mapping_from_row(row)

    def insert_raw_field_mapping(self, **columns: Any) -> None:
        """Insert a rule row as-is, without validating the transform name."""
        with self._session() as session:
            session.add(FieldMappingRow(**columns))

    def update_field_mapping(self, rule_id: str, **fields: Any) -> FieldMapping:
        unknown = set(fields) - self._FIELD_MAPPING_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update field mapping fields: {sorted(unknown)}"
            )
        with self._session() as session:
            row = session.get(FieldMappingRow, rule_id)
            if row is None:
                raise ValidationError(f"Field mapping {rule_id} not found")
            for key, value in fields.items():
                if key == "default_value":
                    value = to_json_value(value)
                setattr(row, key, _enum_value(value))
            session.flush()
            return _field_mapping_from_row(row)

    def delete_field_mapping(self, rule_id: str) -> bool:
        with self._session() as session:
            row = session.get(FieldMappingRow, rule_id)
            if row is None:
                return False
            session.delete(row)
            return True

    def seed_default_field_mappings(self) -> int:
        """Insert the default rules that are missing; return how many."""
        with self._session() as session:
            existing = set(session.scalars(select(FieldMappingRow.id)))
            added = 0
            for spec in DEFAULT_FIELD_MAPPINGS:
                if spec["id"] in existing:
                    continue
                rule = FieldMapping(**spec)
                session.add(
                    FieldMappingRow(
                        id=rule.id,
                        source_field=rule.source_field,
                        target_field=rule.target_field,
                        direction=rule.direction.value,
                        transform=_enum_value(rule.transform),
                        is_custom_field=rule.is_custom_field,
                        remote_field_id=rule.remote_field_id,
                        default_value=rule.default_value,
                        required=rule.required,
                        active=rule.active,
                    )
                )
                added += 1
        if added:
            logger.info("Seeded %d default field mappings", added)
        return added
