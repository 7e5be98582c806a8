"""Three-way conflict detection and resolution.

``ConflictResolver`` compares base, local, and remote values field by
field, persists a ``SyncConflict`` for every field that both sides changed
differently, and resolves conflicts with one of four strategies:

- ``keep_local``: take the local value.
- ``keep_remote``: take the remote value.
- ``merge``: type-directed merge (see ``merger.merge_values``).
- ``manual``: take a caller-supplied value.

Resolution never re-runs a sync; the caller applies the resolved value
with a new explicit sync.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Iterable

from tracker_sync.errors import ValidationError
from tracker_sync.sync.merger import merge_values, values_equal
from tracker_sync.sync.models import (
    ConflictStatus,
    ConflictType,
    FieldDiff,
    ResolutionStrategy,
    ResolveConflictRequest,
    ResolveOutcome,
    SyncConflict,
)
from tracker_sync.sync.store import SyncStore, new_id, utcnow

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Detect, persist, and resolve field conflicts.

    Args:
        store: Store holding conflicts and mappings.
    """

    def __init__(self, store: SyncStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    @staticmethod
    def classify(field: str, base: Any, local: Any, remote: Any) -> ConflictType:
        if field.rsplit(".", 1)[-1] == "status":
            return ConflictType.STATUS_MISMATCH
        if local is None or remote is None:
            return ConflictType.DELETION
        return ConflictType.CONCURRENT_MODIFICATION

    def detect_conflicts(
        self,
        base: dict[str, Any],
        local: dict[str, Any],
        remote: dict[str, Any],
        fields: Iterable[str],
        local_base: dict[str, Any] | None = None,
        remote_base: dict[str, Any] | None = None,
    ) -> list[FieldDiff]:
        """Three-way diff of *fields*.

        Returns one ``FieldDiff`` per field.  A field conflicts only when
        both sides changed relative to base and to different values.

        *local_base* and *remote_base* default to *base*; each side is
        compared with its own last-synced values.
        """
        if local_base is None:
            local_base = base
        if remote_base is None:
            remote_base = base
        diffs: list[FieldDiff] = []
        for field in fields:
            base_value = base.get(field)
            local_value = local.get(field)
            remote_value = remote.get(field)

            local_changed = not values_equal(local_base.get(field), local_value)
            remote_changed = not values_equal(remote_base.get(field), remote_value)
            has_conflict = (
                local_changed
                and remote_changed
                and not values_equal(local_value, remote_value)
            )

            if remote_changed and not local_changed:
                accepted = remote_value
            else:
                accepted = local_value

            diffs.append(
                FieldDiff(
                    field=field,
                    base_value=base_value,
                    local_value=local_value,
                    remote_value=remote_value,
                    local_changed=local_changed,
                    remote_changed=remote_changed,
                    has_conflict=has_conflict,
                    conflict_type=(
                        self.classify(field, base_value, local_value, remote_value)
                        if has_conflict
                        else None
                    ),
                    accepted_value=accepted,
                )
            )
        return diffs

    def create_conflicts(
        self,
        mapping_id: str,
        local_id: str,
        remote_key: str,
        diffs: Iterable[FieldDiff],
        job_id: str | None = None,
    ) -> list[SyncConflict]:
        """Persist a pending conflict for each conflicting diff.

        The mapping's ``conflict_count`` grows by the number created.
        """
        created: list[SyncConflict] = []
        for diff in diffs:
            if not diff.has_conflict:
                continue
            conflict = SyncConflict(
                id=new_id(),
                job_id=job_id,
                mapping_id=mapping_id,
                local_id=local_id,
                remote_key=remote_key,
                field=diff.field,
                conflict_type=diff.conflict_type
                or ConflictType.CONCURRENT_MODIFICATION,
                base_value=diff.base_value,
                local_value=diff.local_value,
                remote_value=diff.remote_value,
                created_at=utcnow(),
            )
            created.append(self._store.insert_conflict(conflict))
            logger.info(
                "Conflict on %s for %s <-> %s",
                diff.field,
                local_id,
                remote_key,
                extra={"conflict_id": conflict.id, "mapping_id": mapping_id},
            )

        if created:
            self._store.increment_conflict_count(mapping_id, len(created))
        return created

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @staticmethod
    def resolved_value_for(
        conflict: SyncConflict,
        strategy: ResolutionStrategy,
        manual_value: Any = None,
    ) -> Any:
        """Compute the value *strategy* picks for *conflict*."""
        match strategy:
            case ResolutionStrategy.KEEP_LOCAL:
                return conflict.local_value
            case ResolutionStrategy.KEEP_REMOTE:
                return conflict.remote_value
            case ResolutionStrategy.MERGE:
                return merge_values(
                    conflict.base_value,
                    conflict.local_value,
                    conflict.remote_value,
                    conflict.field,
                )
            case ResolutionStrategy.MANUAL:
                return manual_value
        raise ValidationError(f"Unknown resolution strategy: {strategy!r}")

    def resolve_conflict(
        self, request: ResolveConflictRequest, resolved_by: str
    ) -> ResolveOutcome:
        """Resolve one pending conflict, optionally with its lookalikes.

        Raises:
            ValidationError: If the conflict is missing or not pending, or a
                manual resolution has no value.
        """
        if (
            request.strategy == ResolutionStrategy.MANUAL
            and not request.has_resolved_value
        ):
            raise ValidationError("Manual resolution requires resolved_value")

        conflict = self._store.get_conflict(request.conflict_id)
        if conflict is None:
            raise ValidationError(f"Conflict {request.conflict_id} not found")
        if conflict.status != ConflictStatus.PENDING:
            raise ValidationError(
                f"Conflict {conflict.id} is already {conflict.status.value}"
            )

        resolved = self._apply(
            conflict, request.strategy, request.resolved_value, resolved_by
        )

        similar = 0
        if request.apply_to_similar:
            similar = self._resolve_similar(resolved, request, resolved_by)

        return ResolveOutcome(conflict=resolved, similar_resolved=similar)

    def _apply(
        self,
        conflict: SyncConflict,
        strategy: ResolutionStrategy,
        manual_value: Any,
        resolved_by: str,
    ) -> SyncConflict:
        value = self.resolved_value_for(conflict, strategy, manual_value)
        updated = self._store.update_conflict(
            conflict.id,
            expected_status=ConflictStatus.PENDING,
            status=ConflictStatus.RESOLVED,
            resolution_strategy=strategy,
            resolved_value=value,
            resolved_by=resolved_by,
            resolved_at=utcnow(),
        )
        logger.info(
            "Resolved conflict on %s with %s",
            conflict.field,
            strategy.value,
            extra={"conflict_id": conflict.id, "mapping_id": conflict.mapping_id},
        )
        return updated

    def _resolve_similar(
        self,
        resolved: SyncConflict,
        request: ResolveConflictRequest,
        resolved_by: str,
    ) -> int:
        candidates = self._store.list_conflicts(
            status=ConflictStatus.PENDING,
            field=resolved.field,
            conflict_type=resolved.conflict_type,
        )
        count = 0
        for candidate in candidates:
            if candidate.id == resolved.id:
                continue
            try:
                self._apply(
                    candidate, request.strategy, request.resolved_value, resolved_by
                )
                count += 1
            except Exception as exc:
                logger.warning(
                    "Could not resolve similar conflict %s: %s",
                    candidate.id,
                    exc,
                    extra={"conflict_id": candidate.id},
                )
        return count

    def ignore_conflict(self, conflict_id: str, ignored_by: str) -> SyncConflict:
        """Mark a pending conflict as ignored.

        Raises:
            ValidationError: If the conflict is missing or not pending.
        """
        conflict = self._store.get_conflict(conflict_id)
        if conflict is None:
            raise ValidationError(f"Conflict {conflict_id} not found")
        if conflict.status != ConflictStatus.PENDING:
            raise ValidationError(
                f"Conflict {conflict_id} is already {conflict.status.value}"
            )
        return self._store.update_conflict(
            conflict_id,
            expected_status=ConflictStatus.PENDING,
            status=ConflictStatus.IGNORED,
            resolved_by=ignored_by,
            resolved_at=utcnow(),
        )

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------

    def get_conflict(self, conflict_id: str) -> SyncConflict | None:
        return self._store.get_conflict(conflict_id)

    def get_conflicts_by_mapping(
        self, mapping_id: str, status: ConflictStatus | None = None
    ) -> list[SyncConflict]:
        return self._store.list_conflicts(mapping_id=mapping_id, status=status)

    def get_conflicts_by_local_id(
        self, local_id: str, status: ConflictStatus | None = None
    ) -> list[SyncConflict]:
        return self._store.list_conflicts(local_id=local_id, status=status)

    def get_conflicts_by_job(self, job_id: str) -> list[SyncConflict]:
        return self._store.list_conflicts(job_id=job_id)

    def get_pending_conflicts_count(self, local_id: str | None = None) -> int:
        return self._store.count_conflicts(ConflictStatus.PENDING, local_id)

    def cleanup_old_conflicts(self, days_old: int = 30) -> int:
        """Delete resolved and ignored conflicts older than *days_old*."""
        cutoff = utcnow() - timedelta(days=days_old)
        deleted = self._store.delete_conflicts_resolved_before(cutoff)
        if deleted:
            logger.info("Cleaned up %d old conflicts", deleted)
        return deleted
