"""Tests for SyncService entry points and per-item sync."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tracker_sync.errors import JobConfigurationError, PersistenceError, ValidationError
from tracker_sync.sync.models import (
    BulkSyncRequest,
    ConflictStatus,
    ResolutionStrategy,
    ResolveConflictRequest,
    SyncDirection,
    SyncJobRequest,
    SyncJobStatus,
    SyncOperationType,
)
from tracker_sync.sync.store import utcnow

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _webhook(key: str = "PROJ-1") -> dict:
    return {
        "webhookEvent": "jira:issue_updated",
        "issueKey": key,
        "issueId": "10001",
        "timestamp": 1700000000,
    }


@pytest.fixture
def imported(service, remote, run_job):
    """A remote item imported once, so a mapping and base snapshot exist."""
    remote.add("PROJ-1", title="Old title", description="Narrative", status="To Do")
    result = service.import_from_remote("PROJ-1", actor="ann")
    run_job(result.job_id)
    return service.get_mapping_by_remote_key("PROJ-1")


def _diverge(documents, remote, local_title="Local title", remote_title="Remote title"):
    documents.docs["doc-1"]["title"] = local_title
    remote.items["PROJ-1"]["title"] = remote_title


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


class TestImport:
    """Remote -> local sync, including first-time document creation."""

    def test_creates_document_and_mapping(self, imported, documents) -> None:
        doc = documents.docs["doc-1"]
        assert doc["title"] == "Old title"
        assert doc["narrative"] == "Narrative"
        assert doc["status"] == "draft"
        assert doc["created_by"] == "ann"
        assert doc["budget"] == 0
        assert set(doc["timeline"]) == {"start_date", "target_date"}

        assert imported.local_id == "doc-1"
        assert imported.remote_internal_id == "10001"
        assert imported.base_snapshot["title"] == "Old title"

    def test_bulk_counts_item_failures(self, service, remote, run_job) -> None:
        keys = [f"PROJ-{n}" for n in range(1, 6)]
        for key in keys:
            remote.add(key, title=f"Item {key}", description="Why", status="To Do")
        remote.fail_keys.add("PROJ-3")

        response = service.bulk_import(BulkSyncRequest(remote_keys=keys), "ann")
        assert response.total_items == 5
        job = run_job(response.job_id)

        assert job.status is SyncJobStatus.COMPLETED
        assert (job.processed_items, job.failed_items) == (4, 1)
        assert job.progress == 100
        assert job.metadata["failed_ids"] == ["PROJ-3"]
        assert len(service.get_all_mappings()) == 4

    def test_missing_description_fails_item(
        self, service, remote, documents, run_job
    ) -> None:
        remote.add("PROJ-1", title="No body")
        job = run_job(service.import_from_remote("PROJ-1").job_id)
        assert job.failed_items == 1
        assert documents.docs == {}
        assert service.get_mapping_by_remote_key("PROJ-1") is None

    def test_missing_remote_item_fails_item(self, service, run_job) -> None:
        job = run_job(service.import_from_remote("PROJ-404").job_id)
        assert job.metadata["failed_ids"] == ["PROJ-404"]

    def test_remote_change_applied_when_local_unchanged(
        self, service, imported, remote, documents, run_job
    ) -> None:
        remote.items["PROJ-1"]["title"] = "Renamed"
        remote.items["PROJ-1"]["status"] = "Done"
        result = service.sync_mapping(imported.id, SyncDirection.REMOTE_TO_LOCAL)
        job = run_job(result.job_id)

        assert job.failed_items == 0
        assert documents.docs["doc-1"]["title"] == "Renamed"
        assert documents.docs["doc-1"]["status"] == "approved"
        mapping = service.get_mapping(imported.id)
        assert mapping.base_snapshot["title"] == "Renamed"
        assert mapping.conflict_count == 0

    def test_remote_timestamps_not_written_locally(
        self, service, imported, remote, documents, run_job
    ) -> None:
        remote.items["PROJ-1"]["updated"] = "2024-06-01T00:00:00+00:00"
        run_job(service.sync_mapping(imported.id, "remote_to_local").job_id)
        assert "updated_at" not in documents.docs["doc-1"]
        assert service.get_mapping(imported.id).last_modified_remote is not None


# ---------------------------------------------------------------------------
# Conflicts during sync
# ---------------------------------------------------------------------------


class TestConflicts:
    """Both sides changed the same field since the last sync."""

    def test_blocks_item_without_auto_resolve(
        self, service, imported, remote, documents, run_job
    ) -> None:
        _diverge(documents, remote)
        job = run_job(service.sync_mapping(imported.id, "remote_to_local").job_id)

        assert job.failed_items == 1
        [conflict_id] = job.metadata["conflict_ids"]
        [conflict] = service.get_conflicts(mapping_id=imported.id)
        assert conflict.id == conflict_id
        assert conflict.field == "title"
        assert conflict.job_id == job.id
        assert conflict.status is ConflictStatus.PENDING
        assert (conflict.base_value, conflict.local_value, conflict.remote_value) == (
            "Old title",
            "Local title",
            "Remote title",
        )
        # Nothing written, base unchanged.
        assert documents.docs["doc-1"]["title"] == "Local title"
        mapping = service.get_mapping(imported.id)
        assert mapping.base_snapshot["title"] == "Old title"
        assert mapping.conflict_count == 1

    def test_auto_resolve_defaults_to_remote_on_import(
        self, service, imported, remote, documents, run_job
    ) -> None:
        _diverge(documents, remote)
        result = service.sync_mapping(
            imported.id, "remote_to_local", auto_resolve_conflicts=True
        )
        job = run_job(result.job_id)

        assert job.failed_items == 0
        assert documents.docs["doc-1"]["title"] == "Remote title"
        [conflict] = service.get_conflicts(mapping_id=imported.id)
        assert conflict.status is ConflictStatus.RESOLVED
        assert conflict.resolution_strategy is ResolutionStrategy.KEEP_REMOTE
        assert conflict.resolved_by == "system"
        assert service.get_mapping(imported.id).base_snapshot["title"] == "Remote title"

    def test_auto_resolve_with_keep_local(
        self, service, imported, remote, documents, run_job
    ) -> None:
        _diverge(documents, remote)
        result = service.sync_mapping(
            imported.id,
            "remote_to_local",
            auto_resolve_conflicts=True,
            conflict_strategy=ResolutionStrategy.KEEP_LOCAL,
        )
        run_job(result.job_id)
        assert documents.docs["doc-1"]["title"] == "Local title"

    def test_manual_strategy_cannot_auto_resolve(
        self, service, imported, remote, documents, run_job
    ) -> None:
        _diverge(documents, remote)
        result = service.sync_mapping(
            imported.id,
            "remote_to_local",
            auto_resolve_conflicts=True,
            conflict_strategy="manual",
        )
        job = run_job(result.job_id)
        assert job.failed_items == 1
        assert service.get_conflicts(status=ConflictStatus.PENDING)

    def test_manual_resolution_after_block(
        self, service, imported, remote, documents, run_job
    ) -> None:
        _diverge(documents, remote)
        run_job(service.sync_mapping(imported.id, "remote_to_local").job_id)
        [conflict] = service.get_conflicts(local_id="doc-1")

        outcome = service.resolve_conflict(
            ResolveConflictRequest(
                conflict_id=conflict.id, strategy="manual", resolved_value="Agreed"
            ),
            "ann",
        )
        assert outcome.conflict.resolved_value == "Agreed"
        assert outcome.conflict.resolved_by == "ann"


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


class TestExport:
    """Local -> remote sync."""

    @pytest.fixture
    def doc(self, documents):
        return documents.add(
            "doc-9",
            title="Checkout",
            narrative="Too slow",
            status="under_review",
            created_by="u-1",
        )

    def test_unmapped_creates_remote_item(
        self, service, doc, remote, run_job
    ) -> None:
        job = run_job(service.export_to_remote("doc-9", project_key="PROJ").job_id)

        assert job.failed_items == 0
        item = remote.items["PROJ-1"]
        assert item["title"] == "Checkout"
        assert item["status"] == "In Review"
        assert item["description"] == "Too slow"
        assert item["reporter"] == "u-1"
        mapping = service.get_mapping_by_local_id("doc-9")
        assert mapping.remote_key == "PROJ-1"
        assert mapping.base_snapshot == {
            "title": "Checkout",
            "narrative": "Too slow",
            "status": "under_review",
        }

    def test_unmapped_without_project_key_fails_item(
        self, service, doc, remote, run_job
    ) -> None:
        job = run_job(service.export_to_remote("doc-9").job_id)
        assert job.metadata["failed_ids"] == ["doc-9"]
        assert remote.items == {}

    def test_existing_mapping_updates_remote(
        self, service, doc, remote, documents, run_job
    ) -> None:
        run_job(service.export_to_remote("doc-9", project_key="PROJ").job_id)
        documents.docs["doc-9"]["title"] = "Checkout v2"

        job = run_job(service.export_to_remote("doc-9").job_id)

        assert job.failed_items == 0
        key, fields = remote.updates[-1]
        assert key == "PROJ-1"
        assert fields["title"] == "Checkout v2"
        assert remote.items["PROJ-1"]["title"] == "Checkout v2"
        mapping = service.get_mapping_by_local_id("doc-9")
        assert mapping.base_snapshot["title"] == "Checkout v2"

    def test_export_conflict_keeps_local_when_auto_resolving(
        self, service, doc, remote, documents, run_job
    ) -> None:
        run_job(service.export_to_remote("doc-9", project_key="PROJ").job_id)
        documents.docs["doc-9"]["title"] = "Local edit"
        remote.items["PROJ-1"]["title"] = "Remote edit"
        mapping = service.get_mapping_by_local_id("doc-9")

        result = service.sync_mapping(
            mapping.id, SyncDirection.LOCAL_TO_REMOTE, auto_resolve_conflicts=True
        )
        run_job(result.job_id)

        assert remote.items["PROJ-1"]["title"] == "Local edit"
        [conflict] = service.get_conflicts(mapping_id=mapping.id)
        assert conflict.resolution_strategy is ResolutionStrategy.KEEP_LOCAL

    def test_remote_update_failure_counted(
        self, service, doc, remote, documents, run_job
    ) -> None:
        run_job(service.export_to_remote("doc-9", project_key="PROJ").job_id)
        documents.docs["doc-9"]["title"] = "Changed"
        remote.fail_keys.add("PROJ-1")
        job = run_job(service.export_to_remote("doc-9").job_id)
        assert job.failed_items == 1
        assert job.status is SyncJobStatus.COMPLETED


class TestStatusRoundTrip:
    """Remote statuses that share one local status survive an export."""

    @pytest.fixture
    def in_progress(self, service, remote, run_job):
        remote.add("PROJ-1", title="T", description="N", status="In Progress")
        run_job(service.import_from_remote("PROJ-1").job_id)
        return service.get_mapping_by_remote_key("PROJ-1")

    def test_local_status_change_exported_without_conflict(
        self, service, in_progress, remote, documents, run_job
    ) -> None:
        assert documents.docs["doc-1"]["status"] == "under_review"
        documents.docs["doc-1"]["status"] = "approved"

        job = run_job(service.export_to_remote("doc-1").job_id)

        assert job.failed_items == 0
        assert service.get_conflicts() == []
        assert remote.items["PROJ-1"]["status"] == "Done"
        mapping = service.get_mapping(in_progress.id)
        assert mapping.remote_snapshot["status"] == "Done"

    def test_unchanged_export_keeps_remote_status(
        self, service, in_progress, remote, run_job
    ) -> None:
        job = run_job(service.export_to_remote("doc-1").job_id)

        assert job.failed_items == 0
        assert remote.items["PROJ-1"]["status"] == "In Progress"
        _, fields = remote.updates[-1]
        assert "status" not in fields

    def test_remote_status_change_imported_without_conflict(
        self, service, in_progress, remote, documents, run_job
    ) -> None:
        remote.items["PROJ-1"]["status"] = "In Review"
        documents.docs["doc-1"]["status"] = "approved"

        job = run_job(service.import_from_remote("PROJ-1").job_id)

        assert job.failed_items == 0
        assert service.get_conflicts() == []
        assert documents.docs["doc-1"]["status"] == "approved"


class TestDisabledMapping:
    """Items whose mapping has sync switched off are never written."""

    @pytest.fixture
    def disabled(self, service, imported):
        return service.set_mapping_flags(imported.id, sync_enabled=False)

    def test_import_skips_item(
        self, service, disabled, remote, documents, run_job
    ) -> None:
        remote.items["PROJ-1"]["title"] = "Renamed"
        response = service.bulk_import(BulkSyncRequest(remote_keys=["PROJ-1"]), "ann")

        job = run_job(response.job_id)

        assert job.failed_items == 1
        assert job.metadata["failed_ids"] == ["PROJ-1"]
        assert documents.docs["doc-1"]["title"] == "Old title"
        assert service.get_mapping(disabled.id).base_snapshot["title"] == "Old title"

    def test_export_skips_item(
        self, service, disabled, remote, documents, run_job
    ) -> None:
        documents.docs["doc-1"]["title"] = "Local title"

        job = run_job(service.export_to_remote("doc-1").job_id)

        assert job.failed_items == 1
        assert job.metadata["failed_ids"] == ["doc-1"]
        assert remote.items["PROJ-1"]["title"] == "Old title"
        assert remote.updates == []


class TestUnsavedMapping:
    """An item created on the target side is reported when its mapping is lost."""

    @pytest.fixture
    def broken_store(self, service, monkeypatch):
        def _fail(**kwargs):
            raise PersistenceError("database is locked")

        monkeypatch.setattr(service.store, "create_mapping", _fail)

    def test_import_records_created_document(
        self, service, remote, documents, broken_store, run_job
    ) -> None:
        remote.add("PROJ-1", title="T", description="N", status="To Do")

        job = run_job(service.import_from_remote("PROJ-1").job_id)

        assert job.failed_items == 1
        assert "doc-1" in documents.docs
        assert job.metadata["unmapped_created"] == [
            {"item_id": "PROJ-1", "created_id": "doc-1"}
        ]

    def test_export_records_created_item(
        self, service, remote, documents, broken_store, run_job
    ) -> None:
        documents.add("doc-9", title="Checkout", narrative="Too slow", status="draft")

        job = run_job(service.export_to_remote("doc-9", project_key="PROJ").job_id)

        assert job.failed_items == 1
        assert "PROJ-1" in remote.items
        assert job.metadata["unmapped_created"] == [
            {"item_id": "doc-9", "created_id": "PROJ-1"}
        ]


# ---------------------------------------------------------------------------
# Entry point validation
# ---------------------------------------------------------------------------


class TestEntryPoints:
    def test_bulk_requires_ids(self, service) -> None:
        with pytest.raises(ValidationError):
            service.bulk_import(BulkSyncRequest(project_key="PROJ"), "ann")
        with pytest.raises(ValidationError):
            service.bulk_export(BulkSyncRequest(project_key="PROJ"), "ann")
        assert service.get_jobs() == []

    def test_bulk_export_carries_strategy(self, service) -> None:
        response = service.bulk_export(
            BulkSyncRequest(
                local_ids=["doc-1", "doc-2"],
                project_key="PROJ",
                auto_resolve_conflicts=True,
                conflict_strategy="merge",
            ),
            "ann",
        )
        job = service.get_job(response.job_id)
        assert job.operation_type is SyncOperationType.BULK_EXPORT
        assert job.total_items == 2
        assert job.auto_resolve_conflicts
        assert job.conflict_strategy is ResolutionStrategy.MERGE

    def test_empty_single_ids_rejected(self, service) -> None:
        with pytest.raises(ValidationError):
            service.import_from_remote("")
        with pytest.raises(ValidationError):
            service.export_to_remote("")

    def test_sync_mapping_missing(self, service) -> None:
        with pytest.raises(ValidationError, match="not found"):
            service.sync_mapping("nope", SyncDirection.REMOTE_TO_LOCAL)

    def test_sync_mapping_disabled(self, service, imported) -> None:
        service.set_mapping_flags(imported.id, sync_enabled=False)
        with pytest.raises(ValidationError, match="disabled"):
            service.sync_mapping(imported.id, SyncDirection.REMOTE_TO_LOCAL)

    def test_bidirectional_job_rejected(self, service) -> None:
        job = service.queue.create_job(
            SyncJobRequest(
                direction=SyncDirection.BIDIRECTIONAL,
                operation_type=SyncOperationType.UPDATE,
                local_ids=["doc-1"],
            ),
            "ann",
        )
        started = service.queue.start_job(job.id)
        with pytest.raises(JobConfigurationError):
            service.process_job(started)


class TestWebhook:
    """Webhook-triggered imports."""

    def test_unmapped_item_ignored(self, service) -> None:
        result = service.handle_webhook(_webhook("PROJ-77"))
        assert result.success is False
        assert result.job_id is None
        assert service.get_jobs() == []

    def test_auto_sync_off_ignored(self, service, imported) -> None:
        before = len(service.get_jobs())
        result = service.handle_webhook(_webhook())
        assert not result.success
        assert len(service.get_jobs()) == before

    def test_auto_sync_mapping_queues_job(self, service, imported) -> None:
        service.set_mapping_flags(imported.id, auto_sync=True)
        result = service.handle_webhook(_webhook())
        assert result.success
        job = service.get_job(result.job_id)
        assert job.operation_type is SyncOperationType.WEBHOOK_SYNC
        assert job.direction is SyncDirection.REMOTE_TO_LOCAL
        assert job.local_ids == ["doc-1"]
        assert job.created_by == "webhook"

    def test_invalid_payload(self, service) -> None:
        with pytest.raises(ValidationError, match="Invalid webhook payload"):
            service.handle_webhook({"issueKey": "PROJ-1"})


# ---------------------------------------------------------------------------
# Housekeeping
# ---------------------------------------------------------------------------


class TestHousekeeping:
    def test_resource_keys_cover_both_sides(self, service, imported) -> None:
        job = service.get_job(
            service.import_from_remote("PROJ-1").job_id
        )
        keys = service.resource_keys(job)
        assert {"remote:PROJ-1", "local:doc-1", f"mapping:{imported.id}"} <= keys

    def test_cleanup(self, service, store, imported) -> None:
        [job] = service.get_jobs()
        store.update_job(job.id, completed_at=utcnow() - timedelta(days=60))
        assert service.cleanup() == {"jobs": 1, "conflicts": 0}
        assert service.get_jobs() == []
        assert service.get_job_history(job.id) == []

    def test_stats(self, service, imported) -> None:
        service.import_from_remote("PROJ-1")
        stats = service.get_stats()
        assert (stats.completed, stats.pending, stats.total) == (1, 1, 2)


# ---------------------------------------------------------------------------
# Through the worker pool
# ---------------------------------------------------------------------------


class TestQueued:
    async def test_bulk_import_end_to_end(self, service, remote, documents) -> None:
        for key in ("PROJ-1", "PROJ-2"):
            remote.add(key, title=key, description="Body", status="To Do")
        await service.start()
        try:
            response = service.bulk_import(
                BulkSyncRequest(remote_keys=["PROJ-1", "PROJ-2"]), "ann"
            )
            await service.queue.join()
        finally:
            await service.stop()

        job = service.get_job(response.job_id)
        assert job.status is SyncJobStatus.COMPLETED
        assert job.processed_items == 2
        assert len(documents.docs) == 2
        actions = [h.action for h in service.get_job_history(job.id)]
        assert actions == ["created", "started", "completed"]

    async def test_bidirectional_job_fails_without_retry(self, service) -> None:
        await service.start()
        try:
            job = service.queue.create_job(
                SyncJobRequest(
                    direction=SyncDirection.BIDIRECTIONAL,
                    operation_type=SyncOperationType.UPDATE,
                    local_ids=["doc-1"],
                ),
                "ann",
            )
            await service.queue.join()
        finally:
            await service.stop()

        final = service.get_job(job.id)
        assert final.status is SyncJobStatus.FAILED
        assert final.retry_count == 0
        assert "Bidirectional" in final.error
