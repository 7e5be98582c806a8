"""Shared pytest fixtures for tracker-sync tests."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from tracker_sync.sync.engine import SyncService
from tracker_sync.sync.mapper import FieldMapper
from tracker_sync.sync.queue import SyncJobQueue
from tracker_sync.sync.store import SyncStore


class FakeRemoteClient:
    """In-memory remote item client.

    Keys listed in ``fail_keys`` raise on every call.
    """

    def __init__(self) -> None:
        self.items: dict[str, dict[str, Any]] = {}
        self.fail_keys: set[str] = set()
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self._next_id = 10000

    def add(self, key: str, **fields: Any) -> dict[str, Any]:
        self._next_id += 1
        item = {"key": key, "id": str(self._next_id), **fields}
        self.items[key] = item
        return item

    def fetch_item(self, key: str) -> dict[str, Any] | None:
        if key in self.fail_keys:
            raise TimeoutError(f"timed out fetching {key}")
        item = self.items.get(key)
        return copy.deepcopy(item) if item else None

    def create_item(self, project_key: str, fields: dict[str, Any]) -> dict[str, Any]:
        key = f"{project_key}-{len(self.items) + 1}"
        return copy.deepcopy(self.add(key, **fields))

    def update_item(self, key: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        if key in self.fail_keys:
            raise ConnectionError(f"cannot update {key}")
        self.updates.append((key, dict(fields)))
        self.items[key].update(copy.deepcopy(fields))
        return copy.deepcopy(self.items[key])


class FakeDocumentStore:
    """In-memory local document store.

    Ids listed in ``fail_ids`` raise on every call.
    """

    def __init__(self) -> None:
        self.docs: dict[str, dict[str, Any]] = {}
        self.fail_ids: set[str] = set()
        self.created: list[dict[str, Any]] = []

    def add(self, doc_id: str, **fields: Any) -> dict[str, Any]:
        doc = {"id": doc_id, "version": 1, **fields}
        self.docs[doc_id] = doc
        return doc

    def get_document(self, document_id: str) -> dict[str, Any] | None:
        if document_id in self.fail_ids:
            raise OSError(f"cannot read {document_id}")
        doc = self.docs.get(document_id)
        return copy.deepcopy(doc) if doc else None

    def create_document(self, fields: dict[str, Any], actor: str) -> dict[str, Any]:
        doc_id = f"doc-{len(self.docs) + 1}"
        doc = self.add(doc_id, created_by=actor, **copy.deepcopy(fields))
        self.created.append(doc)
        return copy.deepcopy(doc)

    def update_document(
        self, document_id: str, fields: dict[str, Any], actor: str
    ) -> dict[str, Any]:
        doc = self.docs[document_id]
        doc.update(copy.deepcopy(fields))
        doc["version"] = doc.get("version", 1) + 1
        return copy.deepcopy(doc)


@pytest.fixture
def store():
    """In-memory sync store with tables and default rules."""
    sync_store = SyncStore("sqlite://")
    sync_store.create_all()
    sync_store.seed_default_field_mappings()
    yield sync_store
    sync_store.dispose()


@pytest.fixture
def remote():
    return FakeRemoteClient()


@pytest.fixture
def documents():
    return FakeDocumentStore()


@pytest.fixture
def service(store, remote, documents):
    """SyncService whose queue retries immediately."""
    return SyncService(
        store,
        remote,
        documents,
        mapper=FieldMapper(store, cache_ttl=0),
        queue=SyncJobQueue(store, max_concurrent=2, retry_delays=(0.0,)),
    )


@pytest.fixture
def run_job(service):
    """Dispatch a queued job synchronously, the way a worker would."""

    def _run(job_id: str):
        job = service.queue.start_job(job_id)
        assert job is not None
        return service.process_job(job)

    return _run
