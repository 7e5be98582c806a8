"""Injected collaborator interfaces.

The engine never talks to the issue tracker or to the document database
directly.  Callers hand it two objects satisfying the protocols below; both
exchange plain dicts in the canonical shapes described by ``RemoteItem``
and ``LocalDocument``.

Timeouts, authentication, and transport retries are the collaborator's
business.  Any exception they raise is counted as a failure of the item
being synced.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel, Field


class RemoteItem(BaseModel):
    """Canonical shape of an issue-tracker item (an epic).

    Attributes:
        key: Human key such as ``PROJ-42``.
        id: Tracker-internal id.
        title: Item summary.
        description: Free-text body.
        status: Workflow status name (``To Do``, ``Done``...).
        name: Epic name, when the tracker has one.
        labels: Label list.
        custom_fields: Custom field values keyed by field id.
        created: ISO 8601 creation timestamp.
        updated: ISO 8601 last-modification timestamp.
    """

    key: str
    id: str
    title: str | None = None
    description: str | None = None
    status: str | None = None
    name: str | None = None
    labels: list[str] = Field(default_factory=list)
    custom_fields: dict[str, Any] = Field(default_factory=dict)
    created: str | None = None
    updated: str | None = None

    model_config = {"extra": "allow"}


class LocalDocument(BaseModel):
    """Canonical shape of a locally-owned business document."""

    id: str
    title: str | None = None
    narrative: str | None = None
    impact: str | None = None
    success_criteria: list[str] = Field(default_factory=list)
    timeline: dict[str, Any] | None = None
    budget: float | None = None
    stakeholders: list[dict[str, Any]] = Field(default_factory=list)
    status: str | None = None
    version: int = 1
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "allow"}


class RemoteItemClient(Protocol):
    """Full-snapshot access to items in the issue tracker."""

    def fetch_item(self, key: str) -> dict[str, Any] | None:
        """Return the item with *key*, or ``None`` if it does not exist."""
        ...  # pragma: no cover

    def create_item(
        self, project_key: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        """Create an item in *project_key* and return it."""
        ...  # pragma: no cover

    def update_item(
        self, key: str, fields: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Apply *fields* to item *key*; may return the updated item."""
        ...  # pragma: no cover


class LocalDocumentStore(Protocol):
    """Read/write access to local documents."""

    def get_document(self, document_id: str) -> dict[str, Any] | None:
        """Return the document, or ``None`` if it does not exist."""
        ...  # pragma: no cover

    def create_document(
        self, fields: dict[str, Any], actor: str
    ) -> dict[str, Any]:
        """Create a document and return it (including its new ``id``)."""
        ...  # pragma: no cover

    def update_document(
        self, document_id: str, fields: dict[str, Any], actor: str
    ) -> dict[str, Any]:
        """Apply *fields* to the document and return the result."""
        ...  # pragma: no cover
