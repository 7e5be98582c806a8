"""Field mapping between local documents and remote items.

``FieldMapper`` applies the declarative rules kept in the store to turn a
local document into remote item fields and back.

A rule names one field on each side.  For ``local_to_remote`` and
``bidirectional`` rules ``source_field`` is the local path and
``target_field`` the remote path; ``remote_to_local`` rules name the
remote path first.  Bidirectional rules are therefore read in reverse when
mapping remote to local.

Mapping is best-effort: a failing transform is logged and the raw value
is kept.
"""

from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from datetime import datetime
from typing import Any, Callable

from tracker_sync.errors import ValidationError
from tracker_sync.sync.merger import get_field_value, set_field_value
from tracker_sync.sync.models import FieldMapping, SyncDirection
from tracker_sync.sync.store import SyncStore
from tracker_sync.sync.transforms import (
    LOCAL_TO_REMOTE_STATUS,
    REMOTE_TO_LOCAL_STATUS,
    apply_transform,
    validate_transform,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300.0
LOCAL_TIMESTAMP_FIELDS = ("created_at", "updated_at")

_PROBLEM_STATEMENT_RE = re.compile(
    r"h2\.\s*Problem Statement\s*([\s\S]*?)(?:\nh2\.|\n---|$)", re.IGNORECASE
)


# ---------------------------------------------------------------------------
# Description rendering
# ---------------------------------------------------------------------------


def _format_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value).date().isoformat()
        except ValueError:
            return value
    return str(value)


def format_document_description(doc: dict[str, Any]) -> str:
    """Render a local document as a tracker description.

    Sections use tracker heading markup (``h2.``) so that
    ``parse_problem_statement`` can find the narrative again.
    """
    sections: list[str] = ["h2. Problem Statement", doc.get("narrative") or ""]

    if doc.get("impact"):
        sections.append("\nh2. Business Impact")
        sections.append(doc["impact"])

    criteria = doc.get("success_criteria") or []
    if criteria:
        sections.append("\nh2. Success Criteria")
        for idx, criterion in enumerate(criteria, start=1):
            sections.append(f"{idx}. {criterion}")

    timeline = doc.get("timeline")
    if timeline:
        sections.append("\nh2. Timeline")
        sections.append(f"Start Date: {_format_date(timeline.get('start_date'))}")
        sections.append(
            f"Target Date: {_format_date(timeline.get('target_date'))}"
        )

    if doc.get("budget"):
        sections.append("\nh2. Budget")
        sections.append(f"${doc['budget']:,.2f}")

    stakeholders = doc.get("stakeholders") or []
    if stakeholders:
        sections.append("\nh2. Stakeholders")
        for person in stakeholders:
            sections.append(
                f"* {person.get('name', '')} ({person.get('role', '')}) - {person.get('email', '')}"
            )

    sections.append("\n---")
    sections.append(f"_Synced from local document [{doc.get('id', '')}]_")
    return "\n".join(sections)


def parse_problem_statement(description: str) -> str:
    """Extract the narrative from a tracker description.

    Returns the "Problem Statement" section when present, otherwise the
    first paragraph.
    """
    match = _PROBLEM_STATEMENT_RE.search(description)
    if match and match.group(1):
        return match.group(1).strip()
    return description.split("\n\n")[0].strip()


def parse_timestamp(value: Any) -> Any:
    """Parse an ISO 8601 string; other values and bad strings pass through."""
    if not isinstance(value, str):
        return value
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable timestamp '%s' kept as text", value)
        return value


def _remote_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# ---------------------------------------------------------------------------
# FieldMapper
# ---------------------------------------------------------------------------


class FieldMapper:
    """Apply field-mapping rules with a per-direction TTL cache.

    Args:
        store: Store holding the rules.
        cache_ttl: Seconds a rule list stays cached.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        store: SyncStore,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._cache_ttl = cache_ttl
        self._clock = clock
        self._cache: dict[SyncDirection, tuple[float, list[FieldMapping]]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Rule access
    # ------------------------------------------------------------------

    def get_field_mappings(self, direction: SyncDirection) -> list[FieldMapping]:
        """Active rules for *direction* plus bidirectional rules (cached)."""
        now = self._clock()
        with self._lock:
            cached = self._cache.get(direction)
            if cached is not None and cached[0] > now:
                return cached[1]

        rules = self._store.list_field_mappings(direction, active_only=True)
        with self._lock:
            self._cache[direction] = (now + self._cache_ttl, rules)
        return rules

    def get_all_field_mappings(self) -> list[FieldMapping]:
        return self._store.list_field_mappings()

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def create_field_mapping(
        self,
        source_field: str,
        target_field: str,
        direction: SyncDirection | str,
        transform: str | None = None,
        is_custom_field: bool = False,
        remote_field_id: str | None = None,
        default_value: Any = None,
        required: bool = False,
        active: bool = True,
    ) -> FieldMapping:
        """Create a rule and invalidate the cache.

        Raises:
            ValidationError: On an empty field path, an unknown direction,
                or an unknown transform name.
        """
        if not source_field or not target_field:
            raise ValidationError("source_field and target_field are required")
        rule = FieldMapping(
            id=str(uuid.uuid4()),
            source_field=source_field,
            target_field=target_field,
            direction=self._check_direction(direction),
            transform=self._check_transform(transform),
            is_custom_field=is_custom_field,
            remote_field_id=remote_field_id,
            default_value=default_value,
            required=required,
            active=active,
        )
        created = self._store.insert_field_mapping(rule)
        self.clear_cache()
        logger.info(
            "Created field mapping %s -> %s (%s)",
            source_field,
            target_field,
            rule.direction.value,
        )
        return created

    def update_field_mapping(self, rule_id: str, **updates: Any) -> FieldMapping:
        """Update a rule and invalidate the cache.

        Raises:
            ValidationError: If the rule is missing or a value is invalid.
        """
        if "transform" in updates:
            updates["transform"] = self._check_transform(updates["transform"])
        if "direction" in updates:
            updates["direction"] = self._check_direction(updates["direction"])
        updated = self._store.update_field_mapping(rule_id, **updates)
        self.clear_cache()
        return updated

    def delete_field_mapping(self, rule_id: str) -> bool:
        deleted = self._store.delete_field_mapping(rule_id)
        self.clear_cache()
        return deleted

    @staticmethod
    def _check_transform(name: Any):
        try:
            return validate_transform(name)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    @staticmethod
    def _check_direction(direction: Any) -> SyncDirection:
        try:
            return SyncDirection(direction)
        except ValueError:
            raise ValidationError(f"Unknown direction: '{direction}'") from None

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _sides(rule: FieldMapping) -> tuple[str, str]:
        """Return ``(local_path, remote_path)`` for a rule."""
        if rule.direction == SyncDirection.REMOTE_TO_LOCAL:
            return rule.target_field, rule.source_field
        return rule.source_field, rule.target_field

    def _transform(self, rule: FieldMapping, value: Any, to_remote: bool) -> Any:
        if rule.transform is None:
            return value
        try:
            return apply_transform(rule.transform, value, to_remote)
        except Exception as exc:
            logger.warning(
                "Transform %s failed for %s: %s",
                rule.transform.value,
                rule.source_field,
                exc,
            )
            return value

    def map_local_to_remote(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Project a local document onto remote item fields."""
        result: dict[str, Any] = {}
        for rule in self.get_field_mappings(SyncDirection.LOCAL_TO_REMOTE):
            local_path, remote_path = self._sides(rule)
            value = get_field_value(doc, local_path)
            if value is None:
                if rule.default_value is None:
                    continue
                value = rule.default_value
            value = _remote_value(self._transform(rule, value, to_remote=True))
            if rule.is_custom_field:
                custom = result.setdefault("custom_fields", {})
                custom[rule.remote_field_id or remote_path] = value
            else:
                set_field_value(result, remote_path, value)

        if not result.get("title") and doc.get("title"):
            result["title"] = doc["title"]
        if not result.get("description") and doc.get("narrative"):
            try:
                result["description"] = format_document_description(doc)
            except Exception as exc:
                logger.warning(
                    "Description rendering failed for %s: %s", doc.get("id"), exc
                )
                result["description"] = doc["narrative"]
        status = doc.get("status")
        if isinstance(status, str) and status in LOCAL_TO_REMOTE_STATUS:
            result["status"] = LOCAL_TO_REMOTE_STATUS[status]
        return result

    def map_remote_to_local(self, item: dict[str, Any]) -> dict[str, Any]:
        """Project a remote item onto local document fields."""
        result: dict[str, Any] = {}
        custom_fields = item.get("custom_fields") or {}
        for rule in self.get_field_mappings(SyncDirection.REMOTE_TO_LOCAL):
            local_path, remote_path = self._sides(rule)
            if rule.is_custom_field:
                value = custom_fields.get(rule.remote_field_id or remote_path)
            else:
                value = get_field_value(item, remote_path)
            if value is None:
                if rule.default_value is None:
                    continue
                value = rule.default_value
            value = self._transform(rule, value, to_remote=False)
            set_field_value(result, local_path, value)

        if not result.get("title") and item.get("title"):
            result["title"] = item["title"]
        if not result.get("narrative") and item.get("description"):
            result["narrative"] = parse_problem_statement(item["description"])
        status = item.get("status")
        if isinstance(status, str) and status in REMOTE_TO_LOCAL_STATUS:
            result["status"] = REMOTE_TO_LOCAL_STATUS[status]
        if item.get("created"):
            result["created_at"] = item["created"]
        if item.get("updated"):
            result["updated_at"] = item["updated"]
        for name in LOCAL_TIMESTAMP_FIELDS:
            if name in result:
                result[name] = parse_timestamp(result[name])
        return result
