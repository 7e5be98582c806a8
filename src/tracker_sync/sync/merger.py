"""Merge primitives for field-level synchronisation.

Pure functions, no I/O:

- ``values_equal``: the equality used by three-way diffing.
- ``get_field_value`` / ``set_field_value``: dot-path access on nested
  dicts.
- ``merge_arrays``, ``merge_objects``, ``merge_text``: type-directed
  merges, combined by ``merge_values``.
- ``generate_diff``: unified diff of two text values for reports.
"""

from __future__ import annotations

import difflib
import json
from typing import Any

NARRATIVE_MARKERS = ("description", "statement", "narrative", "impact")
TEXT_MERGE_SEPARATOR = "\n\n---\n\n"


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def values_equal(a: Any, b: Any) -> bool:
    """Compare two field values for diffing purposes.

    ``None`` only equals ``None``.  Dicts and lists compare structurally,
    strings compare trimmed and case-insensitively, anything else uses
    ``==``.
    """
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, (dict, list)) and isinstance(b, (dict, list)):
        return _canonical(a) == _canonical(b)
    if isinstance(a, str) and isinstance(b, str):
        return a.strip().lower() == b.strip().lower()
    if isinstance(a, str) or isinstance(b, str):
        return False
    return a == b


# ---------------------------------------------------------------------------
# Dot-path access
# ---------------------------------------------------------------------------


def get_field_value(obj: dict[str, Any] | None, path: str) -> Any:
    """Read a dot-separated path; missing segments yield ``None``."""
    current: Any = obj
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def set_field_value(obj: dict[str, Any], path: str, value: Any) -> None:
    """Write *value* at a dot-separated path, creating parents as needed."""
    parts = path.split(".")
    current = obj
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


# ---------------------------------------------------------------------------
# Type-directed merges
# ---------------------------------------------------------------------------


def merge_arrays(local: list[Any], remote: list[Any]) -> list[Any]:
    """Union of two lists seeded from *local*.

    Remote elements are appended when no structurally equal element is
    already present, so merging twice changes nothing.
    """
    merged = list(local)
    seen = {_canonical(item) for item in merged}
    for item in remote:
        key = _canonical(item)
        if key not in seen:
            merged.append(item)
            seen.add(key)
    return merged


def merge_objects(
    base: dict[str, Any] | None,
    local: dict[str, Any],
    remote: dict[str, Any],
) -> dict[str, Any]:
    """Key-wise merge of two dicts.

    Keys only in *remote* are adopted.  For shared keys, remote wins where
    local still equals base; otherwise local is kept.
    """
    base = base if isinstance(base, dict) else {}
    merged = dict(local)
    for key, remote_value in remote.items():
        if key not in local:
            merged[key] = remote_value
        elif values_equal(local[key], base.get(key)):
            merged[key] = remote_value
    return merged


def is_narrative_field(field: str) -> bool:
    lowered = field.lower()
    return any(marker in lowered for marker in NARRATIVE_MARKERS)


def merge_text(base: str | None, local: str, remote: str) -> str:
    """Merge two edits of a narrative field.

    If one side still equals base the other side's edit is taken;
    when both changed, local and remote are joined with a separator.
    """
    if base is not None:
        if values_equal(local, base):
            return remote
        if values_equal(remote, base):
            return local
    return f"{local}{TEXT_MERGE_SEPARATOR}{remote}"


def merge_values(base: Any, local: Any, remote: Any, field: str) -> Any:
    """Pick the merge rule from the value types and the field name.

    Unclassified values keep the local side.
    """
    if isinstance(local, list) and isinstance(remote, list):
        return merge_arrays(local, remote)
    if isinstance(local, dict) and isinstance(remote, dict):
        return merge_objects(base, local, remote)
    if (
        isinstance(local, str)
        and isinstance(remote, str)
        and is_narrative_field(field)
    ):
        return merge_text(base if isinstance(base, str) else None, local, remote)
    return local


def generate_diff(
    old: Any, new: Any, fromfile: str = "local", tofile: str = "remote"
) -> str:
    """Return a unified diff between two values rendered as text."""
    old_text = old if isinstance(old, str) else _canonical(old)
    new_text = new if isinstance(new, str) else _canonical(new)
    return "".join(
        difflib.unified_diff(
            old_text.splitlines(True),
            new_text.splitlines(True),
            fromfile=fromfile,
            tofile=tofile,
        )
    )
