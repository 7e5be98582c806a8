"""Value transforms applied by field-mapping rules.

Transforms are a closed set.  Rules reference them by name; names are
validated when a rule is written and parsed leniently when a stored rule
is read back (see ``parse_transform``).
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class TransformKind(str, Enum):
    STATUS = "status"
    BUDGET_TO_POINTS = "budget_to_points"
    POINTS_TO_BUDGET = "points_to_budget"
    USER_TO_ACCOUNT = "user_to_account"
    ACCOUNT_TO_USER = "account_to_user"
    LIST_TO_CSV = "list_to_csv"
    CSV_TO_LIST = "csv_to_list"


LOCAL_TO_REMOTE_STATUS: dict[str, str] = {
    "draft": "To Do",
    "under_review": "In Review",
    "approved": "Done",
    "rejected": "Closed",
}

REMOTE_TO_LOCAL_STATUS: dict[str, str] = {
    "To Do": "draft",
    "In Progress": "under_review",
    "In Review": "under_review",
    "Done": "approved",
    "Closed": "rejected",
}

# One story point per 10 000 of budget, capped.
BUDGET_PER_POINT = 10000
MAX_STORY_POINTS = 100


def map_status(value: Any, to_remote: bool) -> Any:
    """Translate a status name; unknown names pass through unchanged."""
    table = LOCAL_TO_REMOTE_STATUS if to_remote else REMOTE_TO_LOCAL_STATUS
    if isinstance(value, str):
        return table.get(value, value)
    return value


def budget_to_points(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    # Half-up rounding, so 25 000 gives 3 points.
    points = math.floor(value / BUDGET_PER_POINT + 0.5)
    return min(points, MAX_STORY_POINTS)


def points_to_budget(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    return value * BUDGET_PER_POINT


def list_to_csv(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return value


def csv_to_list(value: Any) -> Any:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


def apply_transform(kind: TransformKind, value: Any, to_remote: bool) -> Any:
    """Apply *kind* to *value* for the given direction.

    Budget and story-point conversions only apply in their own direction;
    in the other direction the value passes through.

    Args:
        kind: Transform to apply.
        value: Source value.
        to_remote: ``True`` when mapping local to remote.

    Returns:
        The transformed value.
    """
    match kind:
        case TransformKind.STATUS:
            return map_status(value, to_remote)
        case TransformKind.BUDGET_TO_POINTS:
            return budget_to_points(value) if to_remote else value
        case TransformKind.POINTS_TO_BUDGET:
            return value if to_remote else points_to_budget(value)
        case TransformKind.USER_TO_ACCOUNT | TransformKind.ACCOUNT_TO_USER:
            # Ids are shared between both systems for now.
            return value
        case TransformKind.LIST_TO_CSV:
            return list_to_csv(value)
        case TransformKind.CSV_TO_LIST:
            return csv_to_list(value)
    raise ValueError(f"Unhandled transform: {kind!r}")


def parse_transform(name: str | None) -> TransformKind | None:
    """Parse a stored transform name.

    Unknown names are logged and treated as "no transform" so a bad row
    never breaks mapping.
    """
    if not name:
        return None
    try:
        return TransformKind(name)
    except ValueError:
        logger.warning("Unknown transform '%s' ignored", name)
        return None


def validate_transform(name: str | TransformKind | None) -> TransformKind | None:
    """Parse a transform name supplied by a caller.

    Raises:
        ValueError: If *name* is not a known transform.
    """
    if name is None or name == "":
        return None
    if isinstance(name, TransformKind):
        return name
    try:
        return TransformKind(name)
    except ValueError:
        valid = sorted(k.value for k in TransformKind)
        raise ValueError(
            f"Unknown transform: '{name}'. Valid transforms: {valid}"
        ) from None
