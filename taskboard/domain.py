"""
Board rules shared by the database operations and the offline reducer.

Status lifecycle (cycle order):
  Backlog → In progress → Done → Backlog

Nothing here touches storage; every function is pure.
"""
import math
import numbers
from typing import Iterable, Optional

from .schema import TaskStatus

PREVIEW_CHARS = 80
ANONYMOUS_ACTOR = "anonymous"
DEFAULT_ALLOWED_ACTORS = frozenset({"demo-user"})

# Historical values written by older clients
LEGACY_STATUSES = {
    "active": TaskStatus.BACKLOG,
    "completed": TaskStatus.DONE,
    "in-progress": TaskStatus.IN_PROGRESS,
}

_CYCLE = {
    TaskStatus.BACKLOG: TaskStatus.IN_PROGRESS,
    TaskStatus.IN_PROGRESS: TaskStatus.DONE,
    TaskStatus.DONE: TaskStatus.BACKLOG,
}


def normalize_status(value) -> TaskStatus:
    """Map a stored or requested status onto the three canonical columns.

    Unknown and missing values land in backlog rather than raising.
    """
    if isinstance(value, TaskStatus):
        return value
    if not isinstance(value, str):
        return TaskStatus.BACKLOG
    if value in LEGACY_STATUSES:
        return LEGACY_STATUSES[value]
    try:
        return TaskStatus(value)
    except ValueError:
        return TaskStatus.BACKLOG


def is_canonical_status(value) -> bool:
    if isinstance(value, TaskStatus):
        return True
    return value in {s.value for s in TaskStatus}


def next_status(status) -> TaskStatus:
    return _CYCLE[normalize_status(status)]


def is_active_status(status) -> bool:
    return normalize_status(status) != TaskStatus.DONE


def is_completed_status(status) -> bool:
    return normalize_status(status) == TaskStatus.DONE


def clean_text(value: Optional[str]) -> Optional[str]:
    """Trimmed text, or None when nothing is left."""
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def build_preview(text: str) -> str:
    return text[:PREVIEW_CHARS]


def normalize_actor(
    actor: Optional[str],
    allowed: Iterable[str] = DEFAULT_ALLOWED_ACTORS,
) -> str:
    """Attribute an event to an allow-listed actor, else to anonymous."""
    trimmed = (actor or "").strip()
    return trimmed if trimmed and trimmed in set(allowed) else ANONYMOUS_ACTOR


def is_number(value) -> bool:
    """Finite real number; bools do not count."""
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def prepend_order(first_order: Optional[int]) -> int:
    """Order for a task placed at the top of a column."""
    return 0 if first_order is None else first_order - 1


def touch(previous_updated_at: Optional[int], now: int) -> int:
    """Next updatedAt value; strictly greater than the previous one."""
    if previous_updated_at is None:
        return now
    return max(now, previous_updated_at + 1)
