"""
Board record schema.

Tasks live in one of three status columns and are ranked by `order`
inside their column. Messages and events hang off a task id that is not
enforced as a foreign key: deleting a task leaves its chat thread and
timeline in place.
"""
import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional


class TaskStatus(Enum):
    """Canonical status columns."""
    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    DONE = "done"


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


def make_id(prefix: str) -> str:
    """Sortable unique id (ms timestamp + random hex)."""
    return f"{prefix}-{now_ms()}-{uuid.uuid4().hex[:8]}"


@dataclass
class Task:
    id: str
    title: str
    status: TaskStatus = TaskStatus.BACKLOG
    description: str = ""
    order: int = 0
    created_at: int = 0
    updated_at: int = 0
    # Raw column value; differs from status.value only for legacy rows
    stored_status: Optional[str] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "order": self.order,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_row(cls, row) -> "Task":
        # Imported here: domain imports TaskStatus from this module
        from .domain import normalize_status

        return cls(
            id=row["id"],
            title=row["title"],
            status=normalize_status(row["status"]),
            description=row["description"] or "",
            order=row["order_index"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            stored_status=row["status"],
        )


@dataclass
class Message:
    id: str
    task_id: str
    text: str
    author: str
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "taskId": self.task_id,
            "text": self.text,
            "author": self.author,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_row(cls, row) -> "Message":
        return cls(
            id=row["id"],
            task_id=row["task_id"],
            text=row["text"],
            author=row["author"],
            created_at=row["created_at"],
        )


@dataclass
class EventPayload:
    """Variant payload; which keys are set depends on the event type."""
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    text_preview: Optional[str] = None
    from_index: Optional[int] = None
    to_index: Optional[int] = None

    _WIRE = (
        ("from_status", "from"),
        ("to_status", "to"),
        ("text_preview", "textPreview"),
        ("from_index", "fromIndex"),
        ("to_index", "toIndex"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            wire: getattr(self, attr)
            for attr, wire in self._WIRE
            if getattr(self, attr) is not None
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EventPayload":
        data = data or {}
        return cls(**{attr: data.get(wire) for attr, wire in cls._WIRE})


@dataclass
class TaskEvent:
    id: str
    task_id: str
    type: str
    actor: str
    payload: EventPayload = field(default_factory=EventPayload)
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "taskId": self.task_id,
            "type": self.type,
            "actor": self.actor,
            "payload": self.payload.to_dict(),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_row(cls, row) -> "TaskEvent":
        try:
            payload = json.loads(row["payload"]) if row["payload"] else {}
        except (json.JSONDecodeError, TypeError):
            payload = {}
        return cls(
            id=row["id"],
            task_id=row["task_id"],
            type=row["type"],
            actor=row["actor"],
            payload=EventPayload.from_dict(payload),
            created_at=row["created_at"],
        )


class Column(NamedTuple):
    """One status column as the client sees it after a drag."""
    status: Any
    ordered_ids: List[str]

    @classmethod
    def coerce(cls, value) -> "Column":
        if isinstance(value, Column):
            return value
        if isinstance(value, dict):
            ids = value.get("orderedIds", value.get("ordered_ids")) or []
            return cls(value.get("status"), list(ids))
        status, ids = value
        return cls(status, list(ids))
