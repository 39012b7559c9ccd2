"""
Task event recorder.

Every state-changing operation appends one or more TaskEvent rows inside
its own transaction. Events are never updated; only the demo reset
deletes them.
"""
import sqlite3
from typing import Iterable, List, Optional

from .domain import DEFAULT_ALLOWED_ACTORS, normalize_actor
from .schema import EventPayload, TaskEvent, make_id
from .store import BoardStore, guarded


class EventType:
    """All valid event types. Nothing else is permitted."""

    TASK_CREATED = "task_created"
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_DESCRIPTION_UPDATED = "task_description_updated"
    TASK_REORDERED = "task_reordered"
    MESSAGE_SENT = "message_sent"

    _ALL = None  # populated on first use

    @classmethod
    def all_types(cls) -> set:
        if cls._ALL is None:
            cls._ALL = {
                v for k, v in vars(cls).items()
                if isinstance(v, str) and not k.startswith("_")
            }
        return cls._ALL

    @classmethod
    def is_valid(cls, event_type: str) -> bool:
        return event_type in cls.all_types()


def record_event(
    conn: sqlite3.Connection,
    task_id: str,
    event_type: str,
    actor: Optional[str],
    payload: Optional[EventPayload] = None,
    created_at: int = 0,
    allowed_actors: Iterable[str] = DEFAULT_ALLOWED_ACTORS,
) -> TaskEvent:
    """
    Append one event row using the caller's connection.

    Args:
        conn: Open connection of the surrounding operation
        task_id: Task the event belongs to
        event_type: One of EventType
        actor: Raw actor; collapsed to "anonymous" unless allow-listed
        payload: Type-specific payload (empty for task_created)
        created_at: Epoch milliseconds

    Returns:
        The recorded TaskEvent

    Raises:
        ValueError: unknown event type
    """
    if not EventType.is_valid(event_type):
        raise ValueError(f"Invalid event_type: {event_type}")

    event = TaskEvent(
        id=make_id("evt"),
        task_id=str(task_id),
        type=event_type,
        actor=normalize_actor(actor, allowed_actors),
        payload=payload or EventPayload(),
        created_at=created_at,
    )
    conn.execute(
        """
        INSERT INTO task_events (id, task_id, type, actor, payload, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (event.id, event.task_id, event.type, event.actor,
         event.payload.to_json(), event.created_at),
    )
    return event


@guarded(default=list)
def list_task_events(store: BoardStore, task_id: str) -> List[TaskEvent]:
    """Timeline of one task, most recent first."""
    with store.transaction() as conn:
        rows = conn.execute(
            """
            SELECT * FROM task_events
            WHERE task_id = ?
            ORDER BY created_at DESC, seq DESC
            """,
            (task_id,),
        ).fetchall()
    return [TaskEvent.from_row(r) for r in rows]


@guarded(default=list)
def list_recent_events(store: BoardStore, limit: int = 50) -> List[TaskEvent]:
    """Board-wide activity feed, most recent first."""
    with store.transaction() as conn:
        rows = conn.execute(
            """
            SELECT * FROM task_events
            ORDER BY created_at DESC, seq DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
    return [TaskEvent.from_row(r) for r in rows]
