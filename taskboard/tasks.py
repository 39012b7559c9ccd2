"""
Task operations: create, status changes, description edits, reorder, move.

Every mutation runs in one store transaction together with the events it
records. Validation failures and unknown ids are silent no-ops that
return None; nothing here raises to the caller.
"""
import logging
import sqlite3
from typing import Dict, Iterable, List, Optional, Tuple

from .domain import (
    build_preview,
    clean_text,
    is_canonical_status,
    is_number,
    next_status,
    normalize_status,
    prepend_order,
    touch,
)
from .events import EventType, record_event
from .schema import Column, EventPayload, Task, TaskStatus, make_id
from .store import BoardStore, fetch_column, fetch_task, first_order, guarded

logger = logging.getLogger(__name__)


def _record(store: BoardStore, conn, task_id, event_type, actor, payload=None, created_at=0):
    return record_event(
        conn, task_id, event_type, actor,
        payload=payload,
        created_at=created_at,
        allowed_actors=store.allowed_actors,
    )


# ── Queries ──────────────────────────────────────────────────────────────


@guarded(default=list)
def list_tasks(store: BoardStore) -> List[Task]:
    """All tasks by ascending order."""
    with store.transaction() as conn:
        rows = conn.execute(
            "SELECT * FROM tasks ORDER BY order_index ASC, created_at ASC"
        ).fetchall()
    return [Task.from_row(r) for r in rows]


@guarded()
def get_task(store: BoardStore, task_id: str) -> Optional[Task]:
    with store.transaction() as conn:
        return fetch_task(conn, task_id)


def board_columns(store: BoardStore) -> Dict[str, List[Task]]:
    """Tasks grouped into their status columns, each column ranked."""
    columns = {status.value: [] for status in TaskStatus}
    for task in list_tasks(store):
        columns[task.status.value].append(task)
    return columns


# ── Mutations ────────────────────────────────────────────────────────────


@guarded()
def create_task(
    store: BoardStore,
    title: str,
    description: Optional[str] = None,
    status=None,
    order: Optional[float] = None,
    actor: Optional[str] = None,
) -> Optional[str]:
    """
    Create a task at the top of its column.

    Returns the new task id, or None when the title is blank.
    """
    clean_title = clean_text(title)
    if clean_title is None:
        logger.debug("create_task: blank title ignored")
        return None

    target = normalize_status(status)
    now = store.now()
    task_id = make_id("task")
    with store.transaction() as conn:
        if not is_number(order):
            order = prepend_order(first_order(conn, target))
        conn.execute(
            """
            INSERT INTO tasks (id, title, description, status, order_index, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (task_id, clean_title, description or "", target.value, order, now, now),
        )
        _record(store, conn, task_id, EventType.TASK_CREATED, actor, created_at=now)

    logger.info("Created task %s in %s (order %s)", task_id, target.value, order)
    return task_id


def _apply_status(
    store: BoardStore,
    conn: sqlite3.Connection,
    task: Task,
    target: TaskStatus,
    actor: Optional[str],
) -> TaskStatus:
    """Move a task to the top of `target` and record the change."""
    order = prepend_order(first_order(conn, target))
    now = store.now()
    updated_at = touch(task.updated_at, now)
    conn.execute(
        "UPDATE tasks SET status = ?, order_index = ?, updated_at = ? WHERE id = ?",
        (target.value, order, updated_at, task.id),
    )
    _record(
        store, conn, task.id, EventType.TASK_STATUS_CHANGED, actor,
        payload=EventPayload(from_status=task.status.value, to_status=target.value),
        created_at=now,
    )
    logger.info("Task %s: %s → %s", task.id, task.status.value, target.value)
    return target


@guarded()
def set_status(
    store: BoardStore,
    task_id: str,
    status,
    actor: Optional[str] = None,
) -> Optional[TaskStatus]:
    """
    Put a task into a status column.

    A task already in the requested column (and stored with a canonical
    value) is left alone and its current status returned. Legacy stored
    values are rewritten even when they map to the requested column.
    """
    with store.transaction() as conn:
        task = fetch_task(conn, task_id)
        if task is None:
            logger.debug("set_status: task %s not found", task_id)
            return None
        target = normalize_status(status)
        if task.status == target and is_canonical_status(task.stored_status):
            return task.status
        return _apply_status(store, conn, task, target, actor)


@guarded()
def cycle_status(store: BoardStore, task_id: str, actor: Optional[str] = None) -> Optional[TaskStatus]:
    """Advance backlog → in_progress → done → backlog."""
    with store.transaction() as conn:
        task = fetch_task(conn, task_id)
        if task is None:
            logger.debug("cycle_status: task %s not found", task_id)
            return None
        return _apply_status(store, conn, task, next_status(task.status), actor)


@guarded(default=False)
def remove_task(store: BoardStore, task_id: str) -> bool:
    """Delete a task. Its messages and events stay; no event is recorded."""
    with store.transaction() as conn:
        cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        removed = cur.rowcount > 0
    if removed:
        logger.info("Removed task %s", task_id)
    return removed


@guarded()
def update_description(
    store: BoardStore,
    task_id: str,
    description: str,
    actor: Optional[str] = None,
) -> Optional[Task]:
    """Replace the description; identical text is a no-op returning None.

    Non-string descriptions are rejected the same way.
    """
    if description is None:
        description = ""
    if not isinstance(description, str):
        logger.debug("update_description: non-string description ignored for %s", task_id)
        return None
    with store.transaction() as conn:
        task = fetch_task(conn, task_id)
        if task is None:
            logger.debug("update_description: task %s not found", task_id)
            return None
        if task.description == description:
            return None
        now = store.now()
        conn.execute(
            "UPDATE tasks SET description = ?, updated_at = ? WHERE id = ?",
            (description, touch(task.updated_at, now), task_id),
        )
        _record(
            store, conn, task_id, EventType.TASK_DESCRIPTION_UPDATED, actor,
            payload=EventPayload(text_preview=build_preview(description.strip())),
            created_at=now,
        )
        updated = fetch_task(conn, task_id)
    logger.info("Updated description of task %s", task_id)
    return updated


# ── Reordering ───────────────────────────────────────────────────────────


def _position(conn: sqlite3.Connection, task_id: str) -> Optional[Tuple[TaskStatus, int]]:
    """(column, rank within column) of a task, or None if it is gone."""
    task = fetch_task(conn, task_id)
    if task is None:
        return None
    ids = [t.id for t in fetch_column(conn, task.status)]
    return task.status, ids.index(task_id)


def _rewrite_columns(
    conn: sqlite3.Connection,
    columns: Iterable[Column],
    now: int,
) -> None:
    seen = set()
    for column in columns:
        status = normalize_status(column.status)
        position = 0
        for task_id in column.ordered_ids:
            if task_id in seen:
                continue
            task = fetch_task(conn, task_id)
            if task is None:
                logger.warning("reorder: unknown task %s skipped", task_id)
                continue
            seen.add(task_id)
            conn.execute(
                "UPDATE tasks SET order_index = ?, status = ?, updated_at = ? WHERE id = ?",
                (position, status.value, touch(task.updated_at, now), task_id),
            )
            position += 1


def _annotate_move(
    store: BoardStore,
    conn: sqlite3.Connection,
    task_id: str,
    from_status,
    to_status,
    from_index,
    to_index,
    actor: Optional[str],
    now: int,
) -> None:
    """Record task_reordered / task_status_changed for a moved task."""
    if is_number(from_index) and is_number(to_index) and from_index != to_index:
        _record(
            store, conn, task_id, EventType.TASK_REORDERED, actor,
            payload=EventPayload(from_index=from_index, to_index=to_index),
            created_at=now,
        )
    if from_status and to_status:
        source, target = normalize_status(from_status), normalize_status(to_status)
        if source != target:
            _record(
                store, conn, task_id, EventType.TASK_STATUS_CHANGED, actor,
                payload=EventPayload(from_status=source.value, to_status=target.value),
                created_at=now,
            )


@guarded()
def reorder(
    store: BoardStore,
    columns,
    moved_task_id: Optional[str] = None,
    from_status=None,
    to_status=None,
    from_index: Optional[int] = None,
    to_index: Optional[int] = None,
    actor: Optional[str] = None,
) -> None:
    """
    Rewrite column contents after a drag.

    Each listed task gets order = its position in the list and the
    column's status, so listing a task under another column moves it.

    The events describe the drag as the client reports it: with
    `moved_task_id`, a task_reordered event when both indices are numbers
    and differ, and a task_status_changed event when both statuses are
    given and normalize to different columns. That metadata only feeds
    the timeline; placement comes from `columns` alone. Use `move_task`
    when the server should work out the move itself.
    """
    columns = [Column.coerce(c) for c in columns]
    with store.transaction() as conn:
        now = store.now()
        _rewrite_columns(conn, columns, now)
        if moved_task_id:
            _annotate_move(
                store, conn, moved_task_id,
                from_status, to_status, from_index, to_index,
                actor, now,
            )
    logger.info("Reordered %d column(s)", len(columns))
    return None


@guarded()
def move_task(
    store: BoardStore,
    task_id: str,
    to_status,
    to_index: Optional[int] = None,
    actor: Optional[str] = None,
) -> Optional[TaskStatus]:
    """
    Move one task to `to_index` of column `to_status`.

    The before/after positions are read from the database, so the
    recorded events always match the placement. A missing or out-of-range
    index is clamped to the column bounds (missing means the bottom).
    """
    with store.transaction() as conn:
        task = fetch_task(conn, task_id)
        if task is None:
            logger.debug("move_task: task %s not found", task_id)
            return None
        target = normalize_status(to_status)
        source_ids = [t.id for t in fetch_column(conn, task.status) if t.id != task_id]
        if target == task.status:
            target_ids = list(source_ids)
        else:
            target_ids = [t.id for t in fetch_column(conn, target) if t.id != task_id]

        if not isinstance(to_index, int) or isinstance(to_index, bool):
            to_index = len(target_ids)
        index = min(max(0, to_index), len(target_ids))
        target_ids.insert(index, task_id)

        columns = [Column(target, target_ids)]
        if target != task.status:
            columns.insert(0, Column(task.status, source_ids))

        now = store.now()
        before = _position(conn, task_id)
        _rewrite_columns(conn, columns, now)
        after = _position(conn, task_id)
        _annotate_move(
            store, conn, task_id,
            before[0], after[0], before[1], after[1],
            actor, now,
        )

    logger.info("Moved task %s to %s[%d]", task_id, target.value, index)
    return target
