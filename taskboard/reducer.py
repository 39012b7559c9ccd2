"""
Offline board state.

A pure reducer over an in-memory list of tasks plus a view filter, used
when no database is reachable. It follows the same title, status and
cycle rules as the database operations (taskboard.domain) but keeps a
single flat ordering and records no events.
"""
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from .domain import (
    clean_text,
    is_active_status,
    is_completed_status,
    next_status,
    normalize_status,
)
from .schema import TaskStatus, now_ms


class Filter(Enum):
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"


class ActionType:
    ADD = "add"
    SET_STATUS = "setStatus"
    CYCLE_STATUS = "cycleStatus"
    REMOVE = "remove"
    RESTORE = "restore"
    SET_FILTER = "setFilter"
    REORDER = "reorder"
    REHYDRATE = "rehydrate"
    UPDATE_DESCRIPTION = "updateDescription"


TITLE_REQUIRED = "titleRequired"


@dataclass(frozen=True)
class LocalTask:
    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.BACKLOG
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class State:
    tasks: Tuple[LocalTask, ...] = ()
    filter: Filter = Filter.ALL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": [t.to_dict() for t in self.tasks],
            "filter": self.filter.value,
        }


@dataclass(frozen=True)
class Action:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AddResult:
    action: Optional[Action]
    error_key: Optional[str]
    trimmed: str


# ── Action creators ──────────────────────────────────────────────────────


def add_task(title: str) -> AddResult:
    """Validate a new title; blank titles yield no action and an error key."""
    trimmed = clean_text(title) or ""
    if not trimmed:
        return AddResult(action=None, error_key=TITLE_REQUIRED, trimmed=trimmed)
    return AddResult(
        action=Action(ActionType.ADD, {"title": trimmed}),
        error_key=None,
        trimmed=trimmed,
    )


def set_status(task_id: str, status) -> Action:
    return Action(ActionType.SET_STATUS, {"id": task_id, "status": status})


def cycle_status(task_id: str) -> Action:
    return Action(ActionType.CYCLE_STATUS, {"id": task_id})


def remove_task(task_id: str) -> Action:
    return Action(ActionType.REMOVE, {"id": task_id})


def restore_task(task: LocalTask, index) -> Action:
    return Action(ActionType.RESTORE, {"task": task, "index": index})


def set_filter(value) -> Action:
    return Action(ActionType.SET_FILTER, {"filter": value})


def reorder_tasks(ordered_ids: Iterable[str]) -> Action:
    return Action(ActionType.REORDER, {"orderedIds": list(ordered_ids)})


def rehydrate(state: State) -> Action:
    return Action(ActionType.REHYDRATE, {"state": state})


def update_description(task_id: str, description: str) -> Action:
    return Action(ActionType.UPDATE_DESCRIPTION, {"id": task_id, "description": description})


# ── Reducer ──────────────────────────────────────────────────────────────


def _clamp_index(index, size: int) -> int:
    if isinstance(index, bool) or not isinstance(index, (int, float)):
        return 0
    if not math.isfinite(index):
        return 0
    return min(max(0, int(index)), size)


def _map_task(state: State, task_id: str, change) -> State:
    """Apply `change` to one task; returns `state` itself if nothing changed."""
    changed = False
    tasks = []
    for task in state.tasks:
        if task.id == task_id:
            updated = change(task)
            if updated is not None:
                task = updated
                changed = True
        tasks.append(task)
    if not changed:
        return state
    return replace(state, tasks=tuple(tasks))


def reduce(state: State, action: Action, now: Optional[int] = None) -> State:
    """Return the next state. Unchanged input comes back as the same object."""
    timestamp = now_ms() if now is None else now
    payload = action.payload

    if action.type == ActionType.ADD:
        title = clean_text(payload.get("title"))
        if title is None:
            return state
        task = LocalTask(
            id=f"t-{timestamp}",
            title=title,
            status=TaskStatus.BACKLOG,
            created_at=timestamp,
            updated_at=timestamp,
        )
        return replace(state, tasks=(task,) + state.tasks)

    if action.type == ActionType.SET_STATUS:
        target = normalize_status(payload.get("status"))

        def change(task):
            if task.status == target:
                return None
            return replace(task, status=target, updated_at=timestamp)
        return _map_task(state, payload.get("id"), change)

    if action.type == ActionType.CYCLE_STATUS:
        return _map_task(
            state, payload.get("id"),
            lambda task: replace(task, status=next_status(task.status), updated_at=timestamp),
        )

    if action.type == ActionType.REMOVE:
        remaining = tuple(t for t in state.tasks if t.id != payload.get("id"))
        if len(remaining) == len(state.tasks):
            return state
        return replace(state, tasks=remaining)

    if action.type == ActionType.RESTORE:
        tasks = list(state.tasks)
        tasks.insert(_clamp_index(payload.get("index"), len(tasks)), payload["task"])
        return replace(state, tasks=tuple(tasks))

    if action.type == ActionType.SET_FILTER:
        try:
            value = Filter(payload.get("filter"))
        except ValueError:
            return state
        return replace(state, filter=value)

    if action.type == ActionType.REORDER:
        ordered_ids = payload.get("orderedIds") or []
        by_id = {t.id: t for t in state.tasks}
        used = set()
        tasks = []
        for task_id in ordered_ids:
            if task_id in by_id and task_id not in used:
                tasks.append(by_id[task_id])
                used.add(task_id)
        if not tasks:
            return state
        tasks.extend(t for t in state.tasks if t.id not in used)
        return replace(state, tasks=tuple(tasks))

    if action.type == ActionType.REHYDRATE:
        return payload["state"]

    if action.type == ActionType.UPDATE_DESCRIPTION:
        description = payload.get("description") or ""

        def change(task):
            if task.description == description:
                return None
            return replace(task, description=description, updated_at=timestamp)
        return _map_task(state, payload.get("id"), change)

    return state


# ── Views ────────────────────────────────────────────────────────────────


def visible_tasks(state: State) -> Tuple[LocalTask, ...]:
    if state.filter == Filter.ACTIVE:
        return tuple(t for t in state.tasks if is_active_status(t.status))
    if state.filter == Filter.COMPLETED:
        return tuple(t for t in state.tasks if is_completed_status(t.status))
    return state.tasks


def initial_state(now: Optional[int] = None) -> State:
    """Sample board shown the first time the offline mode starts."""
    base = now_ms() if now is None else now
    return State(
        tasks=(
            LocalTask(
                id="t-1",
                title="Review notes from the client kickoff meeting",
                description="Collect the key points and copy them into the project card.",
                status=TaskStatus.BACKLOG,
                created_at=base - 100000,
                updated_at=base - 100000,
            ),
            LocalTask(
                id="t-2",
                title="Sketch the focus flow for the new feature",
                description="Quick sketch: entry, holding attention, soft exit.",
                status=TaskStatus.DONE,
                created_at=base - 90000,
                updated_at=base - 90000,
            ),
            LocalTask(
                id="t-3",
                title="Send the design for final polish",
                description="Check typography and grid before sending.",
                status=TaskStatus.IN_PROGRESS,
                created_at=base - 80000,
                updated_at=base - 80000,
            ),
        ),
        filter=Filter.ALL,
    )
