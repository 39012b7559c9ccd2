"""
File-backed persistence for the offline board.

A single JSON object file holds the reducer state and the chat display
name, under the same keys the browser client uses. Reads are strict: one
malformed task discards the whole saved state. Write failures are logged
and ignored.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .domain import is_number, normalize_status
from .reducer import Filter, LocalTask, State
from .schema import TaskStatus, now_ms

logger = logging.getLogger(__name__)

STORAGE_KEY = "todo-state:v1"
AUTHOR_KEY = "todo-state:author"

_CANONICAL = {s.value for s in TaskStatus}


def _read(path) -> Dict[str, Any]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Unreadable local storage %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _write(path, data: Dict[str, Any]) -> None:
    try:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        logger.warning("Could not write local storage %s: %s", path, e)


def normalize_task_status(value, legacy_done=None) -> Optional[TaskStatus]:
    """Saved status → canonical status; None when it cannot be recovered."""
    if isinstance(value, str) and (value in _CANONICAL or value == "active"):
        return normalize_status(value)
    if isinstance(legacy_done, bool):
        return TaskStatus.DONE if legacy_done else TaskStatus.BACKLOG
    return None


def normalize_filter(value) -> Filter:
    if value == "done":
        return Filter.COMPLETED
    try:
        return Filter(value)
    except (ValueError, TypeError):
        return Filter.ALL


def normalize_task(raw) -> Optional[LocalTask]:
    if not isinstance(raw, dict):
        return None
    if not isinstance(raw.get("id"), str) or not isinstance(raw.get("title"), str):
        return None
    status = normalize_task_status(raw.get("status"), raw.get("done"))
    if status is None:
        return None

    created_at = raw["createdAt"] if is_number(raw.get("createdAt")) else now_ms()
    updated_at = raw["updatedAt"] if is_number(raw.get("updatedAt")) else created_at
    description = raw["description"] if isinstance(raw.get("description"), str) else ""
    return LocalTask(
        id=raw["id"],
        title=raw["title"],
        description=description,
        status=status,
        created_at=created_at,
        updated_at=updated_at,
    )


def load_state(path) -> Optional[State]:
    """Saved offline state, or None if there is none or any task is invalid."""
    saved = _read(path).get(STORAGE_KEY)
    if not isinstance(saved, dict) or not isinstance(saved.get("tasks"), list):
        return None

    tasks = []
    for raw in saved["tasks"]:
        task = normalize_task(raw)
        if task is None:
            logger.warning("Discarding saved state: invalid task %r", raw)
            return None
        tasks.append(task)
    return State(tasks=tuple(tasks), filter=normalize_filter(saved.get("filter")))


def save_state(path, state: State) -> None:
    data = _read(path)
    data[STORAGE_KEY] = state.to_dict()
    _write(path, data)


def load_author_name(path) -> str:
    name = _read(path).get(AUTHOR_KEY)
    return name if isinstance(name, str) else ""


def save_author_name(path, name: str) -> None:
    """Remember the chat display name; an empty name forgets it."""
    data = _read(path)
    if not name:
        data.pop(AUTHOR_KEY, None)
    else:
        data[AUTHOR_KEY] = name
    _write(path, data)
