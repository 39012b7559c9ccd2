"""
One-off data migrations.

Older clients stored statuses as active / completed / in-progress. Reads
already map those onto the canonical columns; `fix_task_statuses` rewrites
the rows themselves.
"""
import logging

from .domain import is_canonical_status, touch
from .schema import Task
from .store import BoardStore, guarded

logger = logging.getLogger(__name__)


@guarded(default=0)
def fix_task_statuses(store: BoardStore) -> int:
    """Rewrite legacy status values in place. Returns the number of rows fixed."""
    now = store.now()
    updated = 0
    with store.transaction() as conn:
        rows = conn.execute("SELECT * FROM tasks").fetchall()
        for row in rows:
            if is_canonical_status(row["status"]):
                continue
            task = Task.from_row(row)
            conn.execute(
                "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ?",
                (task.status.value, touch(task.updated_at, now), task.id),
            )
            logger.info("Task %s: status %r → %s", task.id, row["status"], task.status.value)
            updated += 1
    return updated
