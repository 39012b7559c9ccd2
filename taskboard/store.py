"""
Board storage backend (SQLite).

Owns the four tables (tasks, messages, task_events, app_state) and the
connection/transaction plumbing. The task, message, event and seed
operations run their reads and writes through `BoardStore.transaction()`
so each operation commits or rolls back as a unit.
"""
import logging
import sqlite3
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional

from .domain import DEFAULT_ALLOWED_ACTORS
from .schema import Task, TaskStatus, now_ms

logger = logging.getLogger(__name__)

DEFAULT_DB = Path.home() / ".local" / "share" / "taskboard" / "board.db"


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with row access by name and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def guarded(default=None):
    """Decorator: log database errors and return `default` instead of raising."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except sqlite3.Error:
                logger.exception("%s failed", f.__name__)
                return default() if callable(default) else default
        return decorated
    return decorator


class BoardStore:
    """SQLite-backed store for tasks, messages, events and app state."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        clock: Callable[[], int] = now_ms,
        allowed_actors: Iterable[str] = DEFAULT_ALLOWED_ACTORS,
    ):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(DEFAULT_DB)
        self.db_path = str(db_path)
        self.clock = clock
        self.allowed_actors = frozenset(allowed_actors)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'backlog',
                    order_index INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    text TEXT NOT NULL,
                    author TEXT NOT NULL,
                    created_at INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS task_events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    task_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    actor TEXT NOT NULL,
                    payload TEXT NOT NULL DEFAULT '{}',
                    created_at INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS app_state (
                    key TEXT PRIMARY KEY,
                    value INTEGER NOT NULL DEFAULT 0,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_order ON tasks(order_index)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_status_order ON tasks(status, order_index)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_task ON messages(task_id, created_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_task_events_task ON task_events(task_id, created_at)"
            )

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """One unit of work: commit on success, roll back on error, always close."""
        conn = _connect(self.db_path)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def now(self) -> int:
        return self.clock()

    # ── App state ────────────────────────────────────────────────────────

    def get_flag(self, key: str) -> bool:
        with self.transaction() as conn:
            return read_flag(conn, key)

    def clear_board(self, conn: sqlite3.Connection) -> None:
        """Drop every task, message and event (demo reset)."""
        conn.execute("DELETE FROM tasks")
        conn.execute("DELETE FROM messages")
        conn.execute("DELETE FROM task_events")

    def counts(self) -> dict:
        with self.transaction() as conn:
            return {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in ("tasks", "messages", "task_events")
            }


# ── Row helpers shared by the operations modules ─────────────────────────


def fetch_task(conn: sqlite3.Connection, task_id: str) -> Optional[Task]:
    row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    return Task.from_row(row) if row else None


def fetch_column(conn: sqlite3.Connection, status: TaskStatus) -> List[Task]:
    """Tasks of one column, ranked. Legacy status spellings are included."""
    rows = conn.execute(
        "SELECT * FROM tasks ORDER BY order_index ASC, created_at ASC"
    ).fetchall()
    return [t for t in (Task.from_row(r) for r in rows) if t.status == status]


def first_order(conn: sqlite3.Connection, status: TaskStatus) -> Optional[int]:
    """Lowest order in a column, or None when the column is empty."""
    row = conn.execute(
        "SELECT MIN(order_index) FROM tasks WHERE status = ?", (status.value,)
    ).fetchone()
    return row[0] if row else None


def read_flag(conn: sqlite3.Connection, key: str) -> bool:
    row = conn.execute("SELECT value FROM app_state WHERE key = ?", (key,)).fetchone()
    return bool(row["value"]) if row else False


def write_flag(conn: sqlite3.Connection, key: str, value: bool, now: int) -> None:
    conn.execute("""
        INSERT INTO app_state (key, value, created_at, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
    """, (key, 1 if value else 0, now, now))
