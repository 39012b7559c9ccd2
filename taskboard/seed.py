"""
Demo data seeder.

Fills the board with a fixed sample set in one of three languages. The
`demo_seeded` flag in app_state remembers a previous run; seeding again
wipes tasks, messages and events first, so repeated runs always leave the
same shape behind.

Templates live in fixtures/demo_seed.yaml and are checked for structural
parity across languages when loaded.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .domain import build_preview, normalize_status
from .events import EventType, record_event
from .schema import EventPayload, make_id
from .store import BoardStore, guarded, read_flag, write_flag

logger = logging.getLogger(__name__)

DEMO_SEED_KEY = "demo_seeded"
SEED_ACTOR = "demo-user"
SUPPORTED_LANGUAGES = ("ru", "en", "es")
BASE_OFFSET_MINUTES = 85
TEMPLATES_PATH = Path(__file__).parent / "fixtures" / "demo_seed.yaml"


class SeedTemplateError(ValueError):
    """Raised when the seed fixture is malformed or languages diverge."""
    pass


def minutes(value: int) -> int:
    return value * 60 * 1000


@dataclass
class SeedMessage:
    text: str
    offset: int
    author: str


@dataclass
class SeedTask:
    title: str
    status: str
    order: int
    created_offset: int
    description: Optional[str] = None
    status_from: Optional[str] = None
    status_offset: Optional[int] = None
    description_offset: Optional[int] = None
    messages: List[SeedMessage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SeedTask":
        try:
            return cls(
                title=data["title"],
                status=normalize_status(data["status"]).value,
                order=int(data["order"]),
                created_offset=int(data["created_offset"]),
                description=data.get("description"),
                status_from=data.get("status_from"),
                status_offset=data.get("status_offset"),
                description_offset=data.get("description_offset"),
                messages=[SeedMessage(**m) for m in data.get("messages") or []],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SeedTemplateError(f"Invalid seed task {data!r}: {e}") from e

    def shape(self) -> tuple:
        """Everything that must match across languages (no text)."""
        return (
            self.status,
            self.order,
            self.created_offset,
            self.description is not None,
            self.status_from,
            self.status_offset,
            self.description_offset,
            tuple((m.offset, m.author) for m in self.messages),
        )


def check_locale_parity(templates: Dict[str, List[SeedTask]]) -> None:
    """
    Verify every language has the same seed structure.

    Raises:
        SeedTemplateError: listing every mismatch against the first language
    """
    problems = []
    missing = [lang for lang in SUPPORTED_LANGUAGES if lang not in templates]
    if missing:
        problems.append(f"missing languages: {', '.join(missing)}")

    languages = [lang for lang in SUPPORTED_LANGUAGES if lang in templates]
    if languages:
        reference = languages[0]
        ref_tasks = templates[reference]
        for lang in languages[1:]:
            tasks = templates[lang]
            if len(tasks) != len(ref_tasks):
                problems.append(
                    f"{lang}: {len(tasks)} tasks, {reference} has {len(ref_tasks)}"
                )
                continue
            for i, (ours, theirs) in enumerate(zip(tasks, ref_tasks)):
                if ours.shape() != theirs.shape():
                    problems.append(f"{lang}[{i}] ({ours.title!r}) differs from {reference}[{i}]")

    if problems:
        raise SeedTemplateError("; ".join(problems))


def load_templates(path: Optional[Path] = None) -> Dict[str, List[SeedTask]]:
    """Load seed templates from YAML and check language parity."""
    with open(path or TEMPLATES_PATH, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    languages = raw.get("languages")
    if not isinstance(languages, dict):
        raise SeedTemplateError("seed fixture has no 'languages' table")
    templates = {
        lang: [SeedTask.from_dict(t) for t in tasks or []]
        for lang, tasks in languages.items()
    }
    check_locale_parity(templates)
    return templates


@guarded(default=lambda: {"seeded": False})
def seed_status(store: BoardStore) -> Dict[str, bool]:
    with store.transaction() as conn:
        return {"seeded": read_flag(conn, DEMO_SEED_KEY)}


@guarded()
def seed_demo_data(
    store: BoardStore,
    language: str,
    now: Optional[int] = None,
    templates: Optional[Dict[str, List[SeedTask]]] = None,
) -> Optional[Dict[str, int]]:
    """
    Reset (if seeded before) and repopulate the demo board.

    Returns counts of inserted tasks, messages and events, or None for an
    unsupported language.
    """
    if language not in SUPPORTED_LANGUAGES:
        logger.warning("seed_demo_data: unsupported language %r", language)
        return None
    demo_tasks = (templates or load_templates())[language]

    now = store.now() if now is None else now
    base_time = now - minutes(BASE_OFFSET_MINUTES)
    counts = {"tasks": 0, "messages": 0, "events": 0}

    def event(conn, task_id, event_type, payload, created_at):
        record_event(
            conn, task_id, event_type, SEED_ACTOR,
            payload=payload,
            created_at=created_at,
            allowed_actors={SEED_ACTOR},
        )
        counts["events"] += 1

    with store.transaction() as conn:
        if read_flag(conn, DEMO_SEED_KEY):
            logger.info("Demo data already seeded; resetting board")
            store.clear_board(conn)

        for task in demo_tasks:
            created_at = base_time + minutes(task.created_offset)
            updated_at = created_at
            task_id = make_id("task")
            conn.execute(
                """
                INSERT INTO tasks (id, title, description, status, order_index, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (task_id, task.title, task.description or "", task.status,
                 task.order, created_at, created_at),
            )
            counts["tasks"] += 1
            event(conn, task_id, EventType.TASK_CREATED, None, created_at)

            if task.status_from and task.status_offset is not None:
                status_at = base_time + minutes(task.status_offset)
                event(
                    conn, task_id, EventType.TASK_STATUS_CHANGED,
                    EventPayload(
                        from_status=normalize_status(task.status_from).value,
                        to_status=task.status,
                    ),
                    status_at,
                )
                updated_at = max(updated_at, status_at)

            if task.description and task.description_offset is not None:
                description_at = base_time + minutes(task.description_offset)
                event(
                    conn, task_id, EventType.TASK_DESCRIPTION_UPDATED,
                    EventPayload(text_preview=build_preview(task.description)),
                    description_at,
                )
                updated_at = max(updated_at, description_at)

            for message in task.messages:
                message_at = base_time + minutes(message.offset)
                conn.execute(
                    "INSERT INTO messages (id, task_id, text, author, created_at) VALUES (?, ?, ?, ?, ?)",
                    (make_id("msg"), task_id, message.text, message.author, message_at),
                )
                counts["messages"] += 1
                event(
                    conn, task_id, EventType.MESSAGE_SENT,
                    EventPayload(text_preview=build_preview(message.text)),
                    message_at,
                )
                updated_at = max(updated_at, message_at)

            if updated_at != created_at:
                conn.execute(
                    "UPDATE tasks SET updated_at = ? WHERE id = ?", (updated_at, task_id)
                )

        write_flag(conn, DEMO_SEED_KEY, True, now)

    logger.info("Seeded demo board (%s): %s", language, counts)
    return counts
