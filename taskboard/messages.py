"""
Per-task chat messages.

The stored author is whatever display name the client sent (trimmed);
the matching message_sent event is attributed through the actor
allow-list instead, so a chat author "Bob" shows up as "anonymous" in
the timeline.
"""
import logging
from typing import List, Optional

from .domain import build_preview, clean_text
from .events import EventType, record_event
from .schema import EventPayload, Message, make_id
from .store import BoardStore, guarded

logger = logging.getLogger(__name__)


@guarded()
def send_message(store: BoardStore, task_id: str, text: str, author: str) -> Optional[str]:
    """Append a message and its event. Returns the message id, or None if text or author is blank."""
    clean_body = clean_text(text)
    clean_author = clean_text(author)
    if clean_body is None or clean_author is None:
        logger.debug("send_message: blank text or author ignored")
        return None

    now = store.now()
    message = Message(
        id=make_id("msg"),
        task_id=str(task_id),
        text=clean_body,
        author=clean_author,
        created_at=now,
    )
    with store.transaction() as conn:
        conn.execute(
            "INSERT INTO messages (id, task_id, text, author, created_at) VALUES (?, ?, ?, ?, ?)",
            (message.id, message.task_id, message.text, message.author, message.created_at),
        )
        record_event(
            conn, message.task_id, EventType.MESSAGE_SENT, clean_author,
            payload=EventPayload(text_preview=build_preview(clean_body)),
            created_at=now,
            allowed_actors=store.allowed_actors,
        )

    logger.info("Message %s on task %s", message.id, message.task_id)
    return message.id


@guarded(default=list)
def list_messages(store: BoardStore, task_id: str) -> List[Message]:
    """Chat thread of one task, most recent first."""
    with store.transaction() as conn:
        rows = conn.execute(
            """
            SELECT * FROM messages
            WHERE task_id = ?
            ORDER BY created_at DESC, rowid DESC
            """,
            (task_id,),
        ).fetchall()
    return [Message.from_row(r) for r in rows]
