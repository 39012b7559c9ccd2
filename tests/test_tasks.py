"""
Tests for task operations: create, status changes, description, reorder, move.
"""
from taskboard.events import EventType, list_task_events
from taskboard.messages import list_messages, send_message
from taskboard.schema import TaskStatus
from taskboard.tasks import (
    board_columns,
    create_task,
    cycle_status,
    get_task,
    list_tasks,
    move_task,
    remove_task,
    reorder,
    set_status,
    update_description,
)


def event_types(store, task_id):
    """Event types of one task, oldest first."""
    return [e.type for e in reversed(list_task_events(store, task_id))]


def column_ids(store, status):
    return [t.id for t in board_columns(store)[status.value]]


def insert_raw_task(store, task_id, status, order=0, updated_at=1):
    with store.transaction() as conn:
        conn.execute(
            """
            INSERT INTO tasks (id, title, description, status, order_index, created_at, updated_at)
            VALUES (?, ?, '', ?, ?, 1, ?)
            """,
            (task_id, f"Legacy {task_id}", status, order, updated_at),
        )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Create
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_create_trims_title_and_records_event(store, clock):
    """A new task keeps the trimmed title and gets a task_created event"""
    task_id = create_task(store, "  Title  ", actor="demo-user")
    assert task_id is not None

    task = get_task(store, task_id)
    assert task.title == "Title"
    assert task.description == ""
    assert task.status == TaskStatus.BACKLOG
    assert task.created_at == task.updated_at == clock.now

    events = list_task_events(store, task_id)
    assert len(events) == 1
    assert events[0].type == EventType.TASK_CREATED
    assert events[0].actor == "demo-user"
    assert events[0].payload.to_dict() == {}


def test_create_rejects_blank_titles(store):
    """Blank titles create nothing and return None"""
    assert create_task(store, "") is None
    assert create_task(store, "   ") is None
    assert store.counts() == {"tasks": 0, "messages": 0, "task_events": 0}


def test_create_prepends_into_column(store):
    """Without an explicit order, new tasks go on top of their column"""
    first = create_task(store, "First")
    second = create_task(store, "Second")
    done = create_task(store, "Finished", status="done")

    assert get_task(store, first).order == 0
    assert get_task(store, second).order == -1
    assert get_task(store, done).order == 0
    assert column_ids(store, TaskStatus.BACKLOG) == [second, first]


def test_create_with_explicit_order_and_legacy_status(store):
    task_id = create_task(store, "Shipped", status="completed", order=7, description="notes")
    task = get_task(store, task_id)
    assert task.status == TaskStatus.DONE
    assert task.order == 7
    assert task.description == "notes"


def test_create_accepts_fractional_order(store):
    """Any finite number is a valid explicit order"""
    half = create_task(store, "Half", order=2.5)
    whole = create_task(store, "Whole", order=3.0)
    flag = create_task(store, "Flag", order=True)

    assert get_task(store, half).order == 2.5
    assert get_task(store, whole).order == 3
    # Booleans are not orders: prepended above the 2.5 task
    assert get_task(store, flag).order == 1.5
    assert column_ids(store, TaskStatus.BACKLOG) == [flag, half, whole]


def test_create_unknown_actor_is_anonymous(store):
    task_id = create_task(store, "Someone else's", actor="mallory")
    assert list_task_events(store, task_id)[0].actor == "anonymous"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Status changes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_set_status_moves_to_top_of_target(store, clock):
    """set_status re-ranks the task at the top of the new column"""
    existing = create_task(store, "Already done", status="done")
    task_id = create_task(store, "Test")
    clock.advance()

    assert set_status(store, task_id, "done", actor="demo-user") == TaskStatus.DONE

    task = get_task(store, task_id)
    assert task.status == TaskStatus.DONE
    assert task.order == get_task(store, existing).order - 1
    assert task.updated_at == clock.now

    event = list_task_events(store, task_id)[0]
    assert event.type == EventType.TASK_STATUS_CHANGED
    assert event.payload.to_dict() == {"from": "backlog", "to": "done"}


def test_set_status_same_status_is_noop(store, clock):
    """Same canonical status: no write, no event, current status returned"""
    task_id = create_task(store, "Test")
    before = get_task(store, task_id)
    clock.advance()

    assert set_status(store, task_id, "backlog") == TaskStatus.BACKLOG
    # Legacy spelling of the same column is still a no-op
    assert set_status(store, task_id, "active") == TaskStatus.BACKLOG

    assert get_task(store, task_id).updated_at == before.updated_at
    assert event_types(store, task_id) == [EventType.TASK_CREATED]


def test_set_status_rewrites_legacy_stored_value(store):
    """A legacy stored status is rewritten even when the column is unchanged"""
    insert_raw_task(store, "legacy-1", "active")

    assert set_status(store, "legacy-1", "backlog") == TaskStatus.BACKLOG

    with store.transaction() as conn:
        raw = conn.execute("SELECT status FROM tasks WHERE id = 'legacy-1'").fetchone()[0]
    assert raw == "backlog"
    event = list_task_events(store, "legacy-1")[0]
    assert event.payload.to_dict() == {"from": "backlog", "to": "backlog"}


def test_set_status_missing_task(store):
    assert set_status(store, "nope", "done") is None
    assert cycle_status(store, "nope") is None


def test_cycle_status_round_trip(store):
    """Three cycles return to backlog with strictly increasing updatedAt"""
    task_id = create_task(store, "Cycle me")
    seen = []
    stamps = [get_task(store, task_id).updated_at]
    for _ in range(3):
        seen.append(cycle_status(store, task_id, actor="demo-user"))
        stamps.append(get_task(store, task_id).updated_at)

    assert seen == [TaskStatus.IN_PROGRESS, TaskStatus.DONE, TaskStatus.BACKLOG]
    assert all(a < b for a, b in zip(stamps, stamps[1:]))
    assert event_types(store, task_id) == [
        EventType.TASK_CREATED,
        EventType.TASK_STATUS_CHANGED,
        EventType.TASK_STATUS_CHANGED,
        EventType.TASK_STATUS_CHANGED,
    ]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Remove & description
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_remove_leaves_messages_and_events(store):
    """Deleting a task records nothing and orphans its thread"""
    task_id = create_task(store, "Doomed")
    send_message(store, task_id, "bye", "Bob")

    assert remove_task(store, task_id) is True
    assert get_task(store, task_id) is None
    assert len(list_messages(store, task_id)) == 1
    assert event_types(store, task_id) == [EventType.TASK_CREATED, EventType.MESSAGE_SENT]

    assert remove_task(store, task_id) is False


def test_update_description_patches_once(store, clock):
    """Same description twice → exactly one patch and one event"""
    task_id = create_task(store, "Describe me")
    clock.advance()
    text = "   " + "d" * 100 + "   "

    updated = update_description(store, task_id, text, actor="demo-user")
    assert updated is not None
    assert updated.description == text
    assert updated.updated_at == clock.now

    clock.advance()
    assert update_description(store, task_id, text) is None
    assert get_task(store, task_id).updated_at == updated.updated_at

    events = [e for e in list_task_events(store, task_id)
              if e.type == EventType.TASK_DESCRIPTION_UPDATED]
    assert len(events) == 1
    assert events[0].payload.text_preview == "d" * 80


def test_update_description_missing_task(store):
    assert update_description(store, "nope", "text") is None


def test_update_description_rejects_non_string(store):
    task_id = create_task(store, "Typed", description="keep")

    assert update_description(store, task_id, 5) is None
    assert update_description(store, task_id, {"text": "x"}) is None

    assert get_task(store, task_id).description == "keep"
    assert event_types(store, task_id) == [EventType.TASK_CREATED]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Reorder
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_reorder_rewrites_order_and_status(store):
    """Listing tasks under a column moves them there, ranked by position"""
    a = create_task(store, "A")
    b = create_task(store, "B", status="in_progress")

    reorder(store, [{"status": "done", "orderedIds": [b, a]}])

    task_a, task_b = get_task(store, a), get_task(store, b)
    assert (task_b.order, task_b.status) == (0, TaskStatus.DONE)
    assert (task_a.order, task_a.status) == (1, TaskStatus.DONE)
    # No moved task → no annotation events
    assert event_types(store, a) == [EventType.TASK_CREATED]


def test_reorder_across_columns_records_status_change(store):
    a = create_task(store, "A")
    d = create_task(store, "D", status="done")

    reorder(
        store,
        [
            {"status": "backlog", "orderedIds": []},
            {"status": "done", "orderedIds": [a, d]},
        ],
        moved_task_id=a,
        from_status="backlog",
        to_status="done",
        from_index=0,
        to_index=0,
        actor="demo-user",
    )

    assert column_ids(store, TaskStatus.DONE) == [a, d]
    assert event_types(store, a) == [EventType.TASK_CREATED, EventType.TASK_STATUS_CHANGED]
    event = list_task_events(store, a)[0]
    assert event.payload.to_dict() == {"from": "backlog", "to": "done"}
    assert event.actor == "demo-user"


def test_reorder_records_client_move_metadata(store):
    """Timeline events carry the indices and statuses the client reported"""
    a = create_task(store, "A")
    b = create_task(store, "B")

    reorder(
        store,
        [{"status": "backlog", "orderedIds": [b, a]}],
        moved_task_id=a,
        from_status="backlog",
        to_status="done",
        from_index=0,
        to_index=1,
    )

    # Placement follows the columns only
    assert column_ids(store, TaskStatus.BACKLOG) == [b, a]
    assert event_types(store, a) == [
        EventType.TASK_CREATED,
        EventType.TASK_REORDERED,
        EventType.TASK_STATUS_CHANGED,
    ]
    status_event, reorder_event = list_task_events(store, a)[:2]
    assert reorder_event.payload.to_dict() == {"fromIndex": 0, "toIndex": 1}
    assert status_event.payload.to_dict() == {"from": "backlog", "to": "done"}


def test_reorder_without_indices_records_nothing(store):
    a = create_task(store, "A")
    b = create_task(store, "B")

    reorder(store, [{"status": "backlog", "orderedIds": [a, b]}], moved_task_id=a)

    assert column_ids(store, TaskStatus.BACKLOG) == [a, b]
    assert event_types(store, a) == [EventType.TASK_CREATED]


def test_reorder_metadata_needs_differing_values(store):
    """Equal indices and statuses that normalize alike are not events"""
    a = create_task(store, "A")

    reorder(
        store,
        [{"status": "backlog", "orderedIds": [a]}],
        moved_task_id=a,
        from_status="active",
        to_status="backlog",
        from_index=0,
        to_index=0,
    )
    reorder(store, [("backlog", [a])], moved_task_id=a, from_index=True, to_index=3)

    assert event_types(store, a) == [EventType.TASK_CREATED]


def test_reorder_metadata_ignored_without_moved_task(store):
    a = create_task(store, "A")

    reorder(
        store,
        [{"status": "done", "orderedIds": [a]}],
        from_status="backlog",
        to_status="done",
        from_index=0,
        to_index=1,
    )

    assert get_task(store, a).status == TaskStatus.DONE
    assert event_types(store, a) == [EventType.TASK_CREATED]


def test_reorder_skips_unknown_and_repeated_ids(store):
    """Orders stay contiguous from 0 when ids are missing or repeated"""
    a = create_task(store, "A")
    b = create_task(store, "B")

    reorder(store, [{"status": "in_progress", "orderedIds": [a, "missing", a, b]}])

    assert get_task(store, a).order == 0
    assert get_task(store, b).order == 1
    assert column_ids(store, TaskStatus.IN_PROGRESS) == [a, b]


def test_reorder_accepts_tuples(store):
    a = create_task(store, "A")
    reorder(store, [("done", [a])])
    assert get_task(store, a).status == TaskStatus.DONE


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Move
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_move_within_column(store):
    a = create_task(store, "A")
    b = create_task(store, "B")
    c = create_task(store, "C")

    assert move_task(store, a, "backlog", 0) == TaskStatus.BACKLOG

    assert column_ids(store, TaskStatus.BACKLOG) == [a, c, b]
    assert [get_task(store, t).order for t in (a, c, b)] == [0, 1, 2]
    assert list_task_events(store, a)[0].payload.to_dict() == {"fromIndex": 2, "toIndex": 0}


def test_move_across_columns_clamps_index(store):
    a = create_task(store, "A")
    b = create_task(store, "B")
    c = create_task(store, "C")

    assert move_task(store, c, "in_progress", 5, actor="demo-user") == TaskStatus.IN_PROGRESS

    assert column_ids(store, TaskStatus.IN_PROGRESS) == [c]
    assert column_ids(store, TaskStatus.BACKLOG) == [b, a]
    assert [get_task(store, t).order for t in (b, a)] == [0, 1]
    # Index 0 → 0, so only the status change is recorded
    assert event_types(store, c) == [EventType.TASK_CREATED, EventType.TASK_STATUS_CHANGED]


def test_move_without_index_goes_to_bottom(store):
    d1 = create_task(store, "D1", status="done")
    a = create_task(store, "A")

    move_task(store, a, "done")

    assert column_ids(store, TaskStatus.DONE) == [d1, a]


def test_move_missing_task(store):
    assert move_task(store, "nope", "done", 0) is None


def test_list_tasks_sorted_by_order(store):
    a = create_task(store, "A", order=3)
    b = create_task(store, "B", order=-2, status="done")
    c = create_task(store, "C", order=1)
    assert [t.id for t in list_tasks(store)] == [b, c, a]
