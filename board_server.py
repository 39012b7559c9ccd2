#!/usr/bin/env python3
"""
Taskboard Server
----------------
JSON API over the task board database, plus a proxy for the SpeechCore
speech-to-text service.

Usage:
    python board_server.py --port 3000 --db ./board.db
    python board_server.py --seed en        # seed demo data, then serve

API:
    GET    /api/board                      → { tasks, columns, events, seeded }
    GET    /api/tasks                      → { tasks }
    POST   /api/tasks                      → { id }        body: { title, description?, status?, order?, actor? }
    DELETE /api/tasks/<id>                 → { removed }
    POST   /api/tasks/<id>/status          → { status }    body: { status, actor? }
    POST   /api/tasks/<id>/cycle           → { status }    body: { actor? }
    PUT    /api/tasks/<id>/description     → { task, changed }  body: { description, actor? }
    POST   /api/tasks/<id>/move            → { status }    body: { status, index?, actor? }
    POST   /api/tasks/reorder              → {}            body: { columns, movedTaskId?, ... }
    GET    /api/tasks/<id>/messages        → { messages }
    POST   /api/tasks/<id>/messages        → { id }        body: { text, author }
    GET    /api/tasks/<id>/events          → { events }
    GET    /api/seed                       → { seeded }
    POST   /api/seed                       → { counts }    body: { language }
    POST   /api/migrations/fix-statuses    → { updated }
    POST   /api/stt                        → { text, task_id }   multipart field "file"
    GET    /health                         → { status, db }

Environment: TASKBOARD_DB, TASKBOARD_CONFIG, TASKBOARD_ALLOWED_ACTORS,
SPEECHCORE_API_TOKEN, SPEECHCORE_AUTH_HEADER, SPEECHCORE_AUTH_PREFIX,
SPEECHCORE_BASE_URL.
"""

import logging

from flask import Flask, jsonify, request

from taskboard.config import BoardConfig
from taskboard.events import list_recent_events, list_task_events
from taskboard.messages import list_messages, send_message
from taskboard.migrations import fix_task_statuses
from taskboard.seed import seed_demo_data, seed_status
from taskboard.store import BoardStore
from taskboard.stt import SpeechCoreClient, SttError
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

logger = logging.getLogger(__name__)

app = Flask(__name__)


# ── Config ───────────────────────────────────────────────────────────────────

def get_config() -> BoardConfig:
    return BoardConfig.load()


def get_store(config: BoardConfig = None) -> BoardStore:
    config = config or get_config()
    return BoardStore(config.db_path, allowed_actors=config.allowed_actors)


def body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def not_found():
    return jsonify({"error": "Task not found"}), 404


@app.after_request
def add_cors_headers(response):
    if request.path.startswith("/api/"):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
    return response


@app.errorhandler(405)
def method_not_allowed(_error):
    return jsonify({"error": "Method not allowed"}), 405


# ── Board & tasks ────────────────────────────────────────────────────────────

@app.route("/api/board")
def api_board():
    store = get_store()
    columns = board_columns(store)
    return jsonify({
        "tasks":   [t.to_dict() for t in list_tasks(store)],
        "columns": {status: [t.to_dict() for t in tasks] for status, tasks in columns.items()},
        "events":  [e.to_dict() for e in list_recent_events(store, 20)],
        "seeded":  seed_status(store)["seeded"],
    })


@app.route("/api/tasks", methods=["GET"])
def api_list_tasks():
    return jsonify({"tasks": [t.to_dict() for t in list_tasks(get_store())]})


@app.route("/api/tasks", methods=["POST"])
def api_create_task():
    data = body()
    task_id = create_task(
        get_store(),
        data.get("title") or "",
        description=data.get("description"),
        status=data.get("status"),
        order=data.get("order"),
        actor=data.get("actor"),
    )
    if task_id is None:
        return jsonify({"error": "title is required"}), 400
    return jsonify({"id": task_id}), 201


@app.route("/api/tasks/<task_id>", methods=["DELETE"])
def api_remove_task(task_id):
    return jsonify({"removed": remove_task(get_store(), task_id)})


@app.route("/api/tasks/<task_id>/status", methods=["POST"])
def api_set_status(task_id):
    data = body()
    status = set_status(get_store(), task_id, data.get("status"), actor=data.get("actor"))
    if status is None:
        return not_found()
    return jsonify({"status": status.value})


@app.route("/api/tasks/<task_id>/cycle", methods=["POST"])
def api_cycle_status(task_id):
    status = cycle_status(get_store(), task_id, actor=body().get("actor"))
    if status is None:
        return not_found()
    return jsonify({"status": status.value})


@app.route("/api/tasks/<task_id>/description", methods=["PUT"])
def api_update_description(task_id):
    data = body()
    description = data.get("description")
    if description is None:
        description = ""
    if not isinstance(description, str):
        return jsonify({"error": "description must be a string"}), 400
    store = get_store()
    current = get_task(store, task_id)
    if current is None:
        return not_found()
    updated = update_description(store, task_id, description, actor=data.get("actor"))
    return jsonify({
        "task": (updated or current).to_dict(),
        "changed": updated is not None,
    })


@app.route("/api/tasks/<task_id>/move", methods=["POST"])
def api_move_task(task_id):
    data = body()
    status = move_task(
        get_store(), task_id, data.get("status"),
        to_index=data.get("index"),
        actor=data.get("actor"),
    )
    if status is None:
        return not_found()
    return jsonify({"status": status.value})


@app.route("/api/tasks/reorder", methods=["POST"])
def api_reorder():
    data = body()
    columns = data.get("columns")
    if not isinstance(columns, list) or not all(isinstance(c, dict) for c in columns):
        return jsonify({"error": "columns must be a list of {status, orderedIds}"}), 400
    reorder(
        get_store(),
        columns,
        moved_task_id=data.get("movedTaskId"),
        from_status=data.get("fromStatus"),
        to_status=data.get("toStatus"),
        from_index=data.get("fromIndex"),
        to_index=data.get("toIndex"),
        actor=data.get("actor"),
    )
    return jsonify({})


# ── Messages & events ────────────────────────────────────────────────────────

@app.route("/api/tasks/<task_id>/messages", methods=["GET"])
def api_list_messages(task_id):
    return jsonify({"messages": [m.to_dict() for m in list_messages(get_store(), task_id)]})


@app.route("/api/tasks/<task_id>/messages", methods=["POST"])
def api_send_message(task_id):
    data = body()
    message_id = send_message(
        get_store(), task_id, data.get("text") or "", data.get("author") or ""
    )
    if message_id is None:
        return jsonify({"error": "text and author are required"}), 400
    return jsonify({"id": message_id}), 201


@app.route("/api/tasks/<task_id>/events")
def api_list_events(task_id):
    return jsonify({"events": [e.to_dict() for e in list_task_events(get_store(), task_id)]})


# ── Demo seed & migrations ───────────────────────────────────────────────────

@app.route("/api/seed", methods=["GET"])
def api_seed_status():
    return jsonify(seed_status(get_store()))


@app.route("/api/seed", methods=["POST"])
def api_seed():
    config = get_config()
    language = body().get("language") or config.default_language
    counts = seed_demo_data(get_store(config), language)
    if counts is None:
        return jsonify({"error": f"Unsupported language: {language}"}), 400
    return jsonify({"counts": counts})


@app.route("/api/migrations/fix-statuses", methods=["POST"])
def api_fix_statuses():
    return jsonify({"updated": fix_task_statuses(get_store())})


# ── Speech-to-text proxy ─────────────────────────────────────────────────────

def make_stt_client(config: BoardConfig) -> SpeechCoreClient:
    return SpeechCoreClient(config.stt)


@app.route("/api/stt", methods=["POST"])
def api_stt():
    config = get_config()
    if not config.stt.token:
        return jsonify({"error": "Missing SPEECHCORE_API_TOKEN in environment"}), 400

    try:
        if request.mimetype != "multipart/form-data":
            return jsonify({"error": "Expected multipart/form-data"}), 400
        if not request.mimetype_params.get("boundary"):
            return jsonify({"error": "Multipart boundary is missing"}), 400

        upload = request.files.get("file")
        if upload is None:
            return jsonify({"error": "File not found in field 'file'"}), 400

        result = make_stt_client(config).transcribe(
            upload.read(),
            filename=upload.filename,
            content_type=upload.mimetype,
        )
        return jsonify(result)
    except SttError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        app.logger.exception("stt proxy failed")
        return jsonify({"error": str(e) or "Unexpected error"}), 500


@app.route("/health")
def health():
    return jsonify({"status": "ok", "db": get_config().db_path})


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    import argparse
    import os

    parser = argparse.ArgumentParser(description="Taskboard Server")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to board.db (overrides TASKBOARD_DB env var)")
    parser.add_argument("--config", help="Path to YAML config (overrides TASKBOARD_CONFIG)")
    parser.add_argument("--seed", choices=["ru", "en", "es"],
                        help="Seed demo data in this language before serving")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.db:
        os.environ["TASKBOARD_DB"] = args.db
    if args.config:
        os.environ["TASKBOARD_CONFIG"] = args.config

    config = get_config()
    if args.seed:
        counts = seed_demo_data(get_store(config), args.seed)
        logger.info("Seeded %s demo data: %s", args.seed, counts)

    host = args.host or config.host
    port = args.port or config.port
    logger.info("Taskboard on http://%s:%s (db %s)", host, port, config.db_path)
    app.run(host=host, port=port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
