#!/usr/bin/env python3
"""
Taskboard Server
----------------
JSON API over the board coordinator, backed by SQLite.

Usage:
    taskboard-server --port 3000
    taskboard-server --config taskboard.yaml --db /var/lib/taskboard/taskboard.db

Every /api route needs two headers:
    X-API-Key  → shared secret (env var named by api_secret_env)
    X-User-Id  → caller id, already authenticated upstream

API:
    POST   /api/users                           → create a user
    GET    /api/projects                        → projects the caller belongs to
    POST   /api/projects                        → create project (+ default columns)
    GET    /api/projects/<id>                   → project + members
    GET    /api/projects/<id>/members           → list members
    POST   /api/projects/<id>/members           → add member
    DELETE /api/projects/<id>/members/<user>    → remove member (owner/admin)
    POST   /api/projects/<id>/columns           → add column
    GET    /api/projects/<id>/board             → columns, ordered tasks, recent events
    POST   /api/tasks                           → create task (optional auto-assign)
    PATCH  /api/tasks/<id>                      → edit fields
    POST   /api/tasks/<id>/move                 → { columnId, dropIndex }
    POST   /api/tasks/<id>/advance              → { status }
    POST   /api/ai/analyze-task                 → assignee + estimate preview
    GET    /health
"""

import hmac
import logging
import sys
from functools import wraps
from typing import Optional

from flask import Flask, current_app, g, jsonify, request

from .assignment import AssignmentResolver
from .config import Config
from .coordinator import BoardMutationCoordinator
from .errors import (
    AssignmentIndeterminateError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    TaskboardError,
    ValidationError,
)
from .events import ProjectEventChannel, project_topic
from .schema import User, new_id
from .store import BoardStore
from .suggester import LLMSuggester

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    AssignmentIndeterminateError: 422,
    PersistenceError: 500,
}


def build_coordinator(cfg: Config) -> BoardMutationCoordinator:
    store = BoardStore(cfg.db_path)
    suggester = LLMSuggester(
        api_key=cfg.suggestion_api_key,
        url=cfg.suggestion_url,
        model=cfg.suggestion_model,
        timeout=cfg.suggestion_timeout,
    )
    resolver = AssignmentResolver(suggester, store.count_in_progress)
    events = ProjectEventChannel(
        webhook_url=cfg.event_webhook_url,
        webhook_timeout=cfg.event_webhook_timeout,
        history=cfg.event_history,
        max_topics=cfg.event_history_topics,
    )
    return BoardMutationCoordinator(store, resolver, events)


def _coordinator() -> BoardMutationCoordinator:
    return current_app.config["COORDINATOR"]


# ── Auth ─────────────────────────────────────────────────────────────────────

def require_api_key(f):
    """Decorator: reject requests without a valid X-API-Key and X-User-Id."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = current_app.config["API_SECRET"]
        if not secret:
            return jsonify({"error": "API secret not set"}), 503
        provided = request.headers.get("X-API-Key", "").strip()
        if not hmac.compare_digest(provided, secret):
            code = 401 if not provided else 403
            return jsonify({"error": "Unauthorized"}), code
        user_id = request.headers.get("X-User-Id", "").strip()
        if not user_id:
            return jsonify({"error": "X-User-Id header is required"}), 401
        g.user_id = user_id
        return f(*args, **kwargs)
    return decorated


def _body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def _drop_index(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("dropIndex must be an integer", field="dropIndex")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("dropIndex must be an integer", field="dropIndex")


def _flag(data: dict, *names: str) -> bool:
    """First present boolean flag among names; absent means False."""
    for name in names:
        if name in data:
            value = data[name]
            if not isinstance(value, bool):
                raise ValidationError(f"{name} must be a boolean", field=name)
            return value
    return False


def create_app(cfg: Optional[Config] = None,
               coordinator: Optional[BoardMutationCoordinator] = None) -> Flask:
    """Build the Flask app; tests pass their own coordinator."""
    cfg = cfg or Config.load()
    app = Flask(__name__)
    app.config["API_SECRET"] = cfg.api_secret
    app.config["COORDINATOR"] = coordinator or build_coordinator(cfg)

    @app.errorhandler(TaskboardError)
    def handle_taskboard_error(e: TaskboardError):
        status = ERROR_STATUS.get(type(e), 500)
        if status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e.message}")
        return jsonify(e.to_dict()), status

    # ── Routes ───────────────────────────────────────────────────────────────

    @app.route("/api/users", methods=["POST"])
    @require_api_key
    def api_create_user():
        data = _body()
        first_name = (data.get("firstName") or "").strip()
        if not first_name:
            raise ValidationError("firstName is required", field="firstName")
        store = _coordinator().store
        user_id = data.get("id")
        if user_id and store.get_user(user_id):
            raise ValidationError("User id already exists", field="id")
        user = User(
            id=user_id or new_id(),
            first_name=first_name,
            last_name=(data.get("lastName") or "").strip(),
            email=data.get("email") or "",
            role=data.get("role") or "MEMBER",
        )
        store.save_user(user)
        return jsonify({"user": user.to_dict()}), 201

    @app.route("/api/projects")
    @require_api_key
    def api_list_projects():
        projects = _coordinator().list_projects(g.user_id)
        return jsonify({"projects": [p.to_dict() for p in projects]})

    @app.route("/api/projects", methods=["POST"])
    @require_api_key
    def api_create_project():
        data = _body()
        project = _coordinator().create_project(
            g.user_id,
            name=data.get("name"),
            key=data.get("key"),
            description=data.get("description", ""),
            color=data.get("color"),
        )
        return jsonify({"project": project.to_dict(), "message": "Project created successfully"}), 201

    @app.route("/api/projects/<project_id>")
    @require_api_key
    def api_get_project(project_id):
        coordinator = _coordinator()
        project = coordinator.get_project(g.user_id, project_id)
        members = coordinator.list_members(g.user_id, project.id)
        return jsonify({"project": project.to_dict(), "members": members})

    @app.route("/api/projects/<project_id>/members")
    @require_api_key
    def api_list_members(project_id):
        return jsonify({"members": _coordinator().list_members(g.user_id, project_id)})

    @app.route("/api/projects/<project_id>/members", methods=["POST"])
    @require_api_key
    def api_add_member(project_id):
        data = _body()
        _coordinator().add_member(g.user_id, project_id, data.get("userId"),
                                  role=data.get("role") or "MEMBER")
        return jsonify({"projectId": project_id, "userId": data.get("userId")}), 201

    @app.route("/api/projects/<project_id>/members/<member_id>", methods=["DELETE"])
    @require_api_key
    def api_remove_member(project_id, member_id):
        _coordinator().remove_member(g.user_id, project_id, member_id)
        return jsonify({"message": "Member removed successfully"})

    @app.route("/api/projects/<project_id>/columns", methods=["POST"])
    @require_api_key
    def api_add_column(project_id):
        data = _body()
        column = _coordinator().add_column(g.user_id, project_id, data.get("name"),
                                           color=data.get("color"))
        return jsonify({"column": column.to_dict()}), 201

    @app.route("/api/projects/<project_id>/board")
    @require_api_key
    def api_board(project_id):
        coordinator = _coordinator()
        board = coordinator.get_board(g.user_id, project_id)
        board["events"] = coordinator.events.recent(project_topic(project_id), 20)
        return jsonify(board)

    @app.route("/api/tasks", methods=["POST"])
    @require_api_key
    def api_create_task():
        data = _body()
        task = _coordinator().create_task(
            g.user_id,
            title=data.get("title"),
            description=data.get("description"),
            project_id=data.get("projectId"),
            column_id=data.get("columnId"),
            priority=data.get("priority"),
            assignee_id=data.get("assigneeId"),
            use_auto_assign=_flag(data, "useAutoAssign", "useAI"),
        )
        return jsonify({"task": task.to_dict(), "message": "Task created successfully"}), 201

    @app.route("/api/tasks/<task_id>", methods=["PATCH"])
    @require_api_key
    def api_update_task(task_id):
        data = _body()
        allowed = {"title", "description", "priority", "assigneeId", "status"}
        task = _coordinator().update_task(
            g.user_id, task_id, **{k: v for k, v in data.items() if k in allowed}
        )
        return jsonify({"task": task.to_dict(), "message": "Task updated successfully"})

    @app.route("/api/tasks/<task_id>/move", methods=["POST"])
    @require_api_key
    def api_move_task(task_id):
        data = _body()
        task = _coordinator().move_task(
            g.user_id, task_id, data.get("columnId"), _drop_index(data.get("dropIndex"))
        )
        return jsonify({"task": task.to_dict()})

    @app.route("/api/tasks/<task_id>/advance", methods=["POST"])
    @require_api_key
    def api_advance_task(task_id):
        data = _body()
        status = data.get("status")
        if not status:
            raise ValidationError("status is required", field="status")
        task = _coordinator().advance_task(g.user_id, task_id, status)
        return jsonify({"task": task.to_dict()})

    @app.route("/api/ai/analyze-task", methods=["POST"])
    @require_api_key
    def api_analyze_task():
        data = _body()
        analysis = _coordinator().analyze_task(
            g.user_id,
            project_id=data.get("projectId"),
            title=data.get("title"),
            description=data.get("description"),
        )
        return jsonify({"analysis": analysis})

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "db": _coordinator().store.db_path})

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="Taskboard Server")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--config", help="Path to taskboard.yaml (overrides TASKBOARD_CONFIG)")
    parser.add_argument("--db", help="Path to the SQLite database (overrides config)")
    args = parser.parse_args(argv)

    cfg = Config.load(args.config)
    if args.db:
        cfg.db_path = args.db

    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    if not cfg.api_secret:
        logger.warning(f"{cfg.api_secret_env} is not set: /api routes will answer 503")
    if not cfg.suggestion_api_key:
        logger.info("No suggestion API key: auto-assignment uses workload only")

    app = create_app(cfg)
    logger.info(f"Serving on http://{args.host}:{args.port} (db: {cfg.db_path})")
    app.run(host=args.host, port=args.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
