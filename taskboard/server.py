#!/usr/bin/env python3
"""
Taskboard Server
-----------------
JSON API for the kanban board, backed by flat JSON snapshot files.

Usage:
    taskboard-server --mode per-account --port 3001
    taskboard-server --config config/taskboard.yaml

    # Single shared password
    TASKBOARD_MODE=shared-secret TASKBOARD_PASSWORD=… taskboard-server

API:
    GET    /health              → { status: "ok" }
    GET    /projects            → [ project ]          (default project ensured)
    POST   /projects            → project              body { name, color }
    PUT    /projects/<id>       → project              body { name?, color? }
    DELETE /projects/<id>       → 204                  (cascades to its tasks)
    GET    /tasks               → [ task ]
    POST   /tasks               → task                 body { title, projectId, … }
    PUT    /tasks/<id>          → task                 body { any task field }
    DELETE /tasks/<id>          → 204

  per-account mode:
    POST /auth/register, /auth/login   body { email, password } → { user, accessToken }
    POST /auth/refresh                 refreshToken cookie      → { user, accessToken }
    POST /auth/logout                  → 204
    GET  /auth/me                      → { user }

  shared-secret mode:
    POST /login                        body { username, password } → { token }
    POST /logout                       → 204

Errors are always { error: message } with the status of the error class.
"""

import logging
from functools import wraps
from pathlib import Path

from flask import Flask, Blueprint, current_app, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .access import OpenAccess, SharedSecretAccess, PerAccountAccess, bearer_token
from .accounts import AccountStore
from .audit import AuditLogger
from .config import Config
from .errors import KanbanError, ConfigError
from .storage import JsonFileStorage, empty_data_snapshot, empty_auth_snapshot
from .store import KanbanStore

logger = logging.getLogger(__name__)

REFRESH_COOKIE = "refreshToken"

board = Blueprint("board", __name__)
auth = Blueprint("auth", __name__, url_prefix="/auth")
shared = Blueprint("shared", __name__)


# ── App state ────────────────────────────────────────────────────────────────

def _state() -> dict:
    return current_app.extensions["taskboard"]


def _store() -> KanbanStore:
    return _state()["store"]


def _access():
    return _state()["access"]


def _body() -> dict:
    """JSON object body; anything else reads as empty."""
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def require_scope(f):
    """Decorator: resolve the caller's scope into g.owner_id or answer 401."""
    @wraps(f)
    def decorated(*args, **kwargs):
        g.owner_id = _access().authenticate(request.headers)
        return f(*args, **kwargs)
    return decorated


# ── Cookies ──────────────────────────────────────────────────────────────────

def _set_refresh_cookie(resp, token: str):
    cfg = _state()["config"]
    resp.set_cookie(
        REFRESH_COOKIE,
        token,
        httponly=True,
        samesite="Lax",
        secure=cfg.production,
        max_age=cfg.refresh_token_ttl_ms // 1000,
        path="/",
    )
    return resp


def _clear_refresh_cookie(resp):
    cfg = _state()["config"]
    resp.set_cookie(
        REFRESH_COOKIE,
        "",
        httponly=True,
        samesite="Lax",
        secure=cfg.production,
        max_age=0,
        path="/",
    )
    return resp


# ── Board routes ─────────────────────────────────────────────────────────────

@board.route("/health")
def health():
    return jsonify({"status": "ok"})


@board.route("/projects", methods=["GET"])
@require_scope
def list_projects():
    projects = _store().list_projects(owner_id=g.owner_id)
    return jsonify([p.to_dict() for p in projects])


@board.route("/projects", methods=["POST"])
@require_scope
def create_project():
    data = _body()
    project = _store().create_project(
        data.get("name"), data.get("color"), owner_id=g.owner_id
    )
    return jsonify(project.to_dict()), 201


@board.route("/projects/<project_id>", methods=["PUT"])
@require_scope
def update_project(project_id):
    project = _store().update_project(project_id, _body(), owner_id=g.owner_id)
    return jsonify(project.to_dict())


@board.route("/projects/<project_id>", methods=["DELETE"])
@require_scope
def delete_project(project_id):
    _store().delete_project(project_id, owner_id=g.owner_id)
    return "", 204


@board.route("/tasks", methods=["GET"])
@require_scope
def list_tasks():
    tasks = _store().list_tasks(owner_id=g.owner_id)
    return jsonify([t.to_dict() for t in tasks])


@board.route("/tasks", methods=["POST"])
@require_scope
def create_task():
    data = _body()
    task = _store().create_task(
        data.get("title"),
        data.get("projectId"),
        description=data.get("description", ""),
        status=data.get("status", "todo"),
        priority=data.get("priority", "none"),
        owner_id=g.owner_id,
    )
    return jsonify(task.to_dict()), 201


@board.route("/tasks/<task_id>", methods=["PUT"])
@require_scope
def update_task(task_id):
    task = _store().update_task(task_id, _body(), owner_id=g.owner_id)
    return jsonify(task.to_dict())


@board.route("/tasks/<task_id>", methods=["DELETE"])
@require_scope
def delete_task(task_id):
    _store().delete_task(task_id, owner_id=g.owner_id)
    return "", 204


# ── Per-account auth routes ──────────────────────────────────────────────────

@auth.route("/register", methods=["POST"])
def register():
    data = _body()
    session = _access().register(data.get("email"), data.get("password"))
    resp = jsonify(session.to_dict())
    resp.status_code = 201
    return _set_refresh_cookie(resp, session.refresh_token)


@auth.route("/login", methods=["POST"])
def login():
    data = _body()
    session = _access().login(data.get("email"), data.get("password"))
    return _set_refresh_cookie(jsonify(session.to_dict()), session.refresh_token)


@auth.route("/refresh", methods=["POST"])
def refresh():
    try:
        session = _access().refresh(request.cookies.get(REFRESH_COOKIE))
    except KanbanError as e:
        resp = jsonify({"error": str(e)})
        resp.status_code = e.status_code
        return _clear_refresh_cookie(resp)
    return _set_refresh_cookie(jsonify(session.to_dict()), session.refresh_token)


@auth.route("/logout", methods=["POST"])
def logout():
    _access().logout(request.cookies.get(REFRESH_COOKIE), request.headers)
    resp = current_app.response_class(status=204)
    return _clear_refresh_cookie(resp)


@auth.route("/me", methods=["GET"])
def me():
    return jsonify({"user": _access().current_user(request.headers)})


# ── Shared-secret routes ─────────────────────────────────────────────────────

@shared.route("/login", methods=["POST"])
def shared_login():
    data = _body()
    token = _access().login(data.get("username"), data.get("password"))
    return jsonify({"token": token})


@shared.route("/logout", methods=["POST"])
def shared_logout():
    _access().logout(bearer_token(request.headers))
    return "", 204


# ── Error handling ───────────────────────────────────────────────────────────

def _register_error_handlers(app: Flask) -> None:

    @app.errorhandler(KanbanError)
    def handle_kanban_error(e):
        return jsonify({"error": str(e)}), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        if e.code == 413:
            return jsonify({"error": "Request body too large"}), 413
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        app.logger.exception(f"Unhandled error on {request.method} {request.path}: {e}")
        return jsonify({"error": "Internal server error"}), 500


# ── App factory ──────────────────────────────────────────────────────────────

def build_access(config: Config, store: KanbanStore, audit: AuditLogger):
    """Access strategy for config.mode."""
    if config.mode == "open":
        return OpenAccess()
    if config.mode == "shared-secret":
        return SharedSecretAccess(
            config.username,
            config.resolved_password_hash(),
            token_ttl=config.shared_token_ttl,
            audit=audit,
        )
    if config.mode == "per-account":
        accounts = AccountStore(
            JsonFileStorage(config.auth_path, empty_auth_snapshot()),
            config.jwt_secret,
            access_ttl=config.access_ttl_seconds,
            refresh_ttl_ms=config.refresh_token_ttl_ms,
            audit=audit,
        )
        return PerAccountAccess(accounts, store)
    raise ConfigError(f"Unknown mode '{config.mode}'")


def create_app(config: Config = None, store: KanbanStore = None, access=None) -> Flask:
    """
    Build the Flask app. store and access default to the file-backed
    implementations described by config.
    """
    config = config or Config().validate()
    if store is None:
        store = KanbanStore(JsonFileStorage(config.data_path, empty_data_snapshot()))
    if access is None:
        access = build_access(config, store, AuditLogger(config.audit_log))

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.max_body_bytes
    app.extensions["taskboard"] = {"config": config, "store": store, "access": access}

    CORS(app, origins=config.cors_origins or "*", supports_credentials=True)

    app.register_blueprint(board)
    if isinstance(access, PerAccountAccess):
        app.register_blueprint(auth)
    elif isinstance(access, SharedSecretAccess):
        app.register_blueprint(shared)

    _register_error_handlers(app)
    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="Taskboard Server")
    parser.add_argument("--config", help="Path to taskboard.yaml")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--mode", choices=["open", "shared-secret", "per-account"])
    parser.add_argument("--data", help="Path to data.json")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [taskboard] %(levelname)s: %(message)s",
    )

    config = Config.load(args.config)
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.mode:
        config.mode = args.mode
    if args.data:
        config.data_path = args.data
    config.validate()

    app = create_app(config)
    access = app.extensions["taskboard"]["access"]
    if isinstance(access, PerAccountAccess):
        dropped = access.accounts.purge_expired()
        if dropped:
            logger.info(f"Purged {dropped} expired refresh token(s)")

    print(f"""
╔═══════════════════════════════════════╗
║  Taskboard Server                     ║
╠═══════════════════════════════════════╣
║  URL:  http://{config.host}:{config.port:<20}║
║  Data: {str(Path(config.data_path)):<31}║
║  Mode: {config.mode:<31}║
╚═══════════════════════════════════════╝
""")

    app.run(host=config.host, port=config.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
