import atexit
import os

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from app.config import Config
from app.db import close_db, init_db
from app.db_migrations import register_db_cli
from app.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
)


def create_app(config_class=Config, *, notification_gateway=None, email_gateway=None, now_fn=None):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    _ensure_database_dir(app)
    _register_error_handlers(app)
    _register_tenant(app)
    _register_engine(app, notification_gateway=notification_gateway, email_gateway=email_gateway, now_fn=now_fn)
    _register_blueprints(app)
    _register_health(app)
    register_db_cli(app)
    _maybe_init_schema(app)

    app.teardown_appcontext(close_db)
    return app


def _ensure_database_dir(app: Flask) -> None:
    database_dir = app.config.get("DATABASE_DIR")
    if database_dir:
        os.makedirs(database_dir, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        # Tests stay self-contained without running alembic.
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("db_auto_init_ignored", extra={"flask_env": flask_env})
        return

    with app.app_context():
        init_db()


def _register_engine(app: Flask, *, notification_gateway=None, email_gateway=None, now_fn=None) -> None:
    from app.contexts.rfq.application.engine import build_rfq_engine

    options = {"notification_gateway": notification_gateway, "email_gateway": email_gateway}
    if now_fn is not None:
        options["now_fn"] = now_fn
    engine = build_rfq_engine(app.config, **options)
    app.extensions["rfq_engine"] = engine
    if engine.dispatcher.mode == "thread":
        atexit.register(engine.shutdown, 2.0)


def _register_blueprints(app: Flask) -> None:
    from app.routes.rfq_routes import rfq_bp

    app.register_blueprint(rfq_bp)


def _register_error_handlers(app: Flask) -> None:
    from app.errors import AppError, SystemError

    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()
        mark_request_start()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        return observe_response(response)

    def _log_error(error: AppError, request_id: str) -> None:
        log_method = app.logger.error if error.critical else app.logger.warning
        log_method(
            "application_error",
            extra={
                "request_id": request_id,
                "error_code": error.code,
                "http_status": error.http_status,
                "message_key": error.message_key,
                "details": error.details,
                "request_path": request.path,
                "http_method": request.method,
            },
            exc_info=error.critical,
        )

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        request_id = ensure_request_id()
        _log_error(exc, request_id)
        return jsonify(exc.to_response_payload(request_id)), exc.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc

        request_id = ensure_request_id()
        mapped = SystemError(
            code="unexpected_error",
            message_key="unexpected_error",
            http_status=500,
            critical=True,
            details=str(exc),
        )
        app.logger.exception(
            "unexpected_exception",
            extra={
                "request_id": request_id,
                "error_code": mapped.code,
                "request_path": request.path,
                "http_method": request.method,
            },
        )
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status


def _register_tenant(app: Flask) -> None:
    from app.tenant import tenant_from_headers

    @app.before_request
    def load_tenant() -> None:
        g.tenant_id = tenant_from_headers()


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        engine = app.extensions["rfq_engine"]
        side_effects = engine.dispatcher.health()
        status = "ok"
        if side_effects["mode"] == "thread" and side_effects["pending"] and not side_effects["worker_alive"]:
            status = "degraded"
        return {
            "status": status,
            "db": backend,
            "side_effects": side_effects,
            "metrics": metrics_snapshot(),
        }, 200
