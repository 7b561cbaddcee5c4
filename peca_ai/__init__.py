import os

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from peca_ai.config import Config, validate_production_settings
from peca_ai.db import close_db, init_db
from peca_ai.db_migrations import register_db_cli
from peca_ai.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
    prometheus_metrics_text,
)
from peca_ai.security import apply_security_headers, enforce_form_csrf, enforce_rate_limit
from peca_ai.tenant import resolve_request_tenant


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    if not app.testing:
        validate_production_settings(app.config)
    configure_json_logging(app)

    _ensure_directories(app)
    _register_error_handlers(app)
    _register_security(app)
    _register_auth(app)
    _register_tenant(app)
    _register_blueprints(app)
    _register_health(app)
    register_db_cli(app)
    _maybe_init_schema(app)

    app.teardown_appcontext(close_db)
    return app


def _ensure_directories(app: Flask) -> None:
    for key in ("DATABASE_DIR", "UPLOAD_DIR"):
        directory = app.config.get(key)
        if directory:
            os.makedirs(directory, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("DB_AUTO_INIT ignorado fora de development; use 'flask db upgrade'.")
        return

    with app.app_context():
        init_db()


def _register_blueprints(app: Flask) -> None:
    from peca_ai.routes.assistant_routes import assistant_bp
    from peca_ai.routes.budget_routes import budget_bp
    from peca_ai.routes.home_routes import home_bp
    from peca_ai.routes.profile_routes import profile_bp
    from peca_ai.routes.public_routes import public_bp
    from peca_ai.routes.supplier_routes import supplier_bp

    app.register_blueprint(home_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(budget_bp)
    app.register_blueprint(assistant_bp)
    app.register_blueprint(supplier_bp)
    app.register_blueprint(profile_bp)


def _register_auth(app: Flask) -> None:
    from peca_ai.routes.auth_routes import register_auth

    register_auth(app)


def _register_error_handlers(app: Flask) -> None:
    from peca_ai.errors import AppError, SystemError

    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()
        mark_request_start()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        response = observe_response(response)
        return apply_security_headers(response)

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        request_id = ensure_request_id()
        log_method = app.logger.error if exc.critical else app.logger.warning
        log_method(
            "application_error",
            extra={
                "event": "application_error",
                "request_id": request_id,
                "error_code": exc.code,
                "http_status": exc.http_status,
                "message_key": exc.message_key,
                "details": exc.details,
                "request_path": request.path,
                "http_method": request.method,
            },
            exc_info=exc.critical,
        )
        return exc.to_response_payload(request_id), exc.http_status

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
                "event": "unexpected_exception",
                "request_id": request_id,
                "error_code": mapped.code,
                "request_path": request.path,
                "http_method": request.method,
            },
        )
        return mapped.to_response_payload(request_id), mapped.http_status


def _register_security(app: Flask) -> None:
    @app.before_request
    def _rate_limit_guard():
        return enforce_rate_limit()

    @app.before_request
    def _csrf_guard():
        enforce_form_csrf()


def _register_tenant(app: Flask) -> None:
    @app.before_request
    def _load_workshop() -> None:
        resolve_request_tenant()


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        from peca_ai.db import DATABASE_ERRORS, get_db

        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        payload = {
            "status": "ok",
            "db": backend,
            "webhook_enabled": bool(app.config.get("WEBHOOK_ENABLED", True)),
            "metrics": metrics_snapshot(),
        }
        try:
            get_db().execute("SELECT 1").fetchone()
        except DATABASE_ERRORS:
            app.logger.warning("health_db_unavailable", exc_info=True)
            payload["status"] = "degraded"
        return payload, 200

    @app.route("/metrics")
    def metrics():
        return prometheus_metrics_text(), 200, {"Content-Type": "text/plain; version=0.0.4; charset=utf-8"}
