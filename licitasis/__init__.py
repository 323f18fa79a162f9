import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from licitasis.config import Config
from licitasis.db import close_db, init_db
from licitasis.db_migrations import register_db_cli
from licitasis.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
    prometheus_metrics_text,
)
from licitasis.security import apply_security_headers, enforce_rate_limit


_HTTP_ERROR_KEYS = {
    404: "not_found",
    405: "method_not_allowed",
    413: "payload_too_large",
}


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    _ensure_database_dir(app)
    _register_error_handlers(app)
    _register_auth(app)
    _register_security(app)
    _register_blueprints(app)
    _register_health(app)
    register_db_cli(app)
    _maybe_init_schema(app)

    _register_scheduler(app)
    app.teardown_appcontext(close_db)
    return app


def _ensure_database_dir(app: Flask) -> None:
    for key in ("DATABASE_DIR", "UPLOAD_DIR"):
        directory = app.config.get(key)
        if directory:
            os.makedirs(directory, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        # Testes criam o schema direto, sem depender do alembic.
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("DB_AUTO_INIT ignorado fora de development.")
        return

    with app.app_context():
        init_db()


def _register_blueprints(app: Flask) -> None:
    from licitasis.routes.cliente_routes import cliente_bp
    from licitasis.routes.contrato_routes import contrato_bp
    from licitasis.routes.documentacao_routes import documentacao_bp
    from licitasis.routes.licitacao_routes import licitacao_bp
    from licitasis.routes.pedido_routes import pedido_bp
    from licitasis.routes.relatorio_routes import relatorio_bp

    app.register_blueprint(cliente_bp)
    app.register_blueprint(licitacao_bp)
    app.register_blueprint(pedido_bp)
    app.register_blueprint(contrato_bp)
    app.register_blueprint(documentacao_bp)
    app.register_blueprint(relatorio_bp)


def _register_auth(app: Flask) -> None:
    from licitasis.auth import register_auth

    register_auth(app)


def _register_scheduler(app: Flask) -> None:
    from licitasis.scheduler import start_doc_status_scheduler

    start_doc_status_scheduler(app)


def _register_error_handlers(app: Flask) -> None:
    from licitasis.errors import AppError, IntegrationError, SystemError, UserActionError, classify_uasg_failure
    from licitasis.uasg_client import UasgLookupError

    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()
        mark_request_start()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        response = observe_response(response)
        return apply_security_headers(response)

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

    @app.errorhandler(UasgLookupError)
    def _handle_uasg_error(exc: UasgLookupError):
        request_id = ensure_request_id()
        code, message_key, http_status = classify_uasg_failure(str(exc))
        mapped = IntegrationError(
            code=code,
            message_key=message_key,
            http_status=http_status,
            critical=False,
            details=str(exc),
        )
        _log_error(mapped, request_id)
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            if not request.path.startswith("/api/"):
                return exc
            key = _HTTP_ERROR_KEYS.get(exc.code or 0, "action_invalid")
            mapped = UserActionError(code=key, message_key=key, http_status=exc.code)
            return jsonify(mapped.to_response_payload(ensure_request_id())), mapped.http_status

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


def _register_security(app: Flask) -> None:
    @app.before_request
    def _rate_limit_guard():
        return enforce_rate_limit()


def _register_health(app: Flask) -> None:
    from licitasis.scheduler import scheduler_state

    @app.route("/health")
    def health():
        from licitasis.db import get_db

        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        payload = {
            "status": "ok",
            "db": backend,
            "env": os.environ.get("FLASK_ENV", "development"),
            "metrics": {
                "http": metrics_snapshot(),
            },
            "scheduler": scheduler_state(app),
        }
        try:
            get_db().execute("SELECT 1").fetchone()
        except Exception:  # noqa: BLE001 - health nunca responde 500
            app.logger.warning("health_db_unavailable", exc_info=True)
            payload["status"] = "degraded"
        return payload, 200

    @app.route("/metrics")
    def metrics():
        body = prometheus_metrics_text(scheduler_state=scheduler_state(app))
        return app.response_class(body, mimetype="text/plain; version=0.0.4")
