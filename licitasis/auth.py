from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from licitasis.application.auth_service import AuthService
from licitasis.db import get_db
from licitasis.domain.contracts import AuthLoginInput
from licitasis.errors import AuthenticationError


API_PREFIX = "/api/v1"
PUBLIC_PATHS = {f"{API_PREFIX}/auth/login", "/health", "/metrics"}

auth_bp = Blueprint("auth", __name__, url_prefix=f"{API_PREFIX}/auth")


def auth_service() -> AuthService:
    return AuthService(
        current_app.config["SECRET_KEY"],
        max_age_seconds=int(current_app.config.get("AUTH_TOKEN_MAX_AGE_SECONDS", 43200)),
    )


def _bearer_token() -> str | None:
    header = (request.headers.get("Authorization") or "").strip()
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _require_token():
        g.current_user = None
        g.user_id = None
        if not app.config.get("AUTH_ENABLED", True):
            return None
        if request.method == "OPTIONS":
            return None

        path = request.path or "/"
        if path in PUBLIC_PATHS or not path.startswith("/api/"):
            return None

        token = _bearer_token()
        if not token:
            raise AuthenticationError(code="auth_required", message_key="auth_required")
        user = auth_service().user_for_token(get_db(), token)
        g.current_user = user.to_dict()
        g.user_id = user.id
        return None


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or request.form or {}
    auth_input = AuthLoginInput(
        username=str(payload.get("username") or payload.get("email") or ""),
        password=str(payload.get("password") or ""),
    )
    db = get_db()
    result = auth_service().login(db, auth_input)
    current_app.logger.info("auth_login", extra={"username": auth_input.username.strip().lower()})
    return jsonify(result), 200


@auth_bp.route("/me", methods=["GET"])
def me():
    user = getattr(g, "current_user", None)
    if user is None:
        raise AuthenticationError(code="auth_required", message_key="auth_required")
    return jsonify(user), 200
