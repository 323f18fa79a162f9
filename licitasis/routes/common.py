from __future__ import annotations

from typing import Any

from flask import current_app, request

from licitasis.scope import request_scope, scoped_cliente_id


API_PREFIX = "/api/v1"


def parse_int(value: Any, default: int, min_value: int, max_value: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = default
    return max(min_value, min(parsed, max_value))


def parse_optional_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def json_payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def scope() -> int | None:
    return request_scope()


def cliente_filter() -> int | None:
    """``cliente_id`` query filter; non-admins are pinned to their own cliente."""
    return scoped_cliente_id(request.args.get("cliente_id"))


def default_tax_rate() -> float:
    return float(current_app.config.get("DEFAULT_TAX_RATE", 6.0))


def page_args() -> tuple[Any, Any]:
    return request.args.get("page"), request.args.get("limit")
