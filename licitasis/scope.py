from __future__ import annotations

from flask import g

from licitasis.policies import current_role


# Matches no row; used for non-admin users without a linked cliente.
NO_CLIENTE_ID = 0


def current_user() -> dict | None:
    return getattr(g, "current_user", None)


def current_user_id() -> int | None:
    user = current_user()
    if not user:
        return None
    return int(user["id"])


def is_admin() -> bool:
    return current_role() == "admin"


def normalize_cliente_id(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def scoped_cliente_id(requested=None) -> int | None:
    """Cliente filter to apply: the caller's own cliente unless they are admin."""
    if is_admin():
        return normalize_cliente_id(requested)
    user = current_user() or {}
    return normalize_cliente_id(user.get("cliente_id")) or NO_CLIENTE_ID


def request_scope() -> int | None:
    """Repository scope for the caller: None for admins, else their own cliente."""
    if is_admin():
        return None
    return scoped_cliente_id()
