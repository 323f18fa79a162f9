from __future__ import annotations

from typing import Iterable, Set

from flask import current_app, g

from licitasis.errors import PermissionError as AppPermissionError


VALID_ROLES: Set[str] = {"admin", "cliente"}


def normalize_role(role: str | None, default: str = "cliente") -> str:
    normalized = str(role or "").strip().lower()
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def role_for_user(user: dict | None) -> str:
    if not user:
        return "cliente"
    return "admin" if user.get("is_admin") else "cliente"


def current_role() -> str:
    user = getattr(g, "current_user", None)
    if user is None and not current_app.config.get("AUTH_ENABLED", True):
        # Auth disabled (local development): every caller acts as admin.
        return "admin"
    return role_for_user(user)


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role, default="")
        if normalized:
            allowed.add(normalized)
    return allowed


def has_any_role(role: str | None, allowed_roles: Iterable[str]) -> bool:
    normalized_role = normalize_role(role)
    allowed = normalize_allowed_roles(allowed_roles)
    return not allowed or normalized_role in allowed


def require_roles(*allowed_roles: str, role: str | None = None) -> str:
    normalized_role = normalize_role(role) if role is not None else current_role()
    if has_any_role(normalized_role, allowed_roles):
        return normalized_role
    raise AppPermissionError(
        code="permission_denied",
        message_key="permission_denied",
        http_status=403,
        critical=False,
    )


def require_admin() -> str:
    return require_roles("admin")
