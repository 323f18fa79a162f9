from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Dict

from flask import current_app, g, request

from licitasis.errors import ValidationError


_EXEMPT_PREFIXES = ("/health", "/metrics")
LOGIN_PATH = "/api/v1/auth/login"
_MAX_TRACKED_KEYS = 10_000

_API_CSP = "; ".join(
    [
        "default-src 'none'",
        "frame-ancestors 'none'",
        "base-uri 'none'",
        "form-action 'none'",
    ]
)

_DEFAULT_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), geolocation=(), microphone=()",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Content-Security-Policy": _API_CSP,
}


@dataclass
class _Window:
    started_at: float
    hits: int = 0


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int


class SimpleRateLimiter:
    """Fixed-window counter per key, kept in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._windows: Dict[str, _Window] = {}

    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateDecision:
        now = time.monotonic()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now - window.started_at >= window_seconds:
                window = _Window(started_at=now)
                self._windows[key] = window
            window.hits += 1
            if len(self._windows) > _MAX_TRACKED_KEYS:
                self._purge(now - window_seconds * 2)
            retry_after = max(0, int(window_seconds - (now - window.started_at)))
            return RateDecision(
                allowed=window.hits <= limit,
                limit=limit,
                remaining=max(0, limit - window.hits),
                retry_after=retry_after,
            )

    def _purge(self, cutoff: float) -> None:
        self._windows = {key: window for key, window in self._windows.items() if window.started_at >= cutoff}

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


_RATE_LIMITER = SimpleRateLimiter()


def _config_int(key: str, default: int) -> int:
    return max(1, int(current_app.config.get(key, default) or default))


def _login_identity() -> str:
    payload = request.get_json(silent=True)
    source = payload if isinstance(payload, dict) else request.form
    return str(source.get("username") or source.get("email") or "").strip().lower() or "-"


def _bucket_for_request() -> tuple[str, int]:
    ip = str(request.remote_addr or "").strip() or "unknown"
    if request.path == LOGIN_PATH and request.method == "POST":
        # Counts attempts per ip and username, whatever the outcome.
        limit = _config_int("RATE_LIMIT_LOGIN_MAX_REQUESTS", 10)
        return f"login|{ip}|{_login_identity()}", limit

    user = str(getattr(g, "user_id", "") or "").strip() or "anon"
    route = request.url_rule.rule if request.url_rule else request.path
    limit = _config_int("RATE_LIMIT_MAX_REQUESTS", 300)
    return f"api|{ip}|{user}|{request.method}|{route}", limit


def enforce_rate_limit():
    if not bool(current_app.config.get("RATE_LIMIT_ENABLED", True)):
        return None
    if request.method == "OPTIONS" or request.path.startswith(_EXEMPT_PREFIXES):
        return None

    key, limit = _bucket_for_request()
    decision = _RATE_LIMITER.hit(
        key,
        limit=limit,
        window_seconds=_config_int("RATE_LIMIT_WINDOW_SECONDS", 60),
    )
    g.rate_limit = decision
    if decision.allowed:
        return None

    raise ValidationError(
        code="rate_limit_exceeded",
        message_key="rate_limit_exceeded",
        http_status=429,
        critical=False,
        payload={"retry_after": decision.retry_after},
    )


def apply_security_headers(response):
    decision = getattr(g, "rate_limit", None)
    if decision is not None:
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        if not decision.allowed:
            response.headers["Retry-After"] = str(decision.retry_after)

    if not bool(current_app.config.get("SECURITY_HEADERS_ENABLED", True)):
        return response
    for header, value in _DEFAULT_HEADERS.items():
        response.headers.setdefault(header, value)
    if request.path.startswith("/api/"):
        response.headers.setdefault("Cache-Control", "no-store")
    if request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


def reset_rate_limiter_for_tests() -> None:
    _RATE_LIMITER.reset()
