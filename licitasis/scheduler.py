from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from datetime import datetime, timezone

from flask import Flask

from licitasis.application.documentacao_service import DocumentacaoService
from licitasis.db import close_db, get_db
from licitasis.observability import bind_request_id, observe_doc_status_run


LOGGER = logging.getLogger(__name__)


class DocStatusScheduler:
    """Periodically recomputes ATIVO/VENCENDO/EXPIRADO for every document."""

    def __init__(self, app: Flask) -> None:
        self.app = app
        self.interval_seconds = _int_config(app, "DOC_STATUS_SCHEDULER_INTERVAL_SECONDS", 3600, 10, 86_400)
        self.min_backoff_seconds = _int_config(app, "DOC_STATUS_SCHEDULER_MIN_BACKOFF_SECONDS", 60, 5, 3600)
        self.max_backoff_seconds = _int_config(
            app,
            "DOC_STATUS_SCHEDULER_MAX_BACKOFF_SECONDS",
            3600,
            self.min_backoff_seconds,
            86_400,
        )
        self.warning_days = _int_config(app, "DOC_EXPIRY_WARNING_DAYS", 5, 0, 365)

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._failure_count = 0
        self._next_run_at: float | None = None
        self._last_run_at: str | None = None
        self._last_result: str | None = None
        self._last_updated = 0

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run_loop, name="doc-status-scheduler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self.seconds_until_next_run())

    def seconds_until_next_run(self) -> float:
        """Regular interval, or the remaining backoff when that ends sooner."""
        if self._next_run_at is None:
            return float(self.interval_seconds)
        remaining = self._next_run_at - time.monotonic()
        return max(1.0, min(float(self.interval_seconds), remaining))

    def run_once(self) -> bool:
        if not self._is_due():
            return False
        with bind_request_id(f"doc-status-{uuid.uuid4().hex[:12]}"):
            return self._refresh()

    def _refresh(self) -> bool:
        service = DocumentacaoService(self.app.config["UPLOAD_DIR"], warning_days=self.warning_days)
        with self.app.app_context():
            try:
                db = get_db()
                updated, processed = service.atualizar_status(db)
                db.commit()
            except Exception as exc:  # noqa: BLE001 - o loop nao pode morrer por falha de banco
                # close_db descarta a transacao pendente.
                self._register_failure(exc)
                return True
            finally:
                close_db()

        self._clear_backoff(updated)
        observe_doc_status_run("succeeded")
        LOGGER.info("doc_status_refresh", extra={"updated": updated, "processed": processed})
        return True

    def state(self) -> dict:
        return {
            "enabled": True,
            "running": bool(self._thread and self._thread.is_alive()),
            "interval_seconds": self.interval_seconds,
            "failure_count": self._failure_count,
            "last_run_at": self._last_run_at,
            "last_result": self._last_result,
            "last_updated": self._last_updated,
        }

    def _is_due(self) -> bool:
        if self._next_run_at is None:
            return True
        return time.monotonic() >= self._next_run_at

    def _mark_run(self, result: str) -> None:
        self._last_run_at = datetime.now(timezone.utc).isoformat()
        self._last_result = result

    def _clear_backoff(self, updated: int) -> None:
        self._failure_count = 0
        self._next_run_at = None
        self._last_updated = updated
        self._mark_run("succeeded")

    def _register_failure(self, exc: Exception) -> None:
        self._failure_count += 1
        backoff_seconds = min(
            self.max_backoff_seconds,
            self.min_backoff_seconds * (2 ** (self._failure_count - 1)),
        )
        self._next_run_at = time.monotonic() + backoff_seconds
        self._mark_run("failed")
        observe_doc_status_run("failed")
        LOGGER.warning(
            "doc_status_refresh_failed",
            extra={"failure_count": self._failure_count, "backoff_seconds": backoff_seconds, "details": str(exc)[:200]},
        )


def start_doc_status_scheduler(app: Flask) -> DocStatusScheduler | None:
    if not _should_start_scheduler(app):
        return None
    scheduler = DocStatusScheduler(app)
    scheduler.start()
    app.extensions["doc_status_scheduler"] = scheduler
    app.logger.info("Doc status scheduler started: interval=%ss", scheduler.interval_seconds)
    return scheduler


def scheduler_state(app: Flask) -> dict:
    scheduler = app.extensions.get("doc_status_scheduler")
    if scheduler is None:
        return {"enabled": False, "running": False}
    return scheduler.state()


def _should_start_scheduler(app: Flask) -> bool:
    if not app.config.get("DOC_STATUS_SCHEDULER_ENABLED", False):
        return False
    if app.config.get("TESTING"):
        return False
    if app.debug:
        run_main = os.environ.get("WERKZEUG_RUN_MAIN")
        if run_main and run_main.lower() != "true":
            return False
    return True


def _int_config(app: Flask, key: str, default: int, min_value: int, max_value: int) -> int:
    try:
        value = int(app.config.get(key, default))
    except (TypeError, ValueError):
        value = default
    return max(min_value, min(value, max_value))
