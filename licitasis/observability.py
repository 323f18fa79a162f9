from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Sequence, Tuple

from flask import g, has_request_context, request


_HTTP_DURATION_BUCKETS_MS = (5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0, 10000.0)

# Attributes every LogRecord has; anything else on a record came from ``extra=``.
_RESERVED_RECORD_ATTRS = frozenset(logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}

_request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("licitasis_request_id", default="")


def _clean_request_id(value: str | None) -> str:
    return str(value or "").strip() or "n/a"


def set_log_request_id(request_id: str | None) -> None:
    _request_id_var.set(_clean_request_id(request_id))


@contextlib.contextmanager
def bind_request_id(request_id: str | None):
    """Binds a request id for log lines emitted outside a Flask request."""
    token = _request_id_var.set(_clean_request_id(request_id))
    try:
        yield _request_id_var.get()
    finally:
        _request_id_var.reset(token)


def current_request_id(default: str | None = None) -> str:
    if has_request_context():
        request_id = str(getattr(g, "request_id", "") or "").strip()
        if request_id:
            return request_id
    bound = _request_id_var.get().strip()
    return bound or default or "n/a"


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if has_request_context():
            payload.update(_request_fields())
        else:
            explicit = str(getattr(record, "request_id", "") or "").strip()
            payload["request_id"] = explicit or current_request_id(default="n/a")

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_ATTRS or key.startswith("_") or key in payload or callable(value):
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def _request_fields() -> Dict[str, object]:
    fields: Dict[str, object] = {
        "request_id": current_request_id(default="n/a"),
        "path": request.path,
        "method": request.method,
    }
    if request.url_rule is not None:
        fields["route"] = request.url_rule.rule
    user_id = getattr(g, "user_id", None)
    if user_id is not None:
        fields["user_id"] = user_id
    return fields


def configure_json_logging(app) -> None:
    if not bool(app.config.get("LOG_JSON", True)):
        return
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).strip().upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)
    # Flask's own handler would print every line twice.
    app.logger.handlers = []
    app.logger.propagate = True


def ensure_request_id() -> str:
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if not request_id:
        request_id = str(request.headers.get("X-Request-Id") or "").strip() or str(uuid.uuid4())
        g.request_id = request_id
    set_log_request_id(request_id)
    return request_id


def _escape_label(value: object) -> str:
    return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _sample_line(name: str, value: int | float, labels: Dict[str, object] | None = None) -> str:
    if not labels:
        return f"{name} {value}"
    rendered = ",".join(f'{key}="{_escape_label(val)}"' for key, val in sorted(labels.items()))
    return f"{name}{{{rendered}}} {value}"


class LabeledCounter:
    def __init__(self, name: str, help_text: str, label_names: Sequence[str]) -> None:
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names)
        self._values: Dict[Tuple[str, ...], int] = {}

    def inc(self, *label_values: str, amount: int = 1) -> None:
        key = tuple(str(value) for value in label_values)
        self._values[key] = self._values.get(key, 0) + amount

    def items(self) -> List[Tuple[Tuple[str, ...], int]]:
        return sorted(self._values.items())

    def total(self) -> int:
        return sum(self._values.values())

    def exposition(self) -> Iterable[str]:
        yield f"# HELP {self.name} {self.help_text}"
        yield f"# TYPE {self.name} counter"
        for key, value in self.items():
            yield _sample_line(self.name, value, dict(zip(self.label_names, key)))

    def clear(self) -> None:
        self._values.clear()


class _HistogramSeries:
    __slots__ = ("count", "total", "peak", "bucket_counts")

    def __init__(self, size: int) -> None:
        self.count = 0
        self.total = 0.0
        self.peak = 0.0
        self.bucket_counts = [0] * size


class LabeledHistogram:
    def __init__(self, name: str, help_text: str, label_names: Sequence[str], buckets: Sequence[float]) -> None:
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names)
        self.buckets = tuple(sorted(buckets))
        self._series: Dict[Tuple[str, ...], _HistogramSeries] = {}

    def observe(self, value: float, *label_values: str) -> None:
        key = tuple(str(label) for label in label_values)
        series = self._series.get(key)
        if series is None:
            series = self._series[key] = _HistogramSeries(len(self.buckets))
        amount = max(0.0, float(value))
        series.count += 1
        series.total += amount
        series.peak = max(series.peak, amount)
        for index, upper in enumerate(self.buckets):
            if amount <= upper:
                series.bucket_counts[index] += 1

    def items(self) -> List[Tuple[Tuple[str, ...], _HistogramSeries]]:
        return sorted(self._series.items())

    def exposition(self) -> Iterable[str]:
        yield f"# HELP {self.name} {self.help_text}"
        yield f"# TYPE {self.name} histogram"
        for key, series in self.items():
            labels = dict(zip(self.label_names, key))
            for upper, count in zip(self.buckets, series.bucket_counts):
                yield _sample_line(f"{self.name}_bucket", count, labels | {"le": f"{upper:g}"})
            yield _sample_line(f"{self.name}_bucket", series.count, labels | {"le": "+Inf"})
            yield _sample_line(f"{self.name}_sum", series.total, labels)
            yield _sample_line(f"{self.name}_count", series.count, labels)

    def clear(self) -> None:
        self._series.clear()


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.http_requests = LabeledCounter(
            "http_request_total",
            "Total HTTP requests by method, route and status.",
            ("method", "route", "status"),
        )
        self.http_duration = LabeledHistogram(
            "http_request_duration_ms",
            "HTTP request duration in milliseconds.",
            ("method", "route"),
            _HTTP_DURATION_BUCKETS_MS,
        )
        self.uasg_lookups = LabeledCounter(
            "uasg_lookup_total",
            "UASG lookups against the public API by result.",
            ("result",),
        )
        self.doc_status_runs = LabeledCounter(
            "doc_status_refresh_total",
            "Document status refresh runs by result.",
            ("result",),
        )

    def observe_http(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        method_key = str(method or "GET").strip().upper() or "GET"
        route_key = str(route or "unknown").strip() or "unknown"
        with self._lock:
            self.http_requests.inc(method_key, route_key, str(int(status_code)))
            self.http_duration.observe(duration_ms, method_key, route_key)

    def count(self, counter: LabeledCounter, result: str) -> None:
        with self._lock:
            counter.inc(str(result or "unknown").strip() or "unknown")

    def snapshot(self) -> dict:
        with self._lock:
            errors_by_route: Dict[Tuple[str, str], int] = {}
            errors_total = 0
            for (method, route, status), value in self.http_requests.items():
                if int(status) >= 400:
                    errors_by_route[(method, route)] = errors_by_route.get((method, route), 0) + value
                    errors_total += value

            by_route = [
                {
                    "route": f"{method} {route}",
                    "requests": series.count,
                    "errors": errors_by_route.get((method, route), 0),
                    "avg_latency_ms": round(series.total / series.count, 2) if series.count else 0.0,
                    "max_latency_ms": round(series.peak, 2),
                }
                for (method, route), series in self.http_duration.items()
            ]
            by_route.sort(key=lambda item: item["requests"], reverse=True)
            return {
                "requests_total": self.http_requests.total(),
                "errors_total": errors_total,
                "by_route": by_route[:40],
                "doc_status_runs": {key[0]: value for key, value in self.doc_status_runs.items()},
                "uasg_lookups": {key[0]: value for key, value in self.uasg_lookups.items()},
            }

    def exposition(self, *, scheduler_running: bool) -> str:
        with self._lock:
            lines: List[str] = []
            for metric in (self.http_requests, self.http_duration, self.uasg_lookups, self.doc_status_runs):
                lines.extend(metric.exposition())
        lines.append("# HELP doc_status_scheduler_running Whether the document status scheduler thread is alive.")
        lines.append("# TYPE doc_status_scheduler_running gauge")
        lines.append(_sample_line("doc_status_scheduler_running", 1 if scheduler_running else 0))
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            for metric in (self.http_requests, self.http_duration, self.uasg_lookups, self.doc_status_runs):
                metric.clear()


_METRICS = MetricsRegistry()


def mark_request_start() -> None:
    g._request_started_at = time.perf_counter()


def observe_response(response):
    started = getattr(g, "_request_started_at", None)
    elapsed_ms = (time.perf_counter() - started) * 1000.0 if started else 0.0
    route = request.url_rule.rule if request.url_rule is not None else request.path
    _METRICS.observe_http(request.method, route, int(response.status_code), elapsed_ms)
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    return response


def observe_doc_status_run(result: str) -> None:
    _METRICS.count(_METRICS.doc_status_runs, result)


def observe_uasg_lookup(result: str) -> None:
    _METRICS.count(_METRICS.uasg_lookups, result)


def metrics_snapshot() -> dict:
    return _METRICS.snapshot()


def prometheus_metrics_text(*, scheduler_state: dict | None = None) -> str:
    return _METRICS.exposition(scheduler_running=bool((scheduler_state or {}).get("running")))


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
    set_log_request_id(None)
