"""
Structured logging for the AI proxy.

Each request produces one canonical "request_completed" line (a wide event):
the middleware opens it, handlers and the gateway add fields through
enrich_event(), and it is emitted once the response has started.

    {"request_id": "3f9c01aa", "http": {...}, "caller": {"id": "..."},
     "ai": {"provider": "Gemini", "model": "gemini-2.5-flash", ...},
     "duration_ms": 412, "outcome": "success"}

Component code logs with structlog directly using snake_case event names.
Provider credentials never reach the output: redact_secrets masks them.
"""

import logging
import os
import random
import sys
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, Processor

_request_event: ContextVar[dict[str, Any] | None] = ContextVar("request_event", default=None)
_request_start: ContextVar[float] = ContextVar("request_start", default=0.0)

SLOW_REQUEST_MS = 2000
SUCCESS_SAMPLE_RATE = 0.10

SECRET_KEYS = frozenset({"api_key", "apikey", "credential", "authorization", "x-goog-api-key"})
REDACTED = "[redacted]"


# =============================================================================
# Request event
# =============================================================================


def get_request_event() -> dict[str, Any]:
    """The current request's wide event, or an empty dict outside a request."""
    return _request_event.get() or {}


def _set_nested(event: dict[str, Any], dotted_key: str, value: Any) -> None:
    *parents, leaf = dotted_key.split(".")
    for part in parents:
        event = event.setdefault(part, {})
    event[leaf] = value


def enrich_event(**fields: Any) -> None:
    """Add fields to the current request's wide event.

    Dotted keys are nested, so both of these set ``ai.model``:

        enrich_event(**{"ai.model": "gemini-2.5-flash"})
        enrich_event(ai={"model": "gemini-2.5-flash"})

    Does nothing outside a request.
    """
    event = _request_event.get()
    if event is None:
        return
    for key, value in fields.items():
        _set_nested(event, key, value)


def init_request_event(
    request_id: str | None = None,
    method: str = "",
    path: str = "",
    client_ip: str = "",
    user_agent: str = "",
) -> dict[str, Any]:
    event: dict[str, Any] = {
        "request_id": request_id or uuid.uuid4().hex[:8],
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "http": {
            "method": method,
            "path": path,
            "client_ip": client_ip,
            "user_agent": user_agent[:200] or None,
        },
        "service": {
            "name": "ai-proxy",
            "version": os.environ.get("APP_VERSION", "dev"),
            "environment": os.environ.get("ENVIRONMENT", "development"),
        },
    }
    _request_event.set(event)
    _request_start.set(time.monotonic())
    return event


def finalize_request_event(status_code: int, error: Exception | None = None) -> dict[str, Any]:
    """Stamp status, duration and outcome onto the wide event."""
    event = get_request_event()
    event.setdefault("http", {})["status_code"] = status_code
    event["duration_ms"] = int((time.monotonic() - _request_start.get()) * 1000)
    event["outcome"] = "success" if status_code < 400 else "error"

    if error is not None:
        event["error"] = {
            "type": type(error).__name__,
            "message": str(error)[:500],
        }
        details = getattr(error, "details", None)
        if details:
            event["error"]["details"] = details

    return event


# =============================================================================
# Tail sampling
# =============================================================================


def _is_error(event: dict[str, Any]) -> bool:
    return event.get("http", {}).get("status_code", 200) >= 400


def _is_slow(event: dict[str, Any]) -> bool:
    return event.get("duration_ms", 0) > SLOW_REQUEST_MS


def _is_ai_call(event: dict[str, Any]) -> bool:
    return "ai" in event or "/ai/" in event.get("http", {}).get("path", "")


KEEP_RULES: tuple[Callable[[dict[str, Any]], bool], ...] = (_is_error, _is_slow, _is_ai_call)


def should_sample(event: dict[str, Any]) -> bool:
    """Keep errors, slow requests and AI calls; sample the rest."""
    if any(rule(event) for rule in KEEP_RULES):
        return True
    return random.random() < SUCCESS_SAMPLE_RATE


def emit_wide_event(event: dict[str, Any]) -> None:
    if not should_sample(event):
        return

    logger = structlog.get_logger("wide_event")
    status_code = event.get("http", {}).get("status_code", 200)
    if status_code >= 500:
        logger.error("request_completed", **event)
    elif status_code >= 400:
        logger.warning("request_completed", **event)
    else:
        logger.info("request_completed", **event)


# =============================================================================
# Processors
# =============================================================================


def add_request_id(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    request_id = get_request_event().get("request_id")
    if request_id:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in SECRET_KEYS else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(item) for item in value)
    return value


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential-looking keys at any depth."""
    return _redact(event_dict)


def configure_logging(json_logs: bool = True, log_level: str = "INFO") -> None:
    """
    Configure structlog and stdlib logging.

    Args:
        json_logs: JSON lines (production) or colored console output (development)
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        add_request_id,
        redact_secrets,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Processor
    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
