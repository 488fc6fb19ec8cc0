"""
Structured logging for the intake service.

structlog renders JSON in production and a colored console view in
development. Two correlation IDs ride along on every entry: ``trace_id``
for the HTTP request and ``submission_id`` for the intake operation being
summarized, merged or replayed from the offline queue.

Note text is personal, so fields that carry it are reduced to their
length unless ``LOG_NOTE_TEXT`` is enabled.

Usage:
    from circles.logging_config import bind_submission, get_logger

    logger = get_logger(__name__)
    with bind_submission(operation.id):
        logger.info("intake_received", kind="text_import", text_length=120)
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import structlog

from circles.config import get_settings

trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")
submission_id_var: ContextVar[str] = ContextVar("submission_id", default="")

# Event fields that may hold raw note or summary text.
NOTE_TEXT_FIELDS = frozenset({"text", "raw_text", "narrative", "transcription", "response"})

# Libraries whose INFO output is per-request chatter.
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "gotrue", "uvicorn.access")


def _inject_correlation_ids(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    trace_id = trace_id_var.get()
    if trace_id:
        event_dict["trace_id"] = trace_id

    submission_id = submission_id_var.get()
    if submission_id:
        event_dict["submission_id"] = submission_id

    return event_dict


def _redact_note_text(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for key in NOTE_TEXT_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str):
            event_dict[key] = f"<{len(value)} chars>"
    return event_dict


def generate_trace_id() -> str:
    """Short random ID for a request."""
    return uuid.uuid4().hex[:12]


@contextmanager
def bind_submission(submission_id: object) -> Iterator[None]:
    """Tag every log entry inside the block with ``submission_id``."""
    token = submission_id_var.set(str(submission_id))
    try:
        yield
    finally:
        submission_id_var.reset(token)


def setup_logging() -> None:
    """Configure structlog and route stdlib loggers (uvicorn, httpx, supabase) through it."""
    settings = get_settings()

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_correlation_ids,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if not settings.log_note_text:
        processors.append(_redact_note_text)

    if settings.is_production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
