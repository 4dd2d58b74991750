"""Structured logging for UrbAssist.

JSON lines in production, plain text locally. Both carry the request's
correlation ID, which follows a decision through the PLU and heritage
fan-out. Pipeline steps are timed with timed_step().
"""

import json
import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone

# Set per request by CorrelationIDMiddleware; copied into each asyncio task
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Attributes passed through ``extra=`` that end up in the JSON line
EXTRA_FIELDS = ("citycode", "zone", "step", "determination", "source", "duration_ms")

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "mlflow")


def get_correlation_id() -> str:
    return correlation_id.get()


class JSONFormatter(logging.Formatter):
    """One JSON object per record, non-ASCII kept (commune and zone names)."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = correlation_id.get()
        if cid:
            entry["correlation_id"] = cid
        entry.update(
            (key, getattr(record, key)) for key in EXTRA_FIELDS if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Local-development format; the correlation ID is appended when set."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        cid = correlation_id.get()
        return f"{line} [{cid}]" if cid else line


@contextmanager
def timed_step(logger: logging.Logger, step: str, **fields):
    """Log the duration of a pipeline step at DEBUG, whether it succeeds or raises.

        with timed_step(logger, "plu", citycode="06088"):
            plu = await detect_plu(...)
    """
    start = time.monotonic()
    try:
        yield
    finally:
        duration_ms = round((time.monotonic() - start) * 1000)
        logger.debug("Step %s took %dms", step, duration_ms,
                     extra={"step": step, "duration_ms": duration_ms, **fields})


def setup_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Replace the root handlers with a single stderr handler.

    Args:
        json_format: JSON lines (deployed) or plain text (local).
        level: Root level name; unknown names fall back to INFO.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if json_format else TextFormatter())
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
