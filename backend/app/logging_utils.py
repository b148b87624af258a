from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import Settings, settings

LOGGER_NAME = "clean_air_router"
SERVICE_NAME = "clean-air-router"
LOG_FILE_NAME = "routing.log.jsonl"

# Fields of the optimisation request currently being served, if any.
_request_fields: ContextVar[dict[str, Any]] = ContextVar("clean_air_request_fields", default={})


@contextmanager
def request_context(request_id: str, endpoint: str) -> Iterator[None]:
    """Stamp every event logged inside the block with request_id and endpoint."""
    token = _request_fields.set({"request_id": request_id, "endpoint": endpoint})
    try:
        yield
    finally:
        _request_fields.reset(token)


class _RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service"):
            record.service = SERVICE_NAME
        for key, value in _request_fields.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _resolve_log_dir(out_dir: str) -> Path | None:
    """First writable of OUT_DIR/logs, ./out/logs and a temp dir."""
    for log_dir in (
        Path(out_dir) / "logs",
        Path.cwd() / "out" / "logs",
        Path(gettempdir()) / SERVICE_NAME / "logs",
    ):
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            marker = log_dir / ".writetest"
            marker.touch(exist_ok=True)
            marker.unlink(missing_ok=True)
            return log_dir
        except OSError:
            continue
    return None


def configure_logging(cfg: Settings = settings, *, force: bool = False) -> logging.Logger:
    """Attach JSON stdout and file handlers to the service logger.

    Idempotent unless ``force`` is set, in which case existing handlers are
    closed and replaced.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if getattr(logger, "_configured", False) and not force:
        return logger

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for existing in list(logger.filters):
        logger.removeFilter(existing)

    logger.setLevel(_parse_level(cfg.log_level))
    logger.propagate = False
    logger.addFilter(_RequestContextFilter())

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(message)s",
        rename_fields={"asctime": "ts", "levelname": "level"},
    )

    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    log_dir = _resolve_log_dir(cfg.out_dir)
    if log_dir is not None:
        try:
            fh = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
            fh.setFormatter(formatter)
            logger.addHandler(fh)
        except OSError:
            pass

    logger._configured = True  # type: ignore[attr-defined]
    return logger


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    # event doubles as the message so plain-text tails stay readable
    configure_logging().log(level, event, extra={"event": event, **fields})
