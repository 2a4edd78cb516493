"""Structured logging helpers shared by the scanner and its entrypoints."""

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

UTC = getattr(datetime, "UTC", timezone.utc)
_LOGGER_NAME = "scanner"
LOG_LEVEL_ENV = "SCANNER_LOG_LEVEL"
_configured = False
_base_context: dict[str, Any] = {}
_context_stack: list[dict[str, Any]] = []


def _env_level(default: int) -> int:
    raw = (os.getenv(LOG_LEVEL_ENV) or "").strip().upper()
    level = logging.getLevelName(raw) if raw else default
    return level if isinstance(level, int) else default


def configure_logging(level: int | None = None) -> None:
    """Configure the global logging formatter once.

    Without an explicit ``level`` the ``SCANNER_LOG_LEVEL`` environment variable
    is consulted (``DEBUG`` surfaces per-request handler failures).
    """

    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=level if level is not None else _env_level(logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    _configured = True


def set_global_context(**fields: Any) -> None:
    """Add persistent context fields that appear on every structured log."""

    _base_context.update({k: v for k, v in fields.items() if v is not None})


@contextmanager
def logging_context(**fields: Any) -> Iterator[None]:
    """Push a temporary logging context for the duration of the ``with`` block."""

    ctx = {k: v for k, v in fields.items() if v is not None}
    _context_stack.append(ctx)
    try:
        yield
    finally:
        _context_stack.pop()


def _merged_context() -> dict[str, Any]:
    merged: dict[str, Any] = {}
    merged.update(_base_context)
    for ctx in _context_stack:
        merged.update(ctx)
    return merged


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


def jlog(level: str, /, **fields: Any) -> None:
    """Emit a structured JSON log payload under the ``scanner`` logger."""

    log = logging.getLogger(_LOGGER_NAME)
    method = getattr(log, level.lower())
    if not log.isEnabledFor(logging.getLevelName(level.upper())):
        return
    record = {"ts": _utcnow_iso(), **_merged_context(), **fields}
    method(json.dumps(record, ensure_ascii=False, sort_keys=True, default=str))


def scanlog(event: str, *, url: str, stage: str, **kw: Any) -> None:
    """Shortcut for scan-scoped JSON logging records."""

    jlog("info", event=event, url=url, stage=stage, **kw)


@contextmanager
def timed(event: str, level: str = "info", **fields: Any) -> Iterator[dict[str, Any]]:
    """Log ``<event>_done`` with ``duration_ms`` when the block exits.

    The yielded dict is merged into the record, so the block can attach results.
    On an exception ``<event>_failed`` is logged at warning level and the error
    propagates.
    """

    extra: dict[str, Any] = {}
    started = time.monotonic()
    try:
        yield extra
    except Exception as exc:
        duration_ms = round((time.monotonic() - started) * 1000)
        jlog("warning", event=f"{event}_failed", duration_ms=duration_ms, error=str(exc), **{**fields, **extra})
        raise
    duration_ms = round((time.monotonic() - started) * 1000)
    jlog(level, event=f"{event}_done", duration_ms=duration_ms, **{**fields, **extra})


__all__ = [
    "LOG_LEVEL_ENV",
    "configure_logging",
    "jlog",
    "logging_context",
    "scanlog",
    "set_global_context",
    "timed",
]
