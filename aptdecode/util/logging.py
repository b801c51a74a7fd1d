"""Structured logging configuration for aptdecode.

Provides a centralized logging setup with:
- Console handler (stderr) with configurable level
- Optional file handler (JSON lines for machine parsing)
- Environment-based configuration
- Per-stage timing records for the decode pipeline

Every decode stage logs through :func:`stage_timer`, so each stage leaves a
record carrying ``stage`` and ``duration_ms``. The console shows those as a
``(stage, 12.3 ms)`` suffix; the JSON file keeps them as fields.

Usage:
    from aptdecode.util.logging import get_logger, configure_logging, stage_timer

    configure_logging(level="DEBUG", json_file="decode.log")
    logger = get_logger(__name__)
    with stage_timer(logger, "resample", work_rate=12480) as timer:
        ...
    print(timer.duration_ms)
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
import traceback
from datetime import datetime, timezone
from types import TracebackType
from typing import Any, Dict, Optional, Type


_configured = False
_root_logger_name = "aptdecode"

# record attributes copied into JSON lines when a call passes them via extra=
CONTEXT_FIELDS = ("stage", "duration_ms", "profile", "work_rate", "input_rate", "lines", "marks", "error_type")


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON for machine parsing."""

    def format(self, record: logging.LogRecord) -> str:
        output: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                output[key] = getattr(record, key)
        if record.exc_info:
            output["traceback"] = "".join(traceback.format_exception(*record.exc_info))
        return json.dumps(output, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable console format with optional color and stage suffix."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color and sys.stderr.isatty()

    @staticmethod
    def stage_suffix(record: logging.LogRecord) -> str:
        stage = getattr(record, "stage", None)
        duration = getattr(record, "duration_ms", None)
        parts = []
        if stage:
            parts.append(str(stage))
        if duration is not None:
            parts.append(f"{float(duration):.1f} ms")
        return f" ({', '.join(parts)})" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname
        if self.use_color:
            level_str = f"{self.LEVEL_COLORS.get(level, '')}{level:8}{self.RESET}"
        else:
            level_str = f"{level:8}"
        name = record.name.replace(f"{_root_logger_name}.", "")
        base = f"[{ts}] {level_str} [{name}] {record.getMessage()}{self.stage_suffix(record)}"
        if record.exc_info:
            base += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return base


class StageTimer:
    """Context manager timing one decode stage.

    On a clean exit it logs ``"<stage> finished"`` at DEBUG with ``stage``,
    ``duration_ms`` and any extra context; on an exception it logs nothing
    and lets the exception propagate. ``duration_ms`` is available after
    the block either way.
    """

    def __init__(self, logger: logging.Logger, stage: str, **context: Any) -> None:
        self.logger = logger
        self.stage = stage
        self.context = context
        self.duration_ms: Optional[float] = None
        self._started = 0.0

    def __enter__(self) -> "StageTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        self.duration_ms = round((time.perf_counter() - self._started) * 1000.0, 1)
        if exc_type is None:
            self.logger.debug("%s finished", self.stage, extra=self.extra())
        return False

    def extra(self, **more: Any) -> Dict[str, Any]:
        """Context for further records about this stage (stage, duration_ms, ...)."""
        fields: Dict[str, Any] = dict(self.context)
        fields.update(more)
        fields["stage"] = self.stage
        if self.duration_ms is not None:
            fields["duration_ms"] = self.duration_ms
        return fields


def stage_timer(logger: logging.Logger, stage: str, **context: Any) -> StageTimer:
    return StageTimer(logger, stage, **context)


def configure_logging(
    *,
    level: Optional[str] = None,
    json_file: Optional[str] = None,
    use_color: bool = True,
) -> None:
    """Configure the aptdecode logging subsystem.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to INFO,
               or DEBUG if APTDECODE_DEBUG=1 is set.
        json_file: Optional path to write JSON-formatted logs.
        use_color: Whether to colorize console output (auto-disabled if not a TTY).

    Calling it again replaces the handlers installed by the previous call.
    """
    global _configured

    if level is None:
        if os.environ.get("APTDECODE_DEBUG", "").strip() in ("1", "true", "yes"):
            level = "DEBUG"
        else:
            level = os.environ.get("APTDECODE_LOG_LEVEL", "INFO")

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(_root_logger_name)
    logger.setLevel(numeric_level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(ConsoleFormatter(use_color=use_color))
    logger.addHandler(console_handler)

    if json_file:
        try:
            file_handler = logging.FileHandler(json_file, mode="a", encoding="utf-8")
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)
        except OSError as exc:
            logger.warning("Failed to open JSON log file %s: %s", json_file, exc)

    logger.propagate = False

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the aptdecode namespace.

    If configure_logging() has not been called, a default configuration
    is applied automatically.
    """
    global _configured
    if not _configured:
        configure_logging()

    if not name.startswith(_root_logger_name):
        if name == "__main__":
            name = f"{_root_logger_name}.main"
        else:
            name = f"{_root_logger_name}.{name}"

    return logging.getLogger(name)


def log_exception(
    logger: logging.Logger,
    message: str,
    *,
    error_type: Optional[str] = None,
    **extra: Any,
) -> None:
    """Log the exception being handled, with decode context.

    Call inside an except block. ``error_type`` is usually the exception
    class name; ``stage`` names the pipeline stage that raised.
    """
    extra_dict = dict(extra)
    if error_type:
        extra_dict["error_type"] = error_type
    logger.exception(message, extra=extra_dict)
