"""
Structured logging for gridcache.

Provides:
- Context variables for store_key, request_id, procedure (using contextvars)
- JSONFormatter for machine-readable logs to file
- RichHandler for pretty console output
- ContextLogger wrapper that attaches context to all log calls
- setup_logging() that configures both file and console handlers
- Context manager log_context() for scoped context
- get_logger() factory
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

# Context variables for structured logging
_store_key_var: ContextVar[str | None] = ContextVar("store_key", default=None)
_request_id_var: ContextVar[int | None] = ContextVar("request_id", default=None)
_procedure_var: ContextVar[str | None] = ContextVar("procedure", default=None)


def get_store_key() -> str | None:
    """Get the current durable-store key from context."""
    return _store_key_var.get()


def get_request_id() -> int | None:
    """Get the current RPC request id from context."""
    return _request_id_var.get()


def get_procedure() -> str | None:
    """Get the current RPC procedure from context."""
    return _procedure_var.get()


@contextmanager
def log_context(
    store_key: str | None = None,
    request_id: int | None = None,
    procedure: str | None = None,
) -> Generator[None, None, None]:
    """Context manager for scoped logging context.

    Args:
        store_key: Durable-store key to set in context.
        request_id: RPC request id to set in context.
        procedure: RPC procedure to set in context.

    Yields:
        None. Context variables are set for the duration of the context.
    """
    old_store_key = _store_key_var.get()
    old_request_id = _request_id_var.get()
    old_procedure = _procedure_var.get()

    try:
        if store_key is not None:
            _store_key_var.set(store_key)
        if request_id is not None:
            _request_id_var.set(request_id)
        if procedure is not None:
            _procedure_var.set(procedure)
        yield
    finally:
        _store_key_var.set(old_store_key)
        _request_id_var.set(old_request_id)
        _procedure_var.set(old_procedure)


def _context_fields() -> dict[str, Any]:
    fields: dict[str, Any] = {}
    store_key = get_store_key()
    request_id = get_request_id()
    procedure = get_procedure()
    if store_key:
        fields["store_key"] = store_key
    if request_id is not None:
        fields["request_id"] = request_id
    if procedure:
        fields["procedure"] = procedure
    return fields


class JSONFormatter(logging.Formatter):
    """JSON formatter for machine-readable log files.

    Produces JSON Lines format with structured context.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update(_context_fields())

        if hasattr(record, "extra"):
            log_obj["extra"] = record.extra

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class ContextRichHandler(RichHandler):
    """Rich handler that includes context in console output."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        """Override to add context prefix."""
        level_text = super().get_level_text(record)

        parts: list[str] = []
        store_key = get_store_key()
        request_id = get_request_id()
        procedure = get_procedure()

        if store_key:
            parts.append(f"[dim]{store_key}[/dim]")
        if procedure:
            parts.append(f"[cyan]{procedure}[/cyan]")
        if request_id is not None:
            parts.append(f"[magenta]#{request_id}[/magenta]")

        if parts:
            prefix = " ".join(parts)
            return Text.from_markup(f"{level_text} {prefix}")

        return level_text


class ContextLogger:
    """Logger wrapper that automatically attaches context to log calls.

    Wraps a standard logger and adds context variables to all log calls.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        """Get the logger name."""
        return self._logger.name

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        """Internal logging method that adds context."""
        extra = kwargs.pop("extra", {})
        extra.update(_context_fields())

        # Merge any additional context from kwargs
        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel"):
                extra[key] = kwargs.pop(key)

        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"extra": extra})

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        """Log error message."""
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)


# Global console for rich output
_console: Console | None = None
_setup_done: bool = False


def get_console() -> Console:
    """Get the global rich console."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Set up logging with JSON file handler and rich console handler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. If None, only console logging is enabled.
        console_output: Whether to enable console output.
    """
    global _setup_done

    root_logger = logging.getLogger("gridcache")
    root_logger.setLevel(getattr(logging, log_level.upper()))

    root_logger.handlers.clear()

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)  # Log everything to file
        root_logger.addHandler(file_handler)

    if console_output:
        console = get_console()
        rich_handler = ContextRichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=True,
        )
        rich_handler.setLevel(getattr(logging, log_level.upper()))
        root_logger.addHandler(rich_handler)

    root_logger.propagate = False

    # aiosqlite logs every statement at debug level
    for noisy_logger in ["aiosqlite", "asyncio"]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    _setup_done = True


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger.

    Args:
        name: Logger name (usually __name__).

    Returns:
        ContextLogger wrapper around the standard logger.
    """
    if not _setup_done:
        setup_logging()

    if not name.startswith("gridcache"):
        name = f"gridcache.{name}"

    logger = logging.getLogger(name)
    return ContextLogger(logger)
