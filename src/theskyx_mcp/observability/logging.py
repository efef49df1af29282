"""Structured logging for theskyx-mcp.

Builds on Python's standard logging module with:
- Structured data support (key-value pairs passed as keyword arguments)
- JSON formatting option for log aggregation
- Context management for tagging every record of an operation

Security Note:
    Values that come from TheSkyX replies or MCP callers should be passed
    as keyword arguments, never interpolated into the message string:

    # SAFE - structured data is escaped by the formatter
    logger.info("Reply received", reply=raw_reply)

    # UNSAFE - a reply containing CRLF could forge log lines
    logger.info(f"Reply received: {raw_reply}")

Example:
    logger = get_logger(__name__)

    logger.info("Camera connected")
    logger.info("Exposure started", kind="dark", binning=1, seconds=20.0)

    with LogContext(operation="flat_capture", filter_slot=2):
        logger.debug("Polling camera")  # includes operation and filter_slot

    configure_logging(json_format=True)
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, cast

ROOT_LOGGER_NAME = "theskyx_mcp"

_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger(logging.Logger):
    """Logger that turns keyword arguments into structured data.

    Every level method accepts arbitrary keyword arguments in addition to
    the standard ones. They are merged over the active LogContext and
    attached to the record as ``structured_data``.

    Usage:
        logger = StructuredLogger("theskyx_mcp.drivers.skyx")
        logger.info("Packet sent", bytes=312, host="observatory.local")
    """

    def _emit(
        self,
        level: int,
        msg: object,
        args: tuple[Any, ...],
        exc_info: Any,
        stack_info: bool,
        stacklevel: int,
        extra: dict[str, Any] | None,
        data: dict[str, Any],
    ) -> None:
        """Merge context and keyword data, then hand off to Logger._log.

        Explicit keyword data wins over LogContext values with the same
        key. ``stacklevel`` is bumped twice so the record points at the
        caller of ``info()``/``debug()``, not at this helper.
        """
        merged = {**_log_context.get(), **data}
        extra = dict(extra) if extra else {}
        extra["structured_data"] = merged
        self._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 2,
        )

    def debug(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log at DEBUG with optional structured data."""
        if self.isEnabledFor(logging.DEBUG):
            self._emit(
                logging.DEBUG, msg, args, exc_info, stack_info, stacklevel, extra, kwargs
            )

    def info(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log at INFO with optional structured data."""
        if self.isEnabledFor(logging.INFO):
            self._emit(
                logging.INFO, msg, args, exc_info, stack_info, stacklevel, extra, kwargs
            )

    def warning(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log at WARNING with optional structured data."""
        if self.isEnabledFor(logging.WARNING):
            self._emit(
                logging.WARNING,
                msg,
                args,
                exc_info,
                stack_info,
                stacklevel,
                extra,
                kwargs,
            )

    def error(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log at ERROR with optional structured data."""
        if self.isEnabledFor(logging.ERROR):
            self._emit(
                logging.ERROR, msg, args, exc_info, stack_info, stacklevel, extra, kwargs
            )

    def exception(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = True,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log at ERROR with traceback and optional structured data."""
        if self.isEnabledFor(logging.ERROR):
            self._emit(
                logging.ERROR, msg, args, exc_info, stack_info, stacklevel, extra, kwargs
            )


# =============================================================================
# Formatters
# =============================================================================


class StructuredFormatter(logging.Formatter):
    """Human-readable formatter with structured data.

    Format: timestamp - name - level - message | key=value key=value
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        """Initialize the formatter.

        Args:
            fmt: Format string using LogRecord attributes. Defaults to
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'.
            datefmt: Date format for %(asctime)s, or None for the default.
            include_structured: Append ' | key=value ...' when the record
                carries structured data. False outputs the base format only.
        """
        if fmt is None:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        """Format the record, appending structured data as key=value pairs.

        Args:
            record: Record to format. A missing or empty ``structured_data``
                attribute yields the base format unchanged.

        Returns:
            The formatted line, e.g.
            '... - INFO - Exposure started | kind=dark seconds=20.0'.
        """
        base = super().format(record)
        if not self.include_structured:
            return base

        structured = getattr(record, "structured_data", {})
        if not structured:
            return base

        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in structured.items())
        return f"{base} | {pairs}"


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record (NDJSON).

    Keys: timestamp (UTC ISO 8601), level, logger, message, exception
    (only when exc_info is set), plus every structured data key at the
    top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_dict.update(getattr(record, "structured_data", {}))

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


def _format_value(value: Any) -> str:
    """Render a structured value for the key=value text format.

    None becomes 'null', strings containing spaces are quoted, dicts and
    lists are JSON encoded, anything else goes through str().

    Example:
        >>> _format_value("H-alpha filter")
        '"H-alpha filter"'
        >>> _format_value(["red", "green"])
        '["red", "green"]'
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        if " " in value:
            return f'"{value}"'
        return value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


# =============================================================================
# Context Management
# =============================================================================


@dataclass
class LogContext:
    """Context manager adding key-value pairs to every record in scope.

    Backed by contextvars, so it is safe across threads and asyncio tasks
    and supports nesting (inner values override outer ones).

    Usage:
        with LogContext(operation="dark_capture", binning=2):
            logger.info("Starting")          # operation, binning
            with LogContext(poll=3):
                logger.debug("Not done")     # operation, binning, poll
    """

    _kwargs: dict[str, Any] = field(default_factory=dict, init=False, repr=True)
    _token: contextvars.Token[dict[str, Any]] | None = field(
        default=None, init=False, repr=False
    )

    def __init__(self, **kwargs: Any) -> None:
        self._kwargs = kwargs
        self._token = None

    def __enter__(self) -> LogContext:
        current = _log_context.get()
        self._token = _log_context.set({**current, **self._kwargs})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


# =============================================================================
# Configuration
# =============================================================================

_configured = False
_config_lock = threading.Lock()


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    force: bool = False,
) -> None:
    """Configure the theskyx-mcp logging system.

    Installs a single stream handler on the ``theskyx_mcp`` logger. The
    call is idempotent; pass ``force=True`` to replace an existing setup
    (tests and the server entry point do this).

    Args:
        level: Minimum level, as int or name ('DEBUG', 'INFO', ...).
        json_format: Use JSONFormatter instead of StructuredFormatter.
        stream: Output stream, default sys.stderr. The MCP server speaks
            its protocol on stdout, so logs must never go there.
        include_structured: Append key=value data in text mode.
        force: Drop existing handlers and reconfigure.

    Example:
        >>> import io
        >>> buffer = io.StringIO()
        >>> configure_logging(level="DEBUG", stream=buffer, force=True)
    """
    with _config_lock:
        if force:
            _reset_logging_impl()
        _configure_logging_impl(level, json_format, stream, include_structured)


def _configure_logging_impl(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
) -> None:
    """Internal implementation of configure_logging (assumes lock is held)."""
    global _configured

    if _configured:
        return

    logging.setLoggerClass(StructuredLogger)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StructuredFormatter(include_structured=include_structured)
    handler.setFormatter(formatter)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.addHandler(handler)
    root.propagate = False

    _configured = True


def _reset_logging_impl() -> None:
    """Internal implementation of reset_logging (assumes lock is held)."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    _configured = False


def reset_logging() -> None:
    """Remove all package handlers and mark logging unconfigured (for tests)."""
    with _config_lock:
        _reset_logging_impl()


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger, configuring defaults on first use.

    Loggers created before configure_logging() installed the logger class
    would be plain ``logging.Logger`` instances, so the first call here
    configures logging (INFO, text, stderr) if nobody has yet.

    Args:
        name: Logger name, normally ``__name__``.

    Returns:
        StructuredLogger accepting ``logger.info("msg", key=value)``.
    """
    if not _configured:
        with _config_lock:
            if not _configured:  # pragma: no branch
                _configure_logging_impl()

    return cast(StructuredLogger, logging.getLogger(name))


__all__ = [
    "JSONFormatter",
    "LogContext",
    "ROOT_LOGGER_NAME",
    "StructuredFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
]
