"""Process-wide structured logging built on Loguru.

Logging is configured exactly once, before the first request is served, by
:func:`setup_logging`. Everything else in the codebase only emits events;
no component touches sinks or levels at request time.

Two output shapes are supported:
- **console**: colored single-line records with the request context inline,
  meant for a developer terminal
- **json**: one JSON object per line, meant for a log collector

Records emitted through the standard library (uvicorn, SQLAlchemy, asyncpg)
are routed into Loguru by :class:`InterceptHandler`, so the request context
bound with ``logger.contextualize`` shows up on those lines too.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from typing import Any, Final, Protocol, cast

from loguru import logger

from rua.core.constants import REDACTED
from rua.core.error_context import is_sensitive_field

type LogRecord = dict[str, Any]
type RecordSerializer = Callable[[LogRecord], str]


class _LoggingState:
    """Tracks whether sinks have been installed for this process."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()


class LogConfigProtocol(Protocol):
    """The part of the log configuration that setup_logging reads."""

    @property
    def log_level(self) -> str:
        """Minimum level to emit."""
        ...

    @property
    def log_formatter_type(self) -> str | None:
        """Either "console" or "json"."""
        ...


class SettingsProtocol(Protocol):
    """Settings accepted by setup_logging."""

    @property
    def debug(self) -> bool:
        """Debug mode flag."""
        ...

    @property
    def log_config(self) -> LogConfigProtocol:
        """Log configuration."""
        ...


FALLBACK_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
REQUEST_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 120

# Shown first, in this order, on console lines
LEADING_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "method",
    "path",
    "status_code",
    "business_code",
    "duration_ms",
    "client_host",
)

_STATUS_COLORS: Final[dict[str, str]] = {
    "2": "green",
    "3": "yellow",
    "4": "red",
    "5": "red><bold",
}

_NOISY_LOGGERS: Final[tuple[str, ...]] = ("asyncio", "urllib3.connectionpool")


def _escape(text: str) -> str:
    """Escape braces so Loguru does not treat the text as a format string."""
    return text.replace("{", "{{").replace("}", "}}")


def _render_leading_field(name: str, value: object) -> str:
    """Render one of the leading context fields for the console."""
    text = str(value)
    if name == "correlation_id":
        text = text[:REQUEST_ID_DISPLAY_LENGTH]
    elif name == "duration_ms":
        text = f"{text}ms"

    text = _escape(text)
    if name == "status_code" and (color := _STATUS_COLORS.get(text[:1])):
        closing = "</bold></red>" if "bold" in color else f"</{color}>"
        return f"<{color}>{text}{closing}"
    return text


def _render_extra_field(name: str, value: object) -> str:
    """Render a non-leading context field as ``name=value``."""
    text = REDACTED if is_sensitive_field(name) else str(value)
    if len(text) > MAX_FIELD_VALUE_LENGTH:
        text = text[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return f"{_escape(name)}={_escape(text)}"


def _context_parts(extra: dict[str, Any]) -> list[str]:
    """Collect the bracketed context parts of a console line."""
    parts = [
        f"<yellow>{_render_leading_field(name, extra[name])}</yellow>"
        for name in LEADING_FIELDS
        if extra.get(name) is not None
    ]
    parts.extend(
        f"<dim>{_render_extra_field(name, value)}</dim>"
        for name, value in extra.items()
        if name not in LEADING_FIELDS and not name.startswith("_") and value is not None
    )
    return parts


def format_console_with_context(record: LogRecord) -> str:
    """Build the Loguru format string for one console record.

    The returned string is itself a Loguru template, so every piece of
    user-controlled text is brace-escaped before it is embedded.

    Args:
        record: Loguru record to format.

    Returns:
        str: Format template ending with a newline.
    """
    try:
        time_str = record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        location = f"{record['name']}:{record['function']}:{record['line']}"
        pieces = [
            f"<green>{time_str}</green>",
            f"<level>{record['level'].name: <8}</level>",
            f"<cyan>{_escape(str(location))}</cyan>",
        ]

        if context := _context_parts(record.get("extra", {})):
            pieces.append(" ".join(f"[{part}]" for part in context))

        pieces.append(_escape(str(record["message"])))
        line = " | ".join(pieces)
        if record.get("exception"):
            line += "\n{exception}"
    except (AttributeError, TypeError, ValueError, KeyError):
        return FALLBACK_FORMAT + "\n"
    else:
        return line + "\n"


def serialize_for_json(record: LogRecord) -> str:
    """Serialize a record as one line of JSON.

    Args:
        record: Loguru record to serialize.

    Returns:
        str: JSON document followed by a newline.
    """
    entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    for key, value in record.get("extra", {}).items():
        if key.startswith("_") or key in entry:
            continue
        entry[key] = REDACTED if is_sensitive_field(key) else value

    if exc := record.get("exception"):
        entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
            "traceback": bool(exc.traceback),
        }

    return json.dumps(entry, default=str) + "\n"


class InterceptHandler(logging.Handler):
    """Route standard library log records into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        """Forward a record, preserving its level and original call site.

        Args:
            record: Standard library record to forward.
        """
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so Loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        extra: dict[str, Any] = {}
        if record.name == "uvicorn.access" and hasattr(record, "scope"):
            scope = record.scope
            extra["method"] = scope.get("method", "")
            extra["path"] = scope.get("path", "")
            client = scope.get("client") or ("unknown",)
            extra["client_host"] = client[0]
            headers = dict(scope.get("headers", []))
            if request_id := headers.get(b"x-request-id", b"").decode("latin-1"):
                extra["correlation_id"] = request_id

        logger.opt(depth=depth, exception=record.exc_info).bind(**extra).log(
            level, record.getMessage()
        )


def _json_sink(message: object) -> None:
    """Write a JSON-serialized record to stdout."""
    record = cast("Any", message).record
    sys.stdout.write(serialize_for_json(record))
    sys.stdout.flush()


def setup_logging(settings: SettingsProtocol) -> None:
    """Install the process-wide Loguru sinks.

    Safe to call more than once; only the first call has an effect.

    Args:
        settings: Application settings carrying the log configuration.
    """
    if _state.configured:
        return

    logger.remove()

    config = settings.log_config
    formatter_type = config.log_formatter_type or "console"

    if formatter_type == "json":
        logger.add(
            _json_sink,
            level=config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )
    else:
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _state.configured = True
    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        formatter_type=formatter_type,
        log_level=config.log_level,
    )


def reset_logging() -> None:
    """Forget the configured state so setup_logging can run again.

    Used by the test suite; the application never calls it.
    """
    _state.configured = False
