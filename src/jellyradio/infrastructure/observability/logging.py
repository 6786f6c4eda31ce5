"""Log setup for JellyRadio: JSON or compact console output, tagged per radio run."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me - every radio run gets its own correlation id, so grepping one id shows the
# whole pipeline (search, downloads, scan polling) even though everything runs interleaved
# on one event loop. contextvars is asyncio-safe: tasks spawned by gather() inherit it.
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

_PACKAGE_MARKER = "jellyradio"

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "openai", "urllib3", "uvicorn.access")

# JSON key -> LogRecord attribute
_RECORD_FIELDS = {
    "level": "levelname",
    "logger": "name",
    "module": "module",
    "function": "funcName",
    "line": "lineno",
}

_CONSOLE_FORMAT = "%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s"
_JSON_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"


def get_correlation_id() -> str:
    """Correlation id of the current run, empty outside a run."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Tag the current context with a run id (fresh uuid4 when None) and return it."""
    correlation_id = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(correlation_id)
    return correlation_id


class RunContextFilter(logging.Filter):
    """Stamp every record with the run's correlation id and the app name."""

    def __init__(self, app_name: str = "jellyradio") -> None:
        super().__init__()
        self.app_name = app_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.app = self.app_name
        return True


def _own_frames(exc: BaseException) -> list[str]:
    # Only frames from our package, library internals are noise here
    lines: list[str] = []
    for frame in traceback.extract_tb(exc.__traceback__):
        if "/site-packages/" in frame.filename or _PACKAGE_MARKER not in frame.filename:
            continue
        lines.append(
            f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
        )
        if frame.line:
            lines.append(f"      {frame.line.strip()}")
    return lines


class CompactExceptionFormatter(logging.Formatter):
    """Console formatter printing exception chains root cause first.

    ERROR │ jellyradio.application.use_cases.synthesize_playlist:212 │ radio_synthesis.failed
    ╰─► httpx.ConnectError: All connection attempts failed
    ╰─► ExternalServiceError: Jellyfin request failed: POST /Playlists
        File "jellyfin_client.py", line 118, in _request
          raise ExternalServiceError(
    """

    def formatException(self, ei: Any) -> str:
        exc_value = ei[1]
        chain: list[BaseException] = []
        while exc_value is not None and exc_value not in chain:
            chain.append(exc_value)
            exc_value = exc_value.__cause__ or exc_value.__context__

        lines: list[str] = []
        for exc in reversed(chain):
            lines.append(f"╰─► {exc.__class__.__name__}: {exc}")
            lines.extend(_own_frames(exc))
        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """One JSON object per line, with location, app and correlation id."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        for key, attribute in _RECORD_FIELDS.items():
            log_record[key] = getattr(record, attribute)

        for key in ("app", "correlation_id"):
            value = getattr(record, key, "")
            if value:
                log_record[key] = value

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)


def _build_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return CustomJsonFormatter(_JSON_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    return CompactExceptionFormatter(fmt=_CONSOLE_FORMAT, datefmt="%H:%M:%S")


# Listen future me, call this ONCE at startup (create_app does). It replaces the root
# logger's handlers, so calling it again in tests is safe - no duplicated lines.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "jellyradio",
) -> None:
    """Route all logging to stdout.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (unknown -> INFO)
        json_format: JSON lines for log shippers instead of the console layout
        app_name: Stamped on every record as "app"
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RunContextFilter(app_name))
    handler.setFormatter(_build_formatter(json_format))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured ({logging.getLevelName(level)}, "
        f"{'json' if json_format else 'console'})"
    )
