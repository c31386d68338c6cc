"""Log output for the CLI and the service.

Records render one of three ways depending on how vibescan was launched:

    human    [INFO] Fetched 12 files
    verbose  [INFO][14:02:09] Fetched 12 files tier=1 requested=13
    json     {"level": "INFO", "ts": "...", "logger": "vibescan.orchestrator", ...}

Call ``logger.structured(level, msg, **fields)`` to attach key/value fields.
Human output drops them; the verbose and JSON renderings keep them.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TextIO

ROOT_LOGGER_NAME = "vibescan"

# Attribute name carrying structured fields on a LogRecord
FIELDS_ATTR = "extra_data"

_RESET = "\033[0m"
_LEVEL_COLORS = {
    logging.DEBUG: "\033[90m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}


class LogMode(Enum):
    HUMAN = "human"
    VERBOSE = "verbose"
    JSON = "json"


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, FIELDS_ATTR, None) or {}


class _ConsoleFormatter(logging.Formatter):
    """Shared rendering for the two terminal modes.

    Subclasses flip ``show_time`` and ``show_fields``; the level tag is
    colored only when ``use_colors`` is set.
    """

    show_time = False
    show_fields = False

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def _tag(self, record: logging.LogRecord) -> str:
        tag = f"[{record.levelname}]"
        if not self.use_colors:
            return tag
        return f"{_LEVEL_COLORS.get(record.levelno, _RESET)}{tag}{_RESET}"

    def format(self, record: logging.LogRecord) -> str:
        parts = [self._tag(record)]
        if self.show_time:
            parts.append(f"[{datetime.fromtimestamp(record.created):%H:%M:%S}]")
        line = "".join(parts) + " " + record.getMessage()
        if self.show_fields:
            line += "".join(f" {key}={value}" for key, value in record_fields(record).items())
        return line


class HumanFormatter(_ConsoleFormatter):
    """``[LEVEL] message``"""


class VerboseFormatter(_ConsoleFormatter):
    """``[LEVEL][HH:MM:SS] message key=value ...``"""

    show_time = True
    show_fields = True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, structured fields merged at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "logger": record.name,
            "msg": record.getMessage(),
            **record_fields(record),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class VibescanLogger(logging.Logger):
    """Logger class installed for every ``vibescan.*`` name."""

    def structured(self, level: int, msg: str, **fields: Any) -> None:
        """Log ``msg`` at ``level`` with ``fields`` attached to the record."""
        if not self.isEnabledFor(level):
            return
        self._log(level, msg, (), extra={FIELDS_ATTR: fields}, stacklevel=2)


logging.setLoggerClass(VibescanLogger)


def get_logger(name: str = ROOT_LOGGER_NAME) -> VibescanLogger:
    return logging.getLogger(name)  # type: ignore[return-value]


def _build_formatter(mode: LogMode, stream: TextIO) -> logging.Formatter:
    if mode is LogMode.JSON:
        return JSONFormatter()
    colors = bool(getattr(stream, "isatty", None)) and stream.isatty()
    if mode is LogMode.VERBOSE:
        return VerboseFormatter(use_colors=colors)
    return HumanFormatter(use_colors=colors)


def setup_logging(
    mode: LogMode = LogMode.HUMAN,
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> None:
    """Install a single handler on the ``vibescan`` logger.

    Args:
        mode: Rendering to use
        level: Minimum level that reaches the handler
        stream: Destination, stderr when omitted so stdout stays free for
            command output such as ``--json`` documents
    """
    target = stream or sys.stderr
    handler = logging.StreamHandler(target)
    handler.setFormatter(_build_formatter(mode, target))

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers[:] = [handler]
    root.setLevel(level)
    root.propagate = False


def configure_from_cli(verbose: bool = False, quiet: bool = False, ci: bool = False) -> None:
    """Map the global ``--verbose/--quiet/--ci`` flags onto ``setup_logging``.

    ``--ci`` selects JSON lines and wins over ``--verbose`` for the format,
    while ``--verbose`` still lowers the level to DEBUG. ``--quiet`` keeps
    only warnings and errors.
    """
    mode = LogMode.JSON if ci else (LogMode.VERBOSE if verbose else LogMode.HUMAN)
    level = logging.WARNING if quiet else (logging.DEBUG if verbose else logging.INFO)
    setup_logging(mode=mode, level=level)
