import json
import logging
import os
import sys

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty below WARNING; only let them through at DEBUG
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "uvicorn.access")


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ``ts``, ``level``, ``logger``, ``msg``
    and, for exceptions, ``exc``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(log_format: str, show_logger: bool) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    name = " %(name)s" if show_logger else ""
    return logging.Formatter(
        f"[%(asctime)s] [%(levelname)s]{name} %(message)s", datefmt=DATE_FORMAT
    )


def _resolve_level(debug: bool, level: str | None) -> int:
    if debug:
        return logging.DEBUG
    name = os.getenv("LOG_LEVEL") or level or "INFO"
    resolved = logging.getLevelName(name.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    debug: bool = False,
    log_file: str | None = None,
    log_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure root logging for the server and the CLI commands.

    Records go to stderr, leaving stdout to command output such as sync
    reports.  A file handler (with logger names) is added when a log file
    is given.

    Level precedence: ``debug`` > ``LOG_LEVEL`` env var > ``level`` (from
    the config file) > INFO.  The file path comes from ``log_file`` or
    the ``LOG_FILE`` env var.

    Args:
        log_format: "text" (default) or "json".
    """
    log_level = _resolve_level(debug, level)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_formatter(log_format, show_logger=False))
    handlers: list[logging.Handler] = [console]

    path = log_file or os.getenv("LOG_FILE")
    if path:
        to_file = logging.FileHandler(path, mode="a", encoding="utf-8")
        to_file.setFormatter(_formatter(log_format, show_logger=True))
        handlers.append(to_file)

    logging.basicConfig(level=log_level, handlers=handlers)

    if log_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
