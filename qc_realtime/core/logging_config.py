"""Logging configuration.

Provides rotating logs with optional JSON output. Binds lightweight contextvars
(request_id/user_id/topic) to every record so presence and delivery events can be
correlated across HTTP handlers, WebSocket sessions and Celery tasks.
"""

import json
import logging
import logging.handlers
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_ctx: ContextVar[Optional[int]] = ContextVar("user_id", default=None)

CONSOLE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JSONFormatter(logging.Formatter):
    """Emit logs as JSON for aggregation (ELK/Loki/etc.)."""

    extra_fields = ("user_id", "request_id", "topic", "notification_id", "attempt")

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for field in self.extra_fields:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Add ANSI colors to console output for local readability."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        result = super().format(record)
        record.levelname = levelname
        return result


class ContextEnricher(logging.Filter):
    """Inject contextvars (request_id, user_id) into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        request_id = request_id_ctx.get()
        user_id = user_id_ctx.get()
        if request_id and not hasattr(record, "request_id"):
            record.request_id = request_id
        if user_id and not hasattr(record, "user_id"):
            record.user_id = user_id
        return True


def bind_request_context(
    *, request_id: Optional[str] = None, user_id: Optional[int] = None
):
    """Bind request context into contextvars; returns tokens for reset."""
    tokens = []
    if request_id is not None:
        tokens.append(("request_id", request_id_ctx.set(request_id)))
    if user_id is not None:
        tokens.append(("user_id", user_id_ctx.set(user_id)))
    return tokens


def reset_request_context(tokens) -> None:
    """Reset bound contextvars using tokens returned by bind_request_context."""
    for key, token in tokens:
        if key == "request_id":
            request_id_ctx.reset(token)
        elif key == "user_id":
            user_id_ctx.reset(token)


def _file_handler(
    path: Path, level: int, max_bytes: int, backup_count: int, use_json: bool
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(level)
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    app_name: str = "qc_realtime",
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
    use_json: bool = False,
    use_colors: bool = True,
) -> None:
    """Configure root logging.

    Args:
        log_level: Minimum logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_dir: Directory to store log files; if None, logs only to console.
        app_name: Application name used in log filenames.
        max_bytes: Max size per log file before rotation.
        backup_count: Number of rotated files to keep.
        use_json: If True, use JSON for file handlers.
        use_colors: If True, add ANSI colors to console output.
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        try:
            handler.flush()
        finally:
            handler.close()
            root_logger.removeHandler(handler)
    context_filter = ContextEnricher()
    root_logger.addFilter(context_filter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    formatter_cls = ColoredFormatter if use_colors else logging.Formatter
    console_handler.setFormatter(formatter_cls(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(
            _file_handler(
                log_path / f"{app_name}.log",
                logging.DEBUG,
                max_bytes,
                backup_count,
                use_json,
            )
        )
        root_logger.addHandler(
            _file_handler(
                log_path / f"{app_name}_error.log",
                logging.ERROR,
                max_bytes,
                backup_count,
                use_json,
            )
        )

    # Records from named loggers skip root filters, so enrich at the handlers too.
    for handler in root_logger.handlers:
        handler.addFilter(context_filter)

    # Suppress noisy loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logging.info(
        "Logging configured. Level: %s, Directory: %s",
        log_level,
        log_dir or "console only",
    )
