import json
import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from pebblecode.config.settings import get_settings
from pebblecode.core.trace import get_connection_id

DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"


class JsonFormatter(logging.Formatter):
    """Serialize log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "category": record.name,
            "message": record.getMessage(),
            "conn_id": get_connection_id(),
        }
        if record.exc_info:
            log_record["exc"] = self.formatException(record.exc_info)
        return json.dumps(log_record, ensure_ascii=False)


class SizeAndTimeRotatingFileHandler(TimedRotatingFileHandler):
    """Rotate on size as well as on time."""

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 0,
        backup_count: int = 0,
        when: str = "midnight",
        interval: int = 1,
        encoding: str | None = "utf-8",
        delay: bool = True,
    ) -> None:
        self.maxBytes = max_bytes
        super().__init__(
            str(filename),
            when=when,
            interval=interval,
            backupCount=backup_count,
            encoding=encoding,
            delay=delay,
        )

    def shouldRollover(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if self.maxBytes > 0:
            if self.stream is None:  # pragma: no cover - delayed open
                self.stream = self._open()
            msg = f"{self.format(record)}\n"
            enc = self.encoding if isinstance(self.encoding, str) else "utf-8"
            if (self.stream.tell() + len(msg.encode(enc))) >= self.maxBytes:
                return True
        return super().shouldRollover(record)


def log_dir() -> Path:
    """Directory holding the JSONL log files."""
    configured = get_settings().log_dir
    root = Path(configured) if configured else DEFAULT_LOG_DIR
    root.mkdir(parents=True, exist_ok=True)
    return root


def _build_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(f"pebblecode.{name}")
    if logger.handlers:  # already configured
        return logger

    settings = get_settings()
    handler = SizeAndTimeRotatingFileHandler(
        log_dir() / f"{name}.jsonl",
        max_bytes=settings.log_rotate_mb * 1024 * 1024,
        backup_count=settings.log_retention_days,
    )
    handler.setFormatter(JsonFormatter())
    logger.setLevel(settings.log_level.upper())
    logger.addHandler(handler)
    return logger


_LOGGERS: dict[str, logging.Logger] = {}


def get_logger(name: str) -> logging.Logger:
    """Return the named client logger, creating it on first use."""
    if name not in _LOGGERS:
        _LOGGERS[name] = _build_logger(name)
    return _LOGGERS[name]


def enable_console(level: int = logging.DEBUG) -> None:
    """Mirror every client logger to stderr (console host --verbose)."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    handler.setLevel(level)
    for name in ("transport", "session", "commands"):
        logger = get_logger(name)
        logger.setLevel(level)
        logger.addHandler(handler)
