"""
JSON logs, one object per line. Context goes in `extra={...}`; only the keys
listed in JsonFormatter.EXTRA_FIELDS reach the output.
"""
import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from app.core.config import Settings, settings as default_settings

# Client libraries log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    EXTRA_FIELDS = (
        # http
        "request_id", "path", "method", "status_code", "latency_ms",
        # payments and balance
        "order_uuid", "user_id", "event_name", "status", "reason", "source",
        "tokens", "old_balance", "new_balance", "generation_id",
        # infrastructure
        "error", "chat_id", "breaker_name", "old_state", "new_state", "table", "attempt",
    )

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name))
            for name in self.EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _build_handlers(settings: Settings) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(
            RotatingFileHandler(
                settings.log_file,
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backup_count,
            )
        )
    return handlers


def configure_logging(settings: Settings = default_settings) -> None:
    """Replace root handlers; safe to call more than once."""
    formatter = JsonFormatter()
    handlers = _build_handlers(settings)
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    root.handlers = handlers
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
