import logging
import sys
from datetime import datetime, timezone

from pymongo.database import Database
from pymongo.errors import PyMongoError

from gymmini import settings
from gymmini.db import ACTIVITY_LOGS


class JsonFormatter(logging.Formatter):
    """Single-line structured records for non-local environments."""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "timestamp": self.formatTime(record, self.datefmt),
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return str(log_record)


def configure_logging() -> None:
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if settings.ENVIRONMENT == "local":
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


_log = get_logger(__name__)


def log_activity(db: Database, user_id: str, action: str, metadata: dict | None = None):
    """Append a domain event to activity_logs. Best-effort."""
    try:
        db[ACTIVITY_LOGS].insert_one({
            "user_id": str(user_id) if user_id is not None else None,
            "action": action,
            "timestamp": datetime.now(timezone.utc),
            "metadata": metadata or {},
        })
    except PyMongoError:
        _log.warning("activity log write failed for %s/%s", user_id, action, exc_info=True)
