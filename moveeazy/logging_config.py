import json
import logging
import sys

from .config import settings


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers outside dev."""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "timestamp": self.formatTime(record, self.datefmt),
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def configure_logging(level: str | None = None) -> None:
    """Attach a stdout handler to the ``moveeazy`` logger tree (idempotent)."""
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    app_logger = logging.getLogger("moveeazy")
    app_logger.setLevel(log_level)
    if any(getattr(h, "_moveeazy", False) for h in app_logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if settings.DEV_MODE:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())
    handler._moveeazy = True
    app_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
