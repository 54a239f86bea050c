import json
import logging
import logging.config
from datetime import datetime, timezone

from incubus.core.request_context import actor_ctx, request_id_ctx

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [req=%(request_id)s actor=%(actor)s] %(message)s"

# Request lines come from AccessLogMetricsMiddleware; these only add noise.
NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "celery.redirected")


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get()
        record.actor = actor_ctx.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "actor": getattr(record, "actor", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=True, default=str)


def configure_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    formatter = "json" if (log_format or "").strip().lower() == "json" else "text"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"context": {"()": RequestContextFilter}},
            "formatters": {
                "text": {"format": TEXT_FORMAT},
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "filters": ["context"],
                    "formatter": formatter,
                },
            },
            "root": {"level": level, "handlers": ["stdout"]},
            "loggers": {
                name: {"level": max(level, logging.WARNING)} for name in NOISY_LOGGERS
            },
        }
    )
