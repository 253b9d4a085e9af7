"""
Logging setup for the notification service.

Every record leaves the process as one JSON line on stdout. Records emitted
while a request is being handled carry the request_id bound by the HTTP
middleware, so a gateway delivery can be followed from receipt to reply.
"""
import logging
import sys
from typing import Any, Callable, Dict, Optional

import structlog
from pythonjsonlogger import jsonlogger

from payment_notifications import __version__
from payment_notifications.config import Settings, get_settings

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "aiosqlite", "asyncio")

EventDict = Dict[str, Any]


def service_context(settings: Settings) -> Callable[[Any, str, EventDict], EventDict]:
    """
    Build a processor stamping service identity onto every event.

    Args:
        settings: Settings the application was created with

    Returns:
        Callable: structlog processor
    """
    context = {
        "service": settings.app_name,
        "env": settings.app_env,
        "version": __version__,
    }

    def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_service_context


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Route structlog through stdlib logging with a JSON handler.

    Args:
        settings: Settings to take level and service identity from
    """
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            service_context(settings),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(settings.log_level)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        event_sink=settings.event_sink,
    )
