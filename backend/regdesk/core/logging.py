"""
Structured logging for the registration desk.

structlog is routed through the stdlib root logger, so uvicorn, SQLAlchemy
and our own loggers share one handler. Production renders JSON lines; any
other environment gets the colored console renderer unless LOG_JSON is set.

Request ids are bound by the middleware; scanner stations and events are
bound per scan with `bind_scan_context`, so every line logged while a scan
is processed carries `scanner_id` and `event_id`.
"""

import logging
import sys
import structlog
from regdesk.core.config import get_settings

# Loggers that drown the interesting lines at INFO
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


def _use_json(settings) -> bool:
    return settings.LOG_JSON or settings.ENVIRONMENT == "production"


def setup_logging() -> None:
    settings = get_settings()
    json_output = _use_json(settings)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_output:
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_scan_context(scanner_id: str, event_id: str) -> None:
    structlog.contextvars.bind_contextvars(scanner_id=scanner_id, event_id=event_id)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
