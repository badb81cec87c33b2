"""
Structured logging configuration.

structlog is layered on top of stdlib logging so that uvicorn and library
loggers share the same renderer.
"""
import logging
import sys

import structlog
from structlog import dev as structlog_dev

SENSITIVE_KEYS = {"api_key", "authorization", "auth_token", "api_secret", "secret", "token"}


def redact_secrets(logger, method_name, event_dict):
    """Mask values logged under secret-looking keys."""
    for key in list(event_dict.keys()):
        if str(key).lower() in SENSITIVE_KEYS and event_dict[key]:
            value = str(event_dict[key])
            event_dict[key] = f"{value[:2]}***REDACTED***" if len(value) > 4 else "***REDACTED***"
    return event_dict


def configure_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Set up structlog and the stdlib root logger.

    log_format is ``console`` (colourised, for local runs) or ``json``.
    """
    level_value = getattr(logging, str(log_level).upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            redact_secrets,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if log_format.strip().lower() == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog_dev.ConsoleRenderer(colors=sys.stdout.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level_value)


def get_logger(name: str = None):
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
