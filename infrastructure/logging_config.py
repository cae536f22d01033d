"""
Logging Configuration - structlog wired to stdlib logging
"""

import logging
import sys

import structlog

_LEVEL_MAP = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def resolve_level(level: str) -> int:
    return _LEVEL_MAP.get(level.lower(), logging.INFO)


def configure_logging(level: str = "info", json_output: bool = False) -> None:
    """
    Configure structlog and the root stdlib logger

    Calling it again replaces the previous configuration.

    Args:
        level: Minimum level (debug, info, warning, error, critical)
        json_output: Render JSON lines instead of console output
    """
    log_level = resolve_level(level)

    if json_output:
        renderer = structlog.processors.JSONRenderer(sort_keys=True, default=str)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)


def configure_from_settings(settings) -> None:
    """Configure logging from EngineSettings.log_level/log_format"""
    configure_logging(level=settings.log_level, json_output=settings.log_format.lower() == "json")
