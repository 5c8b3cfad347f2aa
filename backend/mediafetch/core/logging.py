"""Structured logging configuration."""
import logging
import sys

from mediafetch.core.config import Settings, settings

_JSON_FORMAT = (
    '{"time":"%(asctime)s","level":"%(levelname)s",'
    '"name":"%(name)s","message":"%(message)s"}'
)
_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(app_settings: Settings | None = None) -> None:
    """Configure logging for the service.

    Args:
        app_settings: Settings to read the level and environment from
            (defaults to the process-wide settings)
    """
    app_settings = app_settings or settings
    log_level = getattr(logging, app_settings.LOG_LEVEL.upper())

    # JSON lines for production log shippers, readable text otherwise
    log_format = _JSON_FORMAT if app_settings.is_production else _TEXT_FORMAT

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Set third-party loggers to WARNING to reduce noise
    for noisy in ("uvicorn", "uvicorn.access", "fastapi", "sse_starlette"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
