import logging
import sys

import structlog

from triproute.core.config import get_settings


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | int | None = None) -> None:
    """Route engine logs to stdout; structlog renders JSON events."""
    resolved = level if level is not None else get_settings().log_level.upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT, stream=sys.stdout)
    # httpx logs every provider request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
