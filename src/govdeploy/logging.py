import logging
from typing import Literal

import structlog

LogFormat = Literal["json", "console"]

# Chatty transport loggers that would repeat every gateway request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: int | str = logging.INFO, fmt: LogFormat = "json") -> None:
    """Configure structlog on top of standard logging.

    ``json`` emits one object per event for log shippers; ``console`` renders
    aligned, colourised lines for someone watching a deploy by hand.
    """

    if isinstance(level, str):
        level = level.upper()

    renderer = structlog.dev.ConsoleRenderer() if fmt == "console" else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, format="%(message)s")
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_run(run_id: str) -> None:
    """Attach the run id to every log line emitted in this context."""

    structlog.contextvars.bind_contextvars(run_id=run_id)
