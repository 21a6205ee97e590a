"""structlog configuration for the command line."""

import logging
import sys

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Render key/value log lines on stderr at ``level`` and above.

    stdout is left to command output.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Job results are reported through structlog by the poll loop.
    logging.getLogger("apscheduler").setLevel(logging.ERROR)
