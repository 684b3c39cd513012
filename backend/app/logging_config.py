"""Structured logging setup.

structlog renders both its own events and stdlib records (uvicorn, httpx) so
the search pipeline's fallback decisions show up in one stream.
"""

import logging
import os
import sys

import structlog


def setup_logging(log_level: str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog on top of the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to ``LOG_LEVEL`` or INFO.
        json_output: Render JSON lines instead of colored console output.
            Defaults to ``LOG_JSON`` being set to 1/true.
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL") or "INFO"
    if json_output is None:
        json_output = (os.getenv("LOG_JSON") or "").strip().lower() in {"1", "true", "yes"}

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # httpx logs every request at INFO.
    for logger_name in ("httpx", "httpcore", "urllib3.connectionpool"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
