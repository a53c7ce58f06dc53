"""Centralized logging configuration using loguru.

Configures loguru sinks for the proxy and routes the standard-library loggers
used by uvicorn and httpx into loguru, so a single format covers both.

Example:
    from image_proxy.logging import setup_logging

    setup_logging(level="DEBUG")

    from loguru import logger
    logger.info("Proxy started")

"""

import logging
import sys
from typing import Any

from loguru import logger

# Standard-library loggers that are re-routed through loguru
FORWARDED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx")


class InterceptHandler(logging.Handler):
    """Forward standard-library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the caller that issued the record
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: str | None = None,
) -> Any:
    """Configure loguru for the proxy.

    Should be called once at startup, before the server starts accepting
    connections.

    Args:
        level: Minimum log level to capture. One of: DEBUG, INFO, WARNING, ERROR, CRITICAL.
        json_output: If True, output logs in JSON format for log shippers.
        log_file: Optional file path to write logs to. If None, logs only to stderr.

    Returns:
        The configured loguru logger instance.

    Example:
        setup_logging(level="INFO", json_output=True)
        setup_logging(level="DEBUG", log_file="/var/log/image-proxy.log")

    """
    logger.remove()

    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )

    if json_output:
        logger.add(
            sys.stderr,
            format="{message}",
            serialize=True,
            level=level,
        )
    else:
        logger.add(
            sys.stderr,
            format=console_format,
            level=level,
            colorize=True,
        )

    if log_file:
        logger.add(
            log_file,
            format=console_format,
            level=level,
            rotation="10 MB",
            retention="7 days",
            compression="gz",
        )

    intercept_stdlib(level)
    return logger


def intercept_stdlib(level: str = "INFO") -> None:
    """Replace the handlers of the forwarded stdlib loggers with an InterceptHandler."""
    handler = InterceptHandler()
    for name in FORWARDED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.propagate = False
        std_logger.setLevel(level)


def request_logger(client_id: str | None, url: str | None) -> Any:
    """Return a logger bound to the client and source URL of one proxy request.

    Args:
        client_id: Rate-limit identity of the caller.
        url: Source image URL, truncated to keep log lines short.

    Returns:
        A loguru logger carrying ``client`` and ``url`` in its extra context.

    """
    return logger.bind(client=client_id or "-", url=(url or "-")[:80])
