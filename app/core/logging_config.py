"""
Centralized Logging Configuration

This module provides a centralized logging setup that:
1. Configures loguru for structured logging
2. Intercepts standard Python logging calls (uvicorn, aiohttp, httpx, openai)
3. Ensures all modules log to the same sinks consistently
"""

import os
import sys
from pathlib import Path
from loguru import logger
import logging


LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"


class InterceptHandler(logging.Handler):
    """Handler to intercept standard Python logging calls and route them to loguru"""

    def emit(self, record):
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where the logged message originated
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging():
    """Configure centralized logging for the entire application"""

    # Remove default loguru logger to avoid duplicate logs
    logger.remove()

    logger.add(
        sink=sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    debug_enabled = os.environ.get("DEBUG", "false").lower() == "true"
    file_logging = os.environ.get("LOG_TO_FILE", "true").lower() == "true"

    if file_logging:
        logs_dir = Path(os.environ.get("LOG_DIR", "logs"))
        logs_dir.mkdir(parents=True, exist_ok=True)

        # Add file logging with rotation
        logger.add(
            sink=str(logs_dir / "app_{time:YYYY-MM-DD}.log"),
            format=LOG_FORMAT,
            level="INFO",
            rotation="1 day",
            retention="7 days",
            compression="zip",
            enqueue=True,  # Makes logging thread-safe
        )

        # Add error-specific logging
        logger.add(
            sink=str(logs_dir / "errors_{time:YYYY-MM-DD}.log"),
            format=LOG_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention="30 days",
            compression="zip",
            enqueue=True,
        )

        if debug_enabled:
            logger.add(
                sink=str(logs_dir / "debug_{time:YYYY-MM-DD}.log"),
                format=LOG_FORMAT,
                level="DEBUG",
                rotation="1 day",
                retention="3 days",
                compression="zip",
                enqueue=True,
            )

    # Intercept standard Python logging calls
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Set specific loggers to appropriate levels
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("fastapi").setLevel(logging.INFO)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.INFO)
    logging.getLogger("anthropic").setLevel(logging.INFO)

    logger.debug(
        f"Logging configured (file sinks: {'on' if file_logging else 'off'}, "
        f"debug: {'on' if debug_enabled else 'off'})"
    )


def get_logger(name: str = None):
    """Get a logger instance that works with the centralized logging system"""
    if name:
        return logger.bind(name=name)
    return logger


# Configure logging when this module is imported
setup_logging()
