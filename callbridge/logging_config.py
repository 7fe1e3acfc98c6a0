"""Logging configuration using Loguru.

Every record carries a ``call_id`` and ``stream_sid`` in ``extra``.
Module loggers default both to ``-``; per-call code logs through
``bind_call`` so each line of a call can be grepped by its call SID.

Phone numbers are masked with ``mask_phone`` before they are logged.
"""

import sys
from pathlib import Path
from typing import Any

from loguru import logger

NO_CALL = "-"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[call_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "call={extra[call_id]} stream={extra[stream_sid]} | "
    "{name}:{function}:{line} | "
    "{message}"
)


def setup_logging(
    level: str = "INFO",
    log_dir: str = "logs",
    enable_file: bool = True,
) -> None:
    """Configure application logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for call log files
        enable_file: Whether to write rotating call logs
    """
    logger.remove()
    logger.configure(extra={"call_id": NO_CALL, "stream_sid": NO_CALL})

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=True,
    )

    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / "calls_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level=level,
            rotation="100 MB",
            retention="30 days",
            compression="gz",
            backtrace=True,
            diagnose=False,  # locals may hold caller numbers
        )

        # Failed calls only: link, persistence and summary errors
        logger.add(
            log_path / "call_errors_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT + "\n{exception}",
            level="ERROR",
            filter=lambda record: record["extra"].get("call_id", NO_CALL) != NO_CALL,
            rotation="50 MB",
            retention="90 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
        )

    logger.info(f"Logging initialized at {level} level")


def get_logger(name: str) -> Any:
    """Module logger with no call context.

    Usage:
        logger = get_logger(__name__)
    """
    return logger.bind(name=name, call_id=NO_CALL, stream_sid=NO_CALL)


def bind_call(log: Any, call_id: str, stream_sid: str | None = None) -> Any:
    """Attach call context to a logger.

    Usage:
        log = bind_call(logger, session.call_id, session.media_stream_id)
        log.info("Stream started")
    """
    return log.bind(call_id=call_id, stream_sid=stream_sid or NO_CALL)


def mask_phone(phone: str) -> str:
    """Mask phone number for logging: +15551234567 -> +1XXXX4567."""
    if not phone or len(phone) < 6:
        return "XXXX"
    return f"{phone[:2]}XXXX{phone[-4:]}"
