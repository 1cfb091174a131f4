"""
Logging Configuration
Structured logging with loguru
Source: https://github.com/Delgan/loguru
Verified: 2026-10-01
"""

import sys
from pathlib import Path

from loguru import logger

from phi_claims.services.security.phi_protection import redact, redact_text


def _redact_record(record) -> None:  # type: ignore[no-untyped-def]
    """Loguru patcher that strips PHI from the message and bound extras."""
    record["message"] = redact_text(record["message"])
    record["extra"].update(redact(dict(record["extra"])))


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False,
    redact_phi: bool = True,
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        json_logs: Whether to output JSON format (useful for production)
        redact_phi: Run every record through the PHI redaction boundary

    Source: https://loguru.readthedocs.io/en/stable/api/logger.html#loguru._logger.Logger.configure
    """

    # Remove default logger
    logger.remove()

    # Patcher applies to every sink, including ones added later
    logger.configure(patcher=_redact_record if redact_phi else None)

    if json_logs:
        # JSON format for production (machine-readable)
        logger.add(
            sys.stderr,
            format="{message}",
            level=level,
            serialize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
            level=level,
            colorize=True,
        )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_file,
            rotation="100 MB",
            retention="30 days",
            compression="zip",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=level,
            serialize=json_logs,
        )

    logger.info(
        f"Logging configured: level={level}, json_logs={json_logs}, redact_phi={redact_phi}"
    )


def get_logger(name: str = __name__):  # type: ignore[no-untyped-def]
    """
    Get a logger instance.

    Example:
        >>> from phi_claims.utils.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Worker started")
    """
    return logger.bind(name=name)
