"""
Exam Session Engine - Logging Configuration
"""
import logging

from examcore.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str | None = None) -> logging.Logger:
    """Configure root logging once and return the package logger."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    return logging.getLogger("examcore")
