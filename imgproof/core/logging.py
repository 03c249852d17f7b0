"""Loguru sink configuration"""

import sys
from typing import Optional

from loguru import logger

from imgproof.core.config import settings


def setup_logging(level: Optional[str] = None) -> None:
    """Replace the default loguru sink with one at the configured level"""
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.LOG_LEVEL).upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan> - <level>{message}</level>",
    )
