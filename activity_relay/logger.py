"""Logger configuration for the activity relay."""

import sys

from loguru import logger

FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level> | {extra}"
)


def setup_logger(level: str = "INFO") -> None:
    """Replace loguru's default sink with a single stderr sink.

    Event fields attached with ``logger.bind`` are rendered after the message.
    """
    logger.remove()
    logger.add(sys.stderr, format=FORMAT, level=level.upper(), colorize=True)
    logger.debug(f"Logger initialized with level={level}")
