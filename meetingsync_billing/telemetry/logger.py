"""
Runtime logging configuration.

Modules log through ``loguru``. The package disables its own logger on
import; applications call ``configure_logging`` to turn it on.
"""

import sys
from typing import Optional, TextIO

from loguru import logger

LOG_FORMAT = "{time:HH:mm:ss} | {level: <7} | {name}:{function} | {message}"


def configure_logging(verbose: bool = False, sink: Optional[TextIO] = None) -> None:
    """Enable package logging with a deterministic one-line format.

    Args:
        verbose: Emit DEBUG records as well as INFO and above
        sink: Stream to write to (defaults to stderr)
    """
    logger.remove()
    logger.add(
        sink or sys.stderr,
        format=LOG_FORMAT,
        level="DEBUG" if verbose else "INFO",
        colorize=False
    )
    logger.enable("meetingsync_billing")
