"""
Logging setup built on loguru.

Modules call ``get_logger(__name__)`` and log with f-strings; the returned
logger is bound to the module name so records can be filtered per module.
"""

import sys
from typing import Optional

from loguru import logger as _logger

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

_configured = False


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure the global loguru sinks.

    Args:
        level: Minimum level for the stderr sink.
        log_file: Optional path for an additional rotating file sink.
    """
    global _configured

    _logger.remove()
    _logger.configure(extra={"name": "opaquesync"})
    _logger.add(sys.stderr, level=level.upper(), format=_FORMAT)

    if log_file:
        _logger.add(
            log_file, level="DEBUG", format=_FORMAT, rotation="10 MB", retention=2
        )

    _configured = True


def get_logger(name: str):
    """Return a logger bound to the given module name."""
    if not _configured:
        _logger.configure(extra={"name": "opaquesync"})
    return _logger.bind(name=name)
