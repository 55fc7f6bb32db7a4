"""Module loggers for ImproVe, all rooted in the ``improve`` hierarchy."""
import logging
import threading
from typing import Dict

PACKAGE_LOGGER = "improve"

# Module-level cache for loggers, shared by the capture and analysis threads
_logger_cache: Dict[str, logging.Logger] = {}
_cache_lock = threading.Lock()


def logger_name(name: str) -> str:
    """Place a module name inside the package hierarchy.

    ``setup_logging`` only attaches its handler to ``improve`` loggers, so
    a module run as a script (``__main__``) would otherwise log to the bare
    root logger. Such names are nested under the package logger.

    Args:
        name: Usually the caller's ``__name__``

    Returns:
        The dotted logger name, e.g. 'improve.main' for '__main__'
    """
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return name
    return f"{PACKAGE_LOGGER}.{name.strip('_') or 'main'}"


def get_logger(name: str) -> logging.Logger:
    """
    Get the cached logger for a module.

    Args:
        name: The full module name (e.g., 'improve.analysis.curve')

    Returns:
        The logger, created on first use
    """
    qualified = logger_name(name)
    with _cache_lock:
        logger = _logger_cache.get(qualified)
        if logger is None:
            logger = _logger_cache[qualified] = logging.getLogger(qualified)
    return logger
