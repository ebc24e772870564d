"""
logging_config.py - Centralized Logging Configuration for the Storefront Admin Backend

This module configures unified logging behavior for the entire application.
All modules log through the same format to the console and, when configured,
to a log file.

Features:
    • Combined console and file logging output
    • Process ID tagging for multi-worker visibility
    • Standardized log format for all modules
    • Reduced verbosity for the MongoDB driver
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """
    Configures the global logging system for the application.

    Args:
        level (str): Root log level name, e.g. "INFO" or "DEBUG".
        log_file (str | None): Optional path of a persistent log file.
            Console output (stdout) is always enabled.

    Handlers are installed only once; later calls just adjust the level.
    """
    root = logging.getLogger()
    log_level = getattr(logging, level.upper(), logging.INFO)
    if root.handlers:
        root.setLevel(log_level)
    else:
        handlers = [logging.StreamHandler(sys.stdout)]
        if log_file:
            handlers.append(logging.FileHandler(log_file))
        logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=handlers)

    # Reduce verbosity from external libraries
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a logger for a given module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: A logger that follows the global format and handlers.
    """
    return logging.getLogger(name)
