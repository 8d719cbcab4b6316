"""
Logging module for the fabric inspection and migration tool
"""

import logging
import os
from typing import Any, Optional

LOGGER_NAME = "fabric_doctor"

# Record attributes rendered as "[key=value]" after the message
CONTEXT_FIELDS = ("store", "phase", "height")


# Define an enhanced formatter class that can handle verbose formatting and context fields
class EnhancedFormatter(logging.Formatter):
    """
    Custom formatter that supports verbose mode (with module and line information)
    and appends context fields such as the column family being processed
    """

    def __init__(
        self,
        fmt=None,
        datefmt=None,
        style="%",
        verbose=False,
        include_context=True,
    ):
        # Use more detailed format for verbose mode
        if verbose:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s"
        elif not fmt:
            fmt = "%(asctime)s - %(levelname)s - %(message)s"

        super().__init__(fmt, datefmt, style)
        self.include_context = include_context

    def format(self, record):
        result = super().format(record)

        if self.include_context:
            context = [
                f"{name}={getattr(record, name)}"
                for name in CONTEXT_FIELDS
                if getattr(record, name, None) not in (None, "")
            ]
            if context:
                result += f" [{', '.join(context)}]"

        return result


def setup_main_log_file(output_dir: str) -> logging.FileHandler:
    """
    Set up a file handler for the run's main log file.

    Args:
        output_dir: The output directory path

    Returns:
        The file handler for the main log file
    """
    os.makedirs(output_dir, exist_ok=True)

    log_file = os.path.join(output_dir, "migration.log")

    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setLevel(logging.DEBUG)  # Always use DEBUG level for file handlers
    file_handler.setFormatter(
        EnhancedFormatter("%(asctime)s - %(levelname)s - %(message)s")
    )

    logger = logging.getLogger(LOGGER_NAME)
    logger.addHandler(file_handler)

    logger.info(f"Main log file created at: {log_file}")
    return file_handler


def setup_logger(
    verbose: bool = False, output_dir: Optional[str] = None
) -> logging.Logger:
    """
    Set up and return the logger with appropriate formatting.

    Args:
        verbose: If True, set console handler to DEBUG level; otherwise INFO level
        output_dir: Optional output directory for the main log file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers to prevent duplicate messages
    if logger.handlers:
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
            handler.close()

    logger.setLevel(logging.DEBUG)  # Always set logger to DEBUG to capture all logs

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(EnhancedFormatter(verbose=verbose))
    logger.addHandler(console_handler)

    if output_dir:
        setup_main_log_file(output_dir)

    return logger


def log_with_context(level: int, message: str, **kwargs: Any) -> None:
    """
    Log a message with additional context information.

    Args:
        level: The logging level (e.g., logging.INFO)
        message: The log message
        **kwargs: Additional context to include in the log record
            (``store``, ``phase``, ``height``, or ``exc_info``)
    """
    exc_info = kwargs.pop("exc_info", None)

    # Filter out None values from kwargs
    extras = {k: v for k, v in kwargs.items() if v is not None}

    logger = logging.getLogger(LOGGER_NAME)
    logger.log(level, message, extra=extras, exc_info=exc_info)


def get_logger():
    """Get the fabric_doctor logger, creating it with defaults if needed."""
    fabric_logger = logging.getLogger(LOGGER_NAME)
    if not fabric_logger.handlers:
        # If no handlers, set up a basic logger
        fabric_logger.setLevel(logging.INFO)
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(EnhancedFormatter())
        fabric_logger.addHandler(handler)
    return fabric_logger


# Module logger - will be properly initialized when setup_logger is called
logger = get_logger()
