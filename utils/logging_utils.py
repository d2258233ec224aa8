"""
Logging helpers for the feed synchronization runner.

AutoTracebackFormatter appends the active exception's traceback to ERROR
and CRITICAL records even when the caller did not pass exc_info=True.
"""
import logging
import sys
import traceback
from typing import Optional, Union

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'

# Libraries kept at WARNING or above.
QUIET_LOGGERS = ("urllib3", "requests")


class AutoTracebackFormatter(logging.Formatter):
    """
    Formatter that includes the active exception for ERROR/CRITICAL logs.

    Usage:
        formatter = AutoTracebackFormatter(DEFAULT_FORMAT)
        handler.setFormatter(formatter)
    """

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        style: str = '%',
        always_include_traceback: bool = True
    ):
        """
        Initialize the AutoTracebackFormatter.

        Args:
            fmt: Log message format string
            datefmt: Date format string
            style: Formatter style (%, {, or $)
            always_include_traceback: Attach the active exception to ERROR/CRITICAL records
        """
        super().__init__(fmt, datefmt, style)
        self.always_include_traceback = always_include_traceback

    def format(self, record: logging.LogRecord) -> str:
        if (
            self.always_include_traceback
            and record.levelno >= logging.ERROR
            and record.exc_info is None
            and sys.exc_info()[0] is not None
        ):
            record.exc_info = sys.exc_info()
            record.exc_text = ''.join(traceback.format_exception(*record.exc_info))
        return super().format(record)


def setup_enhanced_logging(
    log_file: Optional[str] = None,
    level: Union[int, str] = logging.INFO,
    fmt: Optional[str] = None
) -> logging.Logger:
    """
    Configure the root logger with AutoTracebackFormatter.

    Args:
        log_file: Path to log file (if None, only console logging)
        level: Root logger level, as a number or a level name like "DEBUG"
        fmt: Custom format string (if None, uses DEFAULT_FORMAT)

    Returns:
        The configured root logger
    """
    if isinstance(level, str):
        level_name = level.upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level_name}")

    formatter = AutoTracebackFormatter(fmt or DEFAULT_FORMAT)

    handlers = []
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return root_logger
