"""
Logging configuration for Batch Encoder.
Provides console and file logging for encoding runs.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime


LOGGER_NAME = "batch_encoder"


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        """Format log record with colors."""
        # Work on a copy so file handlers sharing the record stay uncolored
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = (
                f"{self.COLORS[record.levelname]}"
                f"{record.levelname}"
                f"{self.RESET}"
            )
        return super().format(record)


class EncoderLogger:
    """
    Logger for batch encoding runs.
    Manages both console and file logging on the package logger, so
    module loggers (``batch_encoder.*``) propagate into the same handlers.
    """

    def __init__(
        self,
        log_file: Optional[Path],
        error_log_file: Optional[Path],
        level: str = "INFO",
        console_timestamps: bool = True,
        configure_handlers: bool = True
    ):
        """
        Initialize logging.

        Args:
            log_file: Path to main log file, or None for console only
            error_log_file: Path to error log file, or None to disable
            level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            console_timestamps: Include timestamps in console output
            configure_handlers: If False, wrap the package logger as-is
        """
        self.log_file = Path(log_file) if log_file else None
        self.error_log_file = Path(error_log_file) if error_log_file else None
        self.level = getattr(logging, level.upper())
        self.console_timestamps = console_timestamps

        self.logger = logging.getLogger(LOGGER_NAME)
        if not configure_handlers:
            return

        for path in (self.log_file, self.error_log_file):
            if path is not None:
                path.parent.mkdir(parents=True, exist_ok=True)

        self.logger.setLevel(logging.DEBUG)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        self._setup_handlers()

    def _setup_handlers(self):
        """Set up logging handlers for console and files."""
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.level)

        if self.console_timestamps:
            console_format = '%(asctime)s - %(levelname)s - %(message)s'
        else:
            console_format = '%(levelname)s - %(message)s'

        console_handler.setFormatter(ColoredFormatter(
            console_format,
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        self.logger.addHandler(console_handler)

        file_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        if self.log_file is not None:
            file_handler = logging.FileHandler(self.log_file, mode='a')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

        if self.error_log_file is not None:
            error_handler = logging.FileHandler(self.error_log_file, mode='a')
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(file_formatter)
            self.logger.addHandler(error_handler)

    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)

    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)

    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)

    def error(self, message: str, exc_info: bool = False):
        """
        Log error message.

        Args:
            message: Error message
            exc_info: Include exception traceback
        """
        self.logger.error(message, exc_info=exc_info)

    def log_job_start(self, job_id: str, directories: list, output_dir: Path, profile: str):
        """Log encoding run start."""
        self.info("=" * 70)
        self.info("BATCH ENCODER - Starting Encoding Job")
        self.info("=" * 70)
        self.info(f"Job ID:            {job_id}")
        self.info(f"Directories:       {', '.join(directories)}")
        self.info(f"Output Directory:  {output_dir}")
        self.info(f"Profile:           {profile}")
        self.info(f"Started at:        {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        self.info("=" * 70)

    def log_job_end(self, success: bool, processed: int = 0, total: int = 0, errors: int = 0):
        """Log encoding run end."""
        self.info("=" * 70)
        if success:
            self.info("BATCH ENCODER - Job Completed")
        else:
            self.info("BATCH ENCODER - Job Failed")
        self.info(f"Files Processed:   {processed}/{total}")
        self.info(f"Errors Recorded:   {errors}")
        self.info(f"Ended at:          {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        self.info("=" * 70)

    def get_logger(self) -> logging.Logger:
        """Get the underlying logger instance."""
        return self.logger


def setup_logger(
    log_file: Optional[str] = "encoding.log",
    error_log_file: Optional[str] = "encoding_errors.log",
    level: str = "INFO",
    console_timestamps: bool = True
) -> EncoderLogger:
    """
    Set up and return a configured logger.

    Args:
        log_file: Path to main log file
        error_log_file: Path to error log file
        level: Logging level
        console_timestamps: Include timestamps in console output

    Returns:
        Configured EncoderLogger instance
    """
    return EncoderLogger(
        Path(log_file) if log_file else None,
        Path(error_log_file) if error_log_file else None,
        level,
        console_timestamps
    )


def get_logger() -> EncoderLogger:
    """Wrap the package logger without touching its handlers."""
    return EncoderLogger(None, None, configure_handlers=False)
