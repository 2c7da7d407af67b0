import logging
import logging.handlers
import os
import sys
from datetime import datetime

LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB

_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _BelowError(logging.Filter):
    def filter(self, record):
        return record.levelno < logging.ERROR


def _old_namer(default_name: str) -> str:
    # backup.log.1 -> backup.log.old
    base, _, _ = default_name.rpartition(".")
    return f"{base}.old"


def setup_console_logging(verbose: bool = False) -> logging.Logger:
    """Console-only logging: stdout below ERROR, stderr for ERROR and above."""
    log_level = logging.DEBUG if verbose else logging.INFO

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Remove existing handlers to avoid duplicates
    if logger.hasHandlers():
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    formatter = logging.Formatter(_FORMAT, _DATE_FORMAT)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(log_level)
    stdout_handler.addFilter(_BelowError())
    stdout_handler.setFormatter(formatter)
    logger.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)
    return logger


def setup_logging(log_file, verbose: bool = False, max_bytes: int = LOG_MAX_BYTES):
    """
    Configure logging for a backup run.

    Errors go to stderr, everything else to stdout (DEBUG only when verbose).
    The log file always receives DEBUG. A log file already larger than
    max_bytes is moved to <log>.old before the run writes anything.
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    logger = setup_console_logging(verbose)
    formatter = logging.Formatter(_FORMAT, _DATE_FORMAT)

    log_file = str(log_file)
    try:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=1, encoding="utf-8"
        )
        file_handler.namer = _old_namer
        if os.path.getsize(log_file) > max_bytes:
            file_handler.doRollover()
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)

        with open(log_file, "a", encoding="utf-8") as f:
            f.write("=" * 42 + "\n")
            f.write(f"Backup started: {datetime.now().strftime(_DATE_FORMAT)}\n")
            f.write("=" * 42 + "\n")
        logger.addHandler(file_handler)
    except OSError as e:
        logger.error(f"Failed to create log file handler: {e}")

    logging.getLogger("dbdump").setLevel(logging.DEBUG)
    logging.debug(f"Logging configured with level {logging.getLevelName(log_level)}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
