# speechstream/LoggingSetup.py
import sys
import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'


def setup_logging(logs_dir: Path, verbose: bool = False, is_frozen: bool = False) -> None:
    """
    Configure logging for terminal and background (no console) runs.

    Creates the log directory, sets up file rotation, and adds console
    output unless running without a console.

    Args:
        logs_dir: Directory to store log files
        verbose: If True, set DEBUG level; otherwise INFO
        is_frozen: If True, skip console handler (no console attached)
    """
    logs_dir.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if verbose else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    # Rotating file handler (10MB max, keep 5 files)
    log_file = logs_dir / "speechstream.log"
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if not is_frozen:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    logging.info(f"Logging initialized: level={logging.getLevelName(level)}, frozen={is_frozen}")
