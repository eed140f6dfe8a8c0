import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger  # type: ignore[attr-defined]

LOG_FORMAT = "%(asctime)s - %(levelname)s:%(name)s:%(lineno)d:%(message)s"
JSON_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(lineno)d %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_formatter(json_format: bool = False) -> logging.Formatter:
    """Return the shared formatter, plain text or JSON lines."""
    if json_format:
        return jsonlogger.JsonFormatter(
            fmt=JSON_LOG_FORMAT,
            datefmt=DATE_FORMAT,
            rename_fields={"levelname": "level", "name": "logger"},
        )

    return logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    filename_prefix: str = "pricestream",
    console: bool = True,
    file: bool = False,
    json_format: bool = False,
) -> None:
    """Configure logging with timestamps, line numbers and module names.

    Args:
        level: The logging level to use (default: logging.INFO)
        log_dir: Directory to store log files (default: ./logs)
        filename_prefix: Prefix for log filename (default: 'pricestream')
        console: Whether to output logs to console (default: True)
        file: Whether to output logs to file (default: False)
        json_format: Emit JSON lines instead of plain text (default: False)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear any existing handlers
    root_logger.handlers.clear()

    formatter = build_formatter(json_format)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if file:
        if log_dir is None:
            log_dir = os.path.join(os.getcwd(), "logs")

        Path(log_dir).mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d")
        log_file = os.path.join(log_dir, f"{filename_prefix}_{timestamp}.log")

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        root_logger.info("Logging initialized - writing to %s", log_file)

    # aiohttp and web3 are chatty at DEBUG
    for noisy in ("aiohttp.access", "web3.providers", "urllib3"):
        logging.getLogger(noisy).setLevel(max(level, logging.INFO))
