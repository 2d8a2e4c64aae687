import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from flight_elo.config import Config

# Set by the replay worker: the parent already captures and files our stdout
CHILD_PROCESS_ENV = 'FLIGHT_ELO_CHILD_PROCESS'


def setup_logger(name: str) -> logging.Logger:
    """Setup a logger with consistent formatting.

    Inside the replay subprocess only the bare message goes to stdout, since
    the parent process re-logs every line with its own timestamp and prefix.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    log_level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(log_level)

    if os.getenv(CHILD_PROCESS_ENV) == '1':
        child_handler = logging.StreamHandler(sys.stdout)
        child_handler.setLevel(log_level)
        child_handler.setFormatter(logging.Formatter('%(levelname)s %(name)s: %(message)s'))
        logger.addHandler(child_handler)
        return logger

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_dir = Path(os.getenv('LOG_DIR', 'logs'))
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(
        log_dir / f'flight_elo_{datetime.now().strftime("%Y%m%d")}.log',
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger
