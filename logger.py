# logger.py
"""
Logging for the tank gauging engine.

One application logger ("TankGauging") writes DEBUG and up to a daily file
and INFO and up to stdout. Engine modules log through child loggers
("TankGauging.strapping_table", ...) so the file shows which stage spoke.
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

APP_LOGGER_NAME = "TankGauging"

LOGS_DIR = Path(os.getenv("GAUGING_LOG_DIR", "logs"))
LOGS_DIR.mkdir(parents=True, exist_ok=True)

CONSOLE_LEVEL = getattr(logging, os.getenv("GAUGING_LOG_LEVEL", "INFO").upper(), logging.INFO)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(name: str = APP_LOGGER_NAME) -> logging.Logger:
    """Setup application logger with file and console handlers"""

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers on re-import
    if logger.handlers:
        return logger

    today = datetime.now().strftime("%Y-%m-%d")
    file_handler = logging.FileHandler(LOGS_DIR / f"gauging_{today}.log", encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(CONSOLE_LEVEL)

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


logger = setup_logger()


def get_logger(component: str) -> logging.Logger:
    """Child of the application logger; inherits its handlers."""
    return logger.getChild(component)


# Non-OK outcome status -> level it is reported at
_OUTCOME_LEVELS = {
    "OUT_OF_RANGE": logging.WARNING,
    "PARSE_ERROR": logging.WARNING,
    "MALFORMED": logging.ERROR,
}


def log_outcome(outcome, context: str, component: logging.Logger = None):
    """Report a failed Outcome once, at the level its status deserves."""
    status = getattr(outcome.status, "value", str(outcome.status))
    if status == "OK":
        return
    target = component or logger
    target.log(_OUTCOME_LEVELS.get(status, logging.WARNING), f"{context}: {status} - {outcome.message}")


# Convenience functions
def log_info(message: str):
    logger.info(message)

def log_warning(message: str):
    logger.warning(message)

def log_error(message: str, exc_info=False):
    logger.error(message, exc_info=exc_info)
