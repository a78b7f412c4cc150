"""
Configuration module for the budget ledger.

Contains constants, settings, and configuration values used throughout the application.
"""

import os
from pathlib import Path

# Version
VERSION = "0.1.0"

# Application paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOG_DIR = PROJECT_ROOT / "logs"

# Database configuration
DEFAULT_DB_PATH = Path(os.getenv("BUDGETLEDGER_DB_PATH", DATA_DIR / "budgetledger.db"))
DB_TIMEOUT = 10.0  # seconds

# Money
MINOR_UNITS_PER_MAJOR = 100  # cents per dollar

# Aggregation
UNCATEGORIZED_KEY = "uncategorized"
DEFAULT_VARIANCE_CONVENTION = "target_minus_actual"
DEFAULT_NEAR_LIMIT_THRESHOLD = 0.8

# Recurring templates
DEFAULT_UPCOMING_HORIZON_DAYS = 30

# Logging configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "budgetledger.log"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# User input limits
MAX_CATEGORY_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 200


def ensure_directories():
    """Ensure required directories exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def get_log_level():
    """Get the configured log level."""
    import logging

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(os.getenv("LOG_LEVEL", LOG_LEVEL).upper(), logging.INFO)


def get_variance_convention() -> str:
    """Get the configured variance sign convention (read at call time)."""
    return os.getenv(
        "BUDGETLEDGER_VARIANCE_CONVENTION", DEFAULT_VARIANCE_CONVENTION
    ).lower()


def get_near_limit_threshold() -> float:
    """Get the fraction of a budget at which a category counts as near its limit."""
    raw = os.getenv("BUDGETLEDGER_NEAR_LIMIT_THRESHOLD")
    if raw is None:
        return DEFAULT_NEAR_LIMIT_THRESHOLD
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_NEAR_LIMIT_THRESHOLD
    if value < 0 or value > 1:
        return DEFAULT_NEAR_LIMIT_THRESHOLD
    return value
