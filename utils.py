"""
Utility functions for EasySplit application
"""
from __future__ import annotations
import logging
import os
import uuid
from typing import Optional

import structlog

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def new_id() -> str:
    """Fresh random identifier for members, items and receipts"""
    return str(uuid.uuid4())


def safe_float(x, default: Optional[float] = 0.0) -> Optional[float]:
    """Convert value to float safely, returning default on error"""
    try:
        return float(x)
    except (TypeError, ValueError):
        return default


def format_currency(amount: float, currency: str = "THB") -> str:
    """Format an amount with two decimals, e.g. '฿1,234.50'"""
    symbol = "฿" if currency == "THB" else f"{currency} "
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def app_dir() -> str:
    """
    Get application data directory: ~/Library/Application Support/EasySplit,
    or $EASYSPLIT_HOME when set.
    Creates directory if it doesn't exist.
    """
    path = os.environ.get("EASYSPLIT_HOME")
    if not path:
        base = os.path.expanduser("~/Library/Application Support")
        path = os.path.join(base, "EasySplit")
    os.makedirs(path, exist_ok=True)
    return path


def configure_logging(level: str = "info") -> None:
    """Configure structlog with JSON rendering and ISO timestamps."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS.get(level.lower(), logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )
