"""
Utility modules for the registry engine.
"""

from .clock import utc_now, parse_timestamp
from .config import Config
from .formatting import format_area, format_currency
from .logging import setup_logging

__all__ = [
    "utc_now",
    "parse_timestamp",
    "Config",
    "format_area",
    "format_currency",
    "setup_logging",
]
