# partpal/utils.py
"""Shared utilities: logging and small pagination helpers."""
import logging
import math

from .config import LOG_LEVEL
from .exceptions import ValidationError


def get_logger(name=__name__):
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        level=getattr(logging, LOG_LEVEL, logging.INFO)
    )
    return logging.getLogger(name)

logger = get_logger("partpal")


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def total_pages(total_count: int, page_size: int) -> int:
    if page_size <= 0:
        return 0
    return math.ceil(total_count / page_size)


def parse_int(value, name: str, default: int) -> int:
    """Parse an optional integer query parameter."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{name}: must be an integer")
