"""Utility modules for Duty Alarm Bridge."""

from .logging import get_logger, setup_logging
from .validation import validate_phone, normalize_phone, mask_phone_number, sanitize_input

__all__ = [
    "get_logger",
    "setup_logging",
    "validate_phone",
    "normalize_phone",
    "mask_phone_number",
    "sanitize_input",
]
