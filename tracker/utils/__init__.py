"""Utility functions and helpers."""

from tracker.utils.html_sanitizer import sanitize_html
from tracker.utils.validators import (
    diff_lists,
    extract_nicks,
    is_numeric_id,
    trim,
    validate_regexp,
)

__all__ = [
    "sanitize_html",
    "diff_lists",
    "extract_nicks",
    "is_numeric_id",
    "trim",
    "validate_regexp",
]
