"""Input validation utilities."""

import re
from typing import Any, Callable, Hashable, Iterable, Optional, TypeVar

T = TypeVar("T")

# `Real Name [:nick]` is the convention for advertising a nickname.
NICK_PATTERN = re.compile(r":(\w+)")


def trim(value: Optional[str]) -> str:
    """Strip surrounding whitespace; None becomes an empty string."""
    if value is None:
        return ""
    return str(value).strip()


def extract_nicks(name: Optional[str]) -> list[str]:
    """
    Extract `:nick` style nicknames from a real name.

    Args:
        name: Real name, e.g. "Jane Doe [:jdoe]"

    Returns:
        Nicknames in order of appearance
    """
    if not name:
        return []
    return NICK_PATTERN.findall(name)


def is_numeric_id(value: Any) -> bool:
    """Check if a value is a group/user id rather than a name."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and bool(re.fullmatch(r"\d+", value))


def validate_regexp(pattern: str) -> bool:
    """
    Check that a user-supplied regular expression compiles.

    Args:
        pattern: Regular expression

    Returns:
        True if the pattern is usable, False otherwise
    """
    try:
        re.compile(pattern)
    except re.error:
        return False
    return True


def diff_lists(
    old: Iterable[T],
    new: Iterable[T],
    key: Callable[[T], Hashable] = lambda item: item,
) -> tuple[list[T], list[T]]:
    """
    Compare two lists by key.

    Returns:
        Tuple of (items only in old, items only in new), order preserved
    """
    old = list(old)
    new = list(new)
    old_keys = {key(item) for item in old}
    new_keys = {key(item) for item in new}
    removed = [item for item in old if key(item) not in new_keys]
    added = [item for item in new if key(item) not in old_keys]
    return removed, added
