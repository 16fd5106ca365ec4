"""Phone number helpers.

All numbers handled by the relay are international E.164-style strings:
a ``+`` followed by 2 to 15 digits, the first of which is 1-9.
"""

from __future__ import annotations

import re

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


def is_valid_phone(number: str | None) -> bool:
    """Check whether a number is in E.164 format."""
    if not isinstance(number, str):
        return False
    return E164_PATTERN.fullmatch(number) is not None


def mask_phone(number: str | None) -> str:
    """Mask a phone number for logs and diagnostics.

    Keeps the last 4 characters and replaces everything before them with
    ``*``. Inputs shorter than 4 characters become ``****``.

    Examples:
        >>> mask_phone("+919876543210")
        '*********3210'
        >>> mask_phone("12")
        '****'
    """
    if not number or len(number) < 4:
        return "****"
    return "*" * (len(number) - 4) + number[-4:]
