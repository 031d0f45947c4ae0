#!/usr/bin/env python3
"""
utils.py

Small helpers shared by the finder, the rewriter and the report driver.
"""

from __future__ import annotations

import re
from typing import Callable, Tuple

from qcs.errors import InvalidAddress


_HEX_RE = re.compile(r"[0-9a-fA-F]+")

MAX_ADDRESS = (1 << 64) - 1


def parse_address(text: str) -> int:
    """
    Parse a hexadecimal address ("0x1ffff9de0d58" or "1ffff9de0d58")
    into an unsigned 64-bit integer.

    Raises InvalidAddress when the text is not a hex number or does not
    fit in 64 bits.
    """
    body = text[2:] if text.startswith("0x") else text
    if not _HEX_RE.fullmatch(body):
        raise InvalidAddress(text)
    value = int(body, 16)
    if value > MAX_ADDRESS:
        raise InvalidAddress(text)
    return value


def binary_search(start: int, end: int, judge: Callable[[int], int]) -> Tuple[bool, int]:
    """
    Binary search over the index range [start, end).

    judge(index) compares the element at index with the wanted value and
    returns a negative number when the element is smaller, a positive
    number when it is larger, and zero when it is equal.

    Returns (True, index) when a matching element is found, otherwise
    (False, insertion_point) where insertion_point is the first index whose
    element is not smaller than the wanted value.
    """
    low = start
    high = end - 1

    while low <= high:
        mid = low + (high - low) // 2
        comp = judge(mid)
        if comp < 0:
            low = mid + 1
        elif comp > 0:
            high = mid - 1
        else:
            return True, mid

    return False, low


def fixed_width(text: str, width: int) -> str:
    """Cut or right-pad text with spaces to exactly `width` characters."""
    if len(text) >= width:
        return text[:width]
    return text + " " * (width - len(text))


__all__ = [
    "MAX_ADDRESS",
    "parse_address",
    "binary_search",
    "fixed_width",
]
