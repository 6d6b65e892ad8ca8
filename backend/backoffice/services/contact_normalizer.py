"""
Contact normalization.

Every comparison of customer contact fields (matching, deduplicating
alternates, searching) goes through these functions; raw strings are never
compared directly. All of them are pure and treat None as "".
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, Optional

_NON_DIGITS = re.compile(r"\D")
_WHITESPACE = re.compile(r"\s+")

Normalizer = Callable[[Optional[str]], str]


def normalize_email(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def normalize_phone(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", (value or "").strip())


def normalize_address(value: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", (value or "").strip()).lower()


def normalize_name(value: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", (value or "").strip()).lower()


def contains_normalized(values: Iterable[Optional[str]], candidate: Optional[str], normalizer: Normalizer) -> bool:
    """True if any of values normalizes to the same key as candidate."""
    key = normalizer(candidate)
    return any(normalizer(v) == key for v in values)
