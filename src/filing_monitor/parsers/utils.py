"""Utility helpers for normalizing scraped text."""
from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from dateutil import parser


GROUPING = re.compile(r"[,\s _$]")
PLAIN_NUMBER = re.compile(r"^\d+(\.\d+)?$")


def _clean_number(value: str | None) -> Optional[str]:
    if not value:
        return None
    cleaned = GROUPING.sub("", value.strip())
    if not PLAIN_NUMBER.match(cleaned):
        return None
    return cleaned


def parse_int(value: str | None) -> Optional[int]:
    """Parse a locale formatted count such as ``1,234,567``."""

    cleaned = _clean_number(value)
    if cleaned is None:
        return None
    return int(Decimal(cleaned))


def parse_decimal(value: str | None) -> Optional[Decimal]:
    """Parse a locale formatted amount keeping the reported precision."""

    cleaned = _clean_number(value)
    if cleaned is None:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_date(value: str | None) -> Optional[date]:
    """Parse a date string using dateutil."""

    if not value or not value.strip():
        return None
    try:
        return parser.parse(value.strip()).date()
    except (ValueError, OverflowError):
        return None


def normalize_text(value: str | None) -> str:
    """Collapse internal whitespace and strip the ends."""

    if not value:
        return ""
    return " ".join(value.split())


__all__ = ["parse_int", "parse_decimal", "parse_date", "normalize_text"]
