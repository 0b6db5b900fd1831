"""Shared validation and slug utilities"""

import re
import time
from typing import Optional

BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def validate_hex_color(color: Optional[str]) -> Optional[str]:
    """
    Validate a #RRGGBB color.

    Returns:
        The color in upper case

    Raises:
        ValueError: If the color is not a 6-digit hex color
    """
    if color is None:
        return color

    if not re.match(r"^#[0-9a-fA-F]{6}$", color):
        raise ValueError("Color must be a hex color like #3B82F6")

    return color.upper()


def validate_time_of_day(value: Optional[str]) -> Optional[str]:
    """Validate a 24h "HH:MM" time"""
    if value is None:
        return value

    if not re.match(r"^([01]\d|2[0-3]):[0-5]\d$", value):
        raise ValueError("Time must use 24h HH:MM format")

    return value


def generate_slug(text: str) -> str:
    """
    Lowercase, hyphen-separated slug.

    Characters other than letters, digits, spaces and hyphens are dropped;
    an empty result falls back to "form".
    """
    slug = text.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    return slug or "form"


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def timestamped_slug(text: str) -> str:
    """Slug with a base36 millisecond timestamp appended, e.g. "house-cleaning-m1x2y3z4" """
    return f"{generate_slug(text)}-{to_base36(int(time.time() * 1000))}"
