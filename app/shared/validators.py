"""Shared validation utilities"""

import re
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    """Canonical form used for uniqueness checks"""
    return email.strip().lower()


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase, trimmed email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = normalize_email(email)

    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email address")

    return email


def missing_fields(values: dict) -> list[str]:
    """Names of entries that are absent or blank"""
    return [name for name, value in values.items() if value is None or not str(value).strip()]
