"""
Identifier canonicalization for SAM.

Turns raw email addresses and phone numbers into comparable keys.
Two identifiers match iff their keys are equal.
"""
import re
from typing import Optional

from config.evidence_config import PhoneKeyConfig


def canonicalize_email(raw: Optional[str]) -> Optional[str]:
    """
    Canonicalize an email address by trimming and lowercasing.

    No plus-addressing or domain normalization is applied.

    Examples:
        >>> canonicalize_email(" Foo@Example.com ")
        'foo@example.com'
        >>> canonicalize_email("   ") is None
        True
    """
    if not raw:
        return None
    email = raw.strip()
    if not email:
        return None
    return email.lower()


def canonicalize_phone(raw: Optional[str]) -> Optional[str]:
    """
    Canonicalize a phone number to its trailing 10 digits.

    Deliberately lossy: numbers that differ only by country code collide,
    and anything with fewer than 7 digits never matches.

    Examples:
        >>> canonicalize_phone("+1 (415) 555-0100")
        '4155550100'
        >>> canonicalize_phone("14155550100")
        '4155550100'
    """
    if not raw:
        return None

    digits = re.sub(r'\D', '', raw)
    if len(digits) < PhoneKeyConfig.MIN_DIGITS:
        return None
    return digits[-PhoneKeyConfig.KEY_DIGITS:]


def is_email_handle(handle: Optional[str]) -> bool:
    """Messages and FaceTime handles are either an email or a phone number."""
    return bool(handle) and "@" in handle


def canonicalize_handle(handle: Optional[str]) -> Optional[str]:
    """Canonicalize a message/call handle according to its shape."""
    if is_email_handle(handle):
        return canonicalize_email(handle)
    return canonicalize_phone(handle)
