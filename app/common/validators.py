"""
Shared validators and formatters for contact data
"""
import re
from typing import Optional


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Strip spaces, dashes and parentheses from a phone number.
    Keeps a leading '+'. Returns None for blank input.
    """
    if phone is None:
        return None
    cleaned = re.sub(r'[\s\-\(\)\.]', '', phone)
    return cleaned or None


def validate_phone(phone: str) -> bool:
    """
    Valid phone numbers hold 6 to 15 digits, optionally prefixed by '+'.
    """
    cleaned = normalize_phone(phone)
    if not cleaned:
        return False
    return re.match(r'^\+?[0-9]{6,15}$', cleaned) is not None


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so user input is matched literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
