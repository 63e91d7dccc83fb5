"""
Phone number normalisation for the identity fact and participant lookup.
"""

import re

_STRIP_RE = re.compile(r"[^\d+]")
_SG_RE = re.compile(r"^\+65[689]\d{7}$")
_MY_RE = re.compile(r"^\+60[1-9]\d{8,9}$")


def normalize_phone(phone_number: str) -> str:
    """Drop everything except digits and '+': '+65 9123-4567' -> '+6591234567'."""
    return _STRIP_RE.sub("", phone_number or "")


def is_valid_phone(phone_number: str) -> bool:
    """Singapore or Malaysia mobile/landline in E.164 form."""
    return bool(_SG_RE.match(phone_number) or _MY_RE.match(phone_number))


def is_phone_field(field_id: str, label: str = "", field_type: str = "") -> bool:
    return field_type == "phone" or "phone" in field_id.lower() or "phone" in label.lower()
