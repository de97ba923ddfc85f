"""Phone number normalization for chat addresses (Brazilian numbering)."""

import re

from chatgate.core.errors import BadRequestError

COUNTRY_CODE = "55"
USER_SUFFIX = "@c.us"
GROUP_SUFFIX = "@g.us"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str) -> str:
    """Digits-only number with country code and mobile ninth digit.

    "(11) 9998-87766" -> "5511999887766"; "551188887777" -> "5511988887777".
    """
    cleaned = _NON_DIGITS.sub("", raw)
    if not cleaned.startswith(COUNTRY_CODE):
        cleaned = COUNTRY_CODE + cleaned

    if len(cleaned) not in (12, 13):
        raise BadRequestError(f"Invalid phone number length: {raw!r}")

    if len(cleaned) == 12:
        area_code, number = cleaned[2:4], cleaned[4:]
        # Mobile numbers start with 7, 8 or 9 and need the extra ninth digit
        if number[0] in "789":
            cleaned = f"{COUNTRY_CODE}{area_code}9{number}"
    return cleaned


def to_wire_address(raw: str) -> str:
    return normalize_phone(raw) + USER_SUFFIX


def from_wire_address(address: str) -> str:
    return address.removesuffix(USER_SUFFIX).removesuffix(GROUP_SUFFIX)


def is_valid_phone(raw: str) -> bool:
    try:
        normalize_phone(raw)
    except BadRequestError:
        return False
    return True
