"""Reusable field checks shared by the wizard step validators.

Two flavours live here:
- predicates (``is_blank``, ``is_valid_mobile`` ...) used by the pure
  step validators, which collect messages instead of raising;
- ``validate_*`` functions that raise ValueError, for use inside
  Pydantic ``field_validator`` hooks on request schemas.
"""

import re
from typing import Any, Iterable, Mapping


# Regex patterns
MOBILE_REGEX = re.compile(r"^[0-9]{10}$")
PIN_CODE_REGEX = re.compile(r"^[0-9]{6}$")
OTP_REGEX = re.compile(r"^[0-9]{6}$")
COUNTRY_CODE_PREFIX = "+91"


def is_blank(value: Any) -> bool:
    """True for None, empty strings and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def is_truthy_flag(value: Any) -> bool:
    """Checkbox values arrive as bools or as "true"/"on" strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "on", "yes", "1"}
    return False


def _as_text(value: Any) -> str | None:
    # Numeric inputs are accepted as their digit string
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value
    return None


def is_valid_mobile(value: Any) -> bool:
    text = _as_text(value)
    return text is not None and bool(MOBILE_REGEX.fullmatch(text))


def is_valid_pin_code(value: Any) -> bool:
    text = _as_text(value)
    return text is not None and bool(PIN_CODE_REGEX.fullmatch(text))


def normalize_mobile(value: str) -> str:
    """Strip spaces and a leading +91 country code.

    Args:
        value: Mobile number as typed by the applicant

    Returns:
        Bare 10-digit form used for comparisons
    """
    value = value.replace(" ", "").replace("-", "")
    if value.startswith(COUNTRY_CODE_PREFIX):
        value = value[len(COUNTRY_CODE_PREFIX):]
    return value


def group_state(data: Mapping[str, Any], keys: Iterable[str]) -> str:
    """Classify a field group as "absent", "partial" or "complete".

    Related fields (e.g. a second reference's name, mobile and year) are
    stored either all together or not at all.
    """
    keys = list(keys)
    filled = [k for k in keys if not is_blank(data.get(k))]
    if not filled:
        return "absent"
    if len(filled) == len(keys):
        return "complete"
    return "partial"


def validate_mobile(value: str) -> str:
    """Validate a mobile number for request schemas.

    Args:
        value: Mobile number, optionally prefixed with +91

    Returns:
        Normalised 10-digit number

    Raises:
        ValueError: If the number is not 10 digits
    """
    if not value:
        raise ValueError("Mobile number is required")

    value = normalize_mobile(value.strip())

    if not MOBILE_REGEX.fullmatch(value):
        raise ValueError("Valid 10-digit mobile number is required")

    return value


def validate_otp_code(value: str) -> str:
    """Validate a one-time code.

    Raises:
        ValueError: If the code is not exactly six digits
    """
    value = (value or "").strip()
    if not OTP_REGEX.fullmatch(value):
        raise ValueError("Please enter a valid 6-digit OTP")
    return value


def validate_tracking_number(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("Tracking ID is required")
    if len(value) > 64:
        raise ValueError("Tracking ID too long (max 64 characters)")
    return value
