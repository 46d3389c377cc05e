"""
Channel address canonicalization.

Every tenant binding is keyed on the canonical address, so this must stay a
pure function of its input.
"""
import re

from fleetdesk.core.exceptions import ValidationException

DEFAULT_COUNTRY_CODE = "234"
NATIONAL_SUBSCRIBER_DIGITS = 10


def canonicalize_address(raw_address: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Normalize a phone number to ``+<country><subscriber>`` form.

    Handles ``080...``, ``234...``, ``+234...`` and bare subscriber numbers.

    Raises:
        ValidationException: If the address has no digits
    """
    if raw_address is None:
        raise ValidationException("Address is required", field="phone_number")

    stripped = raw_address.strip()
    has_plus = stripped.startswith("+")
    digits = re.sub(r"\D", "", stripped)
    if not digits:
        raise ValidationException("Address has no digits", field="phone_number", value=raw_address)

    if has_plus:
        return f"+{digits}"
    if digits.startswith("0"):
        return f"+{country_code}{digits[1:]}"
    if digits.startswith(country_code):
        return f"+{digits}"
    return f"+{country_code}{digits}"


def is_valid_national_number(canonical: str, country_code: str = DEFAULT_COUNTRY_CODE) -> bool:
    """True when a canonical address carries a full national subscriber number."""
    prefix = f"+{country_code}"
    return (
        canonical.startswith(prefix)
        and len(canonical) == len(prefix) + NATIONAL_SUBSCRIBER_DIGITS
        and canonical[1:].isdigit()
    )
