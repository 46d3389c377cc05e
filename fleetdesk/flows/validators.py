"""Reusable step validators. Each returns the parsed value or raises ValidationException."""
import math
import re
from datetime import date, datetime, timedelta
from typing import List, Optional

from fleetdesk.core.exceptions import ValidationException
from fleetdesk.utils.identity import canonicalize_address, is_valid_national_number

SKIP_WORDS = frozenset({"skip", "none", "n/a", "na", "-"})
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def pipe_parts(text: str, count: int, example: str) -> List[str]:
    parts = [p.strip() for p in (text or "").split("|")]
    if len(parts) != count or not all(parts):
        raise ValidationException(f"Please use the format: {example}")
    return parts


def min_length(value: str, length: int, label: str) -> str:
    value = (value or "").strip()
    if len(value) < length:
        raise ValidationException(f"{label} must be at least {length} characters", field=label.lower())
    return value


def text_value(length: int, label: str):
    def validate(text, ctx=None, state=None) -> str:
        return min_length(text, length, label)
    return validate


def optional_text(label: str, pattern: Optional[str] = None, hint: str = ""):
    def validate(text, ctx=None, state=None) -> Optional[str]:
        value = (text or "").strip()
        if value.lower() in SKIP_WORDS or not value:
            return None
        if pattern and not re.fullmatch(pattern, value):
            raise ValidationException(f"{label} looks invalid. {hint}".strip(), field=label.lower())
        return value
    return validate


def email(text, ctx=None, state=None) -> str:
    value = (text or "").strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValidationException("That doesn't look like an email address (e.g. name@company.com)", field="email")
    return value


def phone(text, ctx=None, state=None) -> str:
    try:
        canonical = canonicalize_address(text)
    except ValidationException:
        raise ValidationException("Please send a valid phone number (e.g. 08012345678)", field="phone")
    if not is_valid_national_number(canonical):
        raise ValidationException("Please send a valid phone number (e.g. 08012345678)", field="phone")
    return canonical


def digits(count: int, label: str):
    def validate(text, ctx=None, state=None) -> str:
        value = re.sub(r"\s", "", text or "")
        if not re.fullmatch(rf"\d{{{count}}}", value):
            raise ValidationException(f"{label} must be exactly {count} digits", field=label.lower())
        return value
    return validate


def positive_number(label: str, allow_zero: bool = False):
    def validate(text, ctx=None, state=None) -> float:
        cleaned = re.sub(r"[,\s₦]", "", text or "").lower()
        multiplier = 1
        if cleaned.endswith("k"):
            cleaned, multiplier = cleaned[:-1], 1_000
        elif cleaned.endswith("m"):
            cleaned, multiplier = cleaned[:-1], 1_000_000
        try:
            value = float(cleaned) * multiplier
        except ValueError:
            raise ValidationException(f"{label} must be a number", field=label.lower())
        if not math.isfinite(value):
            raise ValidationException(f"{label} must be a number", field=label.lower())
        if value < 0 or (value == 0 and not allow_zero):
            raise ValidationException(f"{label} must be greater than zero", field=label.lower())
        return value
    return validate


def yes_no(text, ctx=None, state=None) -> bool:
    answer = (text or "").strip().lower()
    if answer in ("yes", "y", "1", "true"):
        return True
    if answer in ("no", "n", "2", "false"):
        return False
    raise ValidationException("Please reply YES or NO")


def route_date(text, ctx=None, state=None) -> str:
    value = (text or "").strip().lower()
    today = ctx.executor.today() if ctx is not None and ctx.executor is not None else date.today()
    if value == "today":
        return today.isoformat()
    if value == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date().isoformat()
    except ValueError:
        raise ValidationException("Please send the date as YYYY-MM-DD, or 'today' / 'tomorrow'", field="date")
