"""Human-legible entity identifiers: ``PREFIX-YYYYMMDD-HHMMSS-xxxxxx``."""
import secrets
import string
from datetime import datetime
from typing import Optional

ENTITY_PREFIXES = {
    "route": "RTE",
    "driver": "DRV",
    "vehicle": "VEH",
    "client": "CLT",
    "invoice": "INV",
    "expense": "EXP",
}

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"


def generate_entity_id(entity_type: str, now: Optional[datetime] = None) -> str:
    """Build an identifier for a new entity of ``entity_type``."""
    prefix = ENTITY_PREFIXES[entity_type]
    now = now or datetime.utcnow()
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"{prefix}-{now.strftime('%Y%m%d-%H%M%S')}-{suffix}"


def generate_password(length: int = 12) -> str:
    """Random password without look-alike characters."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
