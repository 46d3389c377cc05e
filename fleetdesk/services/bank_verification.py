"""
Bank account verification through the Paystack resolve endpoint.
"""
import re
from typing import Optional

import httpx
import structlog
from pydantic import BaseModel

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.exceptions import ServiceUnavailableError, ValidationException

logger = structlog.get_logger(__name__)

NIGERIAN_BANKS = {
    "Access Bank": "044",
    "Citibank Nigeria": "023",
    "Ecobank Nigeria": "050",
    "Fidelity Bank": "070",
    "First Bank of Nigeria": "011",
    "First City Monument Bank": "214",
    "Guaranty Trust Bank": "058",
    "Heritage Bank": "030",
    "Keystone Bank": "082",
    "Polaris Bank": "076",
    "Providus Bank": "101",
    "Stanbic IBTC Bank": "221",
    "Standard Chartered Bank": "068",
    "Sterling Bank": "232",
    "Union Bank of Nigeria": "032",
    "United Bank For Africa": "033",
    "Unity Bank": "215",
    "Wema Bank": "035",
    "Zenith Bank": "057",
    "Jaiz Bank": "301",
    "Suntrust Bank": "100",
    "Kuda Bank": "50211",
    "Opay": "999992",
    "PalmPay": "999991",
    "Moniepoint": "50515",
}

BANK_ALIASES = {
    "gtb": "Guaranty Trust Bank",
    "gtbank": "Guaranty Trust Bank",
    "uba": "United Bank For Africa",
    "fcmb": "First City Monument Bank",
    "first bank": "First Bank of Nigeria",
    "firstbank": "First Bank of Nigeria",
    "stanbic": "Stanbic IBTC Bank",
    "access": "Access Bank",
    "zenith": "Zenith Bank",
    "kuda": "Kuda Bank",
}


class AccountVerification(BaseModel):
    account_number: str
    account_name: str
    bank_code: str


def find_bank(name: str) -> Optional[tuple]:
    """Match a user-typed bank name to ``(official_name, code)``."""
    lowered = name.strip().lower()
    if not lowered:
        return None
    if lowered in BANK_ALIASES:
        official = BANK_ALIASES[lowered]
        return official, NIGERIAN_BANKS[official]
    for official, code in NIGERIAN_BANKS.items():
        if official.lower() == lowered:
            return official, code
    matches = [(official, code) for official, code in NIGERIAN_BANKS.items() if lowered in official.lower()]
    return matches[0] if len(matches) == 1 else None


class BankVerificationClient:
    """Client for the account-resolution API."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.service_name = "Bank Verification"
        self.base_url = settings.paystack_base_url.rstrip("/")
        self.secret_key = settings.paystack_secret_key
        self.timeout = settings.bank_verification_timeout_seconds

    @staticmethod
    def validate_inputs(account_number: str, bank_code: Optional[str]) -> None:
        """
        Reject obviously bad input before any network call.

        Raises:
            ValidationException: If the account number is not 10 digits or the bank code is missing
        """
        if not account_number or not re.fullmatch(r"\d{10}", account_number):
            raise ValidationException("Account number must be exactly 10 digits", field="account_number",
                                      value=account_number)
        if not bank_code:
            raise ValidationException("Bank code is required", field="bank_code")

    async def verify_account(self, account_number: str, bank_code: str) -> Optional[AccountVerification]:
        """
        Resolve the account holder's name.

        Returns:
            AccountVerification, or None when the provider cannot resolve the account

        Raises:
            ValidationException: If inputs fail local checks
            ServiceUnavailableError: If the provider is unreachable or failing
        """
        self.validate_inputs(account_number, bank_code)

        if not self.secret_key:
            raise ServiceUnavailableError(self.service_name, "Bank verification is not configured")

        url = f"{self.base_url}/bank/resolve"
        params = {"account_number": account_number, "bank_code": bank_code}
        headers = {"Authorization": f"Bearer {self.secret_key}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params, headers=headers)
                response.raise_for_status()
                body = response.json()

        except httpx.TimeoutException as e:
            logger.error("Timeout verifying bank account", service=self.service_name, error=str(e))
            raise ServiceUnavailableError(self.service_name, f"Request timeout after {self.timeout} seconds")

        except httpx.ConnectError as e:
            logger.error("Connection error to bank verification", error=str(e))
            raise ServiceUnavailableError(self.service_name, f"Connection error: {str(e)}")

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code >= 500:
                logger.error("Bank verification server error", status_code=status_code)
                raise ServiceUnavailableError(self.service_name, f"Server error: {status_code}")
            logger.info("Bank account could not be resolved", bank_code=bank_code, status_code=status_code)
            return None

        data = body.get("data") or {}
        if not body.get("status") or not data.get("account_name"):
            return None

        logger.info("Bank account verified", bank_code=bank_code, account_suffix=account_number[-4:])
        return AccountVerification(
            account_number=data.get("account_number", account_number),
            account_name=data["account_name"],
            bank_code=bank_code,
        )
