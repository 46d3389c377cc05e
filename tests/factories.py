"""Shared test data builders."""
from datetime import datetime, timedelta

OWNER_PHONE = "+2348012345678"
OTHER_PHONE = "+2348098765432"


class FakeClock:
    """Settable clock shared by every service under test."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


async def seed_organization(store, organization_id: str, phone: str, name: str = "Swift Logistics",
                            wallet_balance: float = 0.0) -> dict:
    """Organization, owner and channel binding, as registration would leave them."""
    user_id = f"user-{organization_id}"
    organization = {
        "name": name,
        "fleetSize": "6-10",
        "ownerUserId": user_id,
        "walletBalance": wallet_balance,
        "subscriptionStatus": "trial",
    }
    await store.set("organizations", organization_id, organization)
    await store.set("users", user_id, {
        "organizationId": organization_id,
        "firstName": "Ada",
        "lastName": "Obi",
        "email": f"owner@{organization_id}.ng",
        "phoneNumber": phone,
    })
    await store.set("whatsapp_users", phone, {
        "canonicalAddress": phone,
        "organizationId": organization_id,
        "userId": user_id,
    })
    return {"organization_id": organization_id, "user_id": user_id, "phone": phone}


def inbound(text: str, message_id: str = "wamid.1", sender: str = "2348012345678") -> dict:
    """Raw channel message payload of type text."""
    return {"from": sender, "id": message_id, "timestamp": "1760778000", "type": "text", "text": {"body": text}}
