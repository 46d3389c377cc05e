from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SessionPhase(str, Enum):
    """Macro-state of the interaction held by a session"""
    IDLE = "IDLE"
    COLLECTING = "COLLECTING"
    CONFIRMING = "CONFIRMING"
    EXECUTING = "EXECUTING"


class TurnRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """One message in the conversation history"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    role: TurnRole
    text: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class TenantBinding(BaseModel):
    """Link between a canonical channel address and an organization user"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    canonical_address: str
    tenant_id: str = Field(alias="organizationId")
    user_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ResolvedTenant(BaseModel):
    canonical: str
    tenant_id: str
    user_id: str


class Unregistered(BaseModel):
    canonical: str
    reason: str = "no_binding"


class Session(BaseModel):
    """
    Conversation state for one canonical address.

    Persisted with camelCase keys (``activeFlow``, ``collectedFields``,
    ``turnHistory`` ...), one record per address.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    phone_number: str
    user_id: Optional[str] = None
    tenant_id: Optional[str] = Field(default=None, alias="organizationId")
    active_flow: Optional[str] = None
    phase: SessionPhase = SessionPhase.IDLE
    collected_fields: Dict[str, Any] = Field(default_factory=dict)
    step_cursor: int = 0
    turn_history: List[Turn] = Field(default_factory=list)
    summary: Optional[str] = None
    language: str = "en"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_activity_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: Optional[datetime] = None

    # Set by the store when an expired session was reset on load; never persisted
    was_expired: bool = Field(default=False, exclude=True)

    @property
    def in_flow(self) -> bool:
        return self.active_flow is not None and self.phase != SessionPhase.IDLE

    def clear_flow(self) -> None:
        """Drop wizard state and return to IDLE."""
        self.active_flow = None
        self.phase = SessionPhase.IDLE
        self.collected_fields = {}
        self.step_cursor = 0

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Session":
        return cls.model_validate(record)
