"""Inbound webhook payloads from the messaging channel."""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChannelModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class TextPayload(ChannelModel):
    body: str = ""


class MediaPayload(ChannelModel):
    id: str
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    filename: Optional[str] = None


class LocationPayload(ChannelModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    name: Optional[str] = None
    address: Optional[str] = None


class ButtonPayload(ChannelModel):
    text: Optional[str] = None
    payload: Optional[str] = None


class ReplyOption(ChannelModel):
    id: str
    title: Optional[str] = None


class InteractivePayload(ChannelModel):
    type: Optional[str] = None
    button_reply: Optional[ReplyOption] = None
    list_reply: Optional[ReplyOption] = None


class InboundMessage(ChannelModel):
    """One message object from ``entry[].changes[].value.messages[]``."""
    sender: str = Field(alias="from")
    id: str
    timestamp: Optional[str] = None
    type: str
    text: Optional[TextPayload] = None
    audio: Optional[MediaPayload] = None
    voice: Optional[MediaPayload] = None
    image: Optional[MediaPayload] = None
    document: Optional[MediaPayload] = None
    location: Optional[LocationPayload] = None
    button: Optional[ButtonPayload] = None
    interactive: Optional[InteractivePayload] = None


class ContactProfile(ChannelModel):
    name: Optional[str] = None


class Contact(ChannelModel):
    wa_id: Optional[str] = None
    profile: Optional[ContactProfile] = None


class ChangeValue(ChannelModel):
    messaging_product: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    contacts: List[Contact] = Field(default_factory=list)
    messages: List[InboundMessage] = Field(default_factory=list)
    statuses: List[Dict[str, Any]] = Field(default_factory=list)


class Change(ChannelModel):
    field: Optional[str] = None
    value: ChangeValue


class Entry(ChannelModel):
    id: Optional[str] = None
    changes: List[Change] = Field(default_factory=list)


class WebhookEvent(ChannelModel):
    object: str
    entry: List[Entry] = Field(default_factory=list)

    def iter_messages(self):
        """Yield ``(message, contact_name)`` pairs in delivery order."""
        for entry in self.entry:
            for change in entry.changes:
                names = {
                    c.wa_id: c.profile.name
                    for c in change.value.contacts
                    if c.wa_id and c.profile
                }
                for message in change.value.messages:
                    yield message, names.get(message.sender)
