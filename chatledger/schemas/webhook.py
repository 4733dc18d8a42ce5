from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Modality = Literal["text", "audio", "unsupported"]


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TextBody(_Envelope):
    body: str = ""


class MediaRef(_Envelope):
    id: str
    mime_type: Optional[str] = None


class WebhookMessage(_Envelope):
    id: str
    from_: str = Field(..., alias="from")
    type: str
    timestamp: Optional[str] = None
    text: Optional[TextBody] = None
    audio: Optional[MediaRef] = None
    voice: Optional[MediaRef] = None


class ChangeValue(_Envelope):
    messaging_product: Optional[str] = None
    messages: list[WebhookMessage] = Field(default_factory=list)
    statuses: list[dict] = Field(default_factory=list)


class Change(_Envelope):
    field: Optional[str] = None
    value: ChangeValue


class Entry(_Envelope):
    id: Optional[str] = None
    changes: list[Change] = Field(default_factory=list)


class WebhookPayload(_Envelope):
    object: Optional[str] = None
    entry: list[Entry] = Field(default_factory=list)

    def iter_messages(self) -> list["InboundMessage"]:
        messages: list[InboundMessage] = []
        for entry in self.entry:
            for change in entry.changes:
                for message in change.value.messages:
                    messages.append(InboundMessage.from_webhook(message))
        return messages


class InboundMessage(BaseModel):
    """One normalised chat message, whatever the transport shape was."""

    message_id: str
    sender: str = Field(..., examples=["5511987654321"])
    modality: Modality
    text: Optional[str] = None
    media_id: Optional[str] = None

    @classmethod
    def from_webhook(cls, message: WebhookMessage) -> "InboundMessage":
        if message.type == "text" and message.text is not None:
            return cls(
                message_id=message.id,
                sender=message.from_,
                modality="text",
                text=message.text.body,
            )
        media = message.audio or message.voice
        if message.type in {"audio", "voice"} and media is not None:
            return cls(
                message_id=message.id,
                sender=message.from_,
                modality="audio",
                media_id=media.id,
            )
        return cls(message_id=message.id, sender=message.from_, modality="unsupported")


class WebhookAck(BaseModel):
    status: str = "received"
