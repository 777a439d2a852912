"""
WhatsApp Cloud API webhook payloads.

Envelope shape:
    {"object": "whatsapp_business_account",
     "entry": [{"changes": [{"value": {"messages": [...], "statuses": [...]}}]}]}

Only `messages` matter here; delivery `statuses` are ignored.
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class TextBody(BaseModel):
    body: str = ""


class ReplyRef(BaseModel):
    id: str = ""
    title: str = ""
    description: Optional[str] = None


class InteractiveBody(BaseModel):
    type: str = ""
    button_reply: Optional[ReplyRef] = None
    list_reply: Optional[ReplyRef] = None

    def selected(self) -> Optional[ReplyRef]:
        return self.button_reply or self.list_reply


class MediaRef(BaseModel):
    id: str
    mime_type: Optional[str] = None


class InboundMessage(BaseModel):
    """One inbound message. `from` is a Python keyword, hence the alias."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    from_: str = Field(alias="from")
    type: str = "text"
    timestamp: Optional[str] = None
    text: Optional[TextBody] = None
    interactive: Optional[InteractiveBody] = None
    audio: Optional[MediaRef] = None
    voice: Optional[MediaRef] = None

    @property
    def phone(self) -> str:
        return self.from_

    def media(self) -> Optional[MediaRef]:
        return self.audio or self.voice


def extract_messages(payload: Any) -> List[InboundMessage]:
    """
    Pull every message out of a webhook envelope.

    Malformed entries are logged and skipped; this never raises so the
    webhook can always acknowledge with 200.
    """
    messages: List[InboundMessage] = []
    if not isinstance(payload, dict):
        logger.warning(f"[Webhook] Ignoring non-object payload: {type(payload).__name__}")
        return messages

    for entry in _list_of_dicts(payload.get("entry")):
        for change in _list_of_dicts(entry.get("changes")):
            value = change.get("value")
            if not isinstance(value, dict):
                continue
            for raw in _list_of(value.get("messages")):
                try:
                    messages.append(InboundMessage.model_validate(raw))
                except ValidationError as e:
                    logger.warning(f"[Webhook] Skipping malformed message: {e.error_count()} errors")
    return messages


def _list_of(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _list_of_dicts(value: Any) -> List[Dict[str, Any]]:
    return [item for item in _list_of(value) if isinstance(item, dict)]
