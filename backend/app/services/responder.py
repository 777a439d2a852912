"""
Responder - the only path from the bot to the customer.

Bound to ONE inbound message. Every send goes through the delivery ledger:

    claim_response (not_sent|failed → sending)
        → transport send
        → mark_response_sent | mark_response_failed

A second reply attempt for the same inbound message is rejected and logged,
never sent.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from app.core.audit import AuditLog
from app.core.exceptions import TransportError
from app.services.delivery_ledger import DeliveryLedger
from app.services.whatsapp import WhatsAppClient

logger = logging.getLogger(__name__)


class Responder:
    def __init__(self, ledger: DeliveryLedger, transport: WhatsAppClient, message_id: str, to: str):
        self.ledger = ledger
        self.transport = transport
        self.message_id = message_id
        self.to = to
        self.replied = False
        self.last_response_type: Optional[str] = None

    async def _deliver(self, response_type: str, send: Callable[[], Awaitable[str]]) -> Optional[str]:
        if not await self.ledger.claim_response(self.message_id):
            logger.warning(
                f"[Responder] Rejected second {response_type} reply for inbound {self.message_id}"
            )
            AuditLog.log_duplicate(self.to, self.message_id, stage="response")
            return None
        try:
            provider_id = await send()
        except (TransportError, ValueError) as e:
            await self.ledger.mark_response_failed(self.message_id, str(e))
            raise
        await self.ledger.mark_response_sent(self.message_id, provider_id, response_type)
        self.replied = True
        self.last_response_type = response_type
        return provider_id

    async def already_replied(self) -> bool:
        return self.replied or await self.ledger.has_response_been_sent(self.message_id)

    async def text(self, body: str) -> Optional[str]:
        return await self._deliver("text", lambda: self.transport.send_text(self.to, body))

    async def buttons(self, body: str, buttons: List[Tuple[str, str]]) -> Optional[str]:
        return await self._deliver("buttons", lambda: self.transport.send_buttons(self.to, body, buttons))

    async def list(self, body: str, button_label: str, sections: List[Dict[str, Any]]) -> Optional[str]:
        return await self._deliver(
            "list", lambda: self.transport.send_list(self.to, body, button_label, sections)
        )

    async def document(self, filename: str, content: bytes, caption: Optional[str] = None) -> Optional[str]:
        return await self._deliver(
            "document",
            lambda: self.transport.send_document(self.to, filename, content=content, caption=caption),
        )
