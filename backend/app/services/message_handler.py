"""
Inbound message pipeline.

    webhook → MessageHandler.handle(message)
        1. Ledger claim (duplicates stop here)
        2. Per-phone lock (one turn at a time per customer)
        3. Input: text body / button or list reply / voice note transcript
        4. Flow controller (one retry on a lost version race)
        5. Ledger: processed, or failed + at most one apology
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional, Tuple

from app.core.audit import AuditLog
from app.core.exceptions import NLUError, StaleConversationError, TransportError
from app.schemas.webhook import InboundMessage
from app.services.conversation_store import ConversationSnapshot
from app.services.delivery_ledger import DeliveryLedger
from app.services.flow_controller import APOLOGY, ConversationFlowController
from app.services.responder import Responder
from app.services.whatsapp import WhatsAppClient
from nlu.groq_client import GroqClient

logger = logging.getLogger(__name__)

UNSUPPORTED_REPLY = (
    "Sorry, I can only read text and voice messages. 🙂\n"
    "Please type your request, e.g. *5000 stand up pouches 4x6x2*."
)
VOICE_FAILED_REPLY = "Sorry, I couldn't understand that voice note. Could you type it instead?"

# WhatsApp mime types → filenames Whisper accepts
AUDIO_EXTENSIONS = {
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/aac": "m4a",
    "audio/amr": "amr",
}


class KeyedLocks:
    """One asyncio.Lock per key; a lock is dropped once nobody holds or awaits it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


class MessageHandler:
    def __init__(
        self,
        ledger: DeliveryLedger,
        controller: ConversationFlowController,
        transport: WhatsAppClient,
        transcriber: Optional[GroqClient] = None,
    ):
        self.ledger = ledger
        self.controller = controller
        self.transport = transport
        self.transcriber = transcriber
        self.locks = KeyedLocks()

    async def handle(self, message: InboundMessage) -> None:
        """Process one inbound message at most once, replying at most once."""
        phone = message.phone
        if not await self.ledger.begin_processing(message.id, phone, message.type):
            AuditLog.log_duplicate(phone, message.id, stage="processing")
            return

        logger.info(f"[Handler] {message.type} message {message.id} from {phone[-4:]}")
        responder = Responder(self.ledger, self.transport, message.id, phone)
        conversation_id: Optional[int] = None
        try:
            async with self.locks.hold(phone):
                await self.transport.mark_as_read(message.id)
                state = await self._process(message, responder)
                conversation_id = state.id if state is not None else None
            await self.ledger.mark_processed(message.id, conversation_id)
        except Exception as e:
            logger.error(f"[Handler] Failed to process {message.id}: {e}", exc_info=True)
            await self.ledger.mark_failed(message.id, str(e))
            if await responder.already_replied():
                return
            try:
                await responder.text(APOLOGY)
            except Exception as send_error:
                logger.error(f"[Handler] Apology not delivered for {message.id}: {send_error}")

    async def _process(self, message: InboundMessage, responder: Responder) -> Optional[ConversationSnapshot]:
        if message.type in ("audio", "voice"):
            text = await self._transcribe(message)
            if not text:
                await responder.text(VOICE_FAILED_REPLY)
                return None
            return await self._dispatch(message, text, None, responder)

        text, reply_id = self._read_input(message)
        if text is None:
            logger.info(f"[Handler] Unsupported message type '{message.type}' from {message.phone[-4:]}")
            await responder.text(UNSUPPORTED_REPLY)
            return None
        return await self._dispatch(message, text, reply_id, responder)

    @staticmethod
    def _read_input(message: InboundMessage) -> Tuple[Optional[str], Optional[str]]:
        """(text, reply_id) for text and interactive messages; (None, None) otherwise."""
        if message.type == "text" and message.text is not None:
            return message.text.body, None
        if message.type == "interactive" and message.interactive is not None:
            selected = message.interactive.selected()
            if selected is not None:
                return selected.title, selected.id
        return None, None

    async def _transcribe(self, message: InboundMessage) -> Optional[str]:
        media = message.media()
        if media is None or self.transcriber is None or not self.transcriber.is_available():
            return None
        try:
            audio, mime_type = await self.transport.download_media(media.id)
            extension = AUDIO_EXTENSIONS.get((mime_type or media.mime_type or "").split(";")[0], "ogg")
            text = await self.transcriber.transcribe(audio, filename=f"voice.{extension}")
        except (TransportError, NLUError) as e:
            logger.warning(f"[Handler] Voice note {message.id} not transcribed: {e}")
            return None
        logger.info(f"[Handler] Voice note {message.id} transcribed ({len(text)} chars)")
        return text.strip() or None

    async def _dispatch(
        self,
        message: InboundMessage,
        text: str,
        reply_id: Optional[str],
        responder: Responder,
    ) -> ConversationSnapshot:
        try:
            return await self.controller.handle_text(message.id, message.phone, text, responder, reply_id=reply_id)
        except StaleConversationError as e:
            if responder.replied:
                raise
            logger.warning(f"[Handler] {e}; retrying {message.id} with fresh state")
            return await self.controller.handle_text(message.id, message.phone, text, responder, reply_id=reply_id)
