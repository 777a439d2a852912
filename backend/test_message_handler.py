"""Inbound pipeline: dedupe, per-phone serialization, input types, failure handling."""
import asyncio

from app.core.exceptions import StaleConversationError
from app.models.message_status import ProcessingStatus, ResponseStatus
from app.schemas.webhook import InboundMessage
from app.services.flow_controller import APOLOGY
from app.services.message_handler import (
    UNSUPPORTED_REPLY,
    VOICE_FAILED_REPLY,
    KeyedLocks,
    MessageHandler,
)

PHONE = "15551230001"


def text_message(message_id, body, phone=PHONE):
    return InboundMessage.model_validate(
        {"id": message_id, "from": phone, "type": "text", "text": {"body": body}}
    )


def button_message(message_id, reply_id, title, phone=PHONE):
    return InboundMessage.model_validate({
        "id": message_id, "from": phone, "type": "interactive",
        "interactive": {"type": "button_reply", "button_reply": {"id": reply_id, "title": title}},
    })


def voice_message(message_id, phone=PHONE):
    return InboundMessage.model_validate({
        "id": message_id, "from": phone, "type": "audio",
        "audio": {"id": "media-1", "mime_type": "audio/ogg; codecs=opus"},
    })


class FakeTranscriber:
    def __init__(self, text="", available=True):
        self.text = text
        self.available = available
        self.calls = []

    def is_available(self):
        return self.available

    async def transcribe(self, audio, filename="voice.ogg"):
        self.calls.append((audio, filename))
        return self.text


async def test_concurrent_duplicates_reply_once(services, transport):
    message = text_message("wamid.dup", "hi")
    await asyncio.gather(*[services.handler.handle(message) for _ in range(5)])

    assert len(transport.sent) == 1
    assert transport.read == ["wamid.dup"]
    entry = await services.ledger.get("wamid.dup")
    assert entry.processing_status == ProcessingStatus.PROCESSED
    assert entry.response_status == ResponseStatus.SENT
    assert entry.conversation_id is not None


async def test_redelivery_after_processing_is_ignored(services, transport):
    await services.handler.handle(text_message("wamid.once", "hi"))
    await services.handler.handle(text_message("wamid.once", "hi"))
    assert len(transport.sent) == 1


async def test_messages_from_one_phone_are_serialized(services, transport):
    await asyncio.gather(
        services.handler.handle(text_message("wamid.a", "hi")),
        services.handler.handle(text_message("wamid.b", "stand up pouch")),
    )
    assert len(transport.sent) == 2
    assert len(services.handler.locks) == 0

    state = await services.store.get_active(PHONE)
    assert state.order.selected_product.name == "Stand Up Pouch"


async def test_button_reply_uses_reply_id(services, transport):
    await services.handler.handle(text_message("wamid.1", "hi"))
    await services.handler.handle(button_message("wamid.2", "yes", "Yes, get a quote"))

    assert transport.sent[-1]["kind"] == "list"
    assert transport.sent[-1]["rows"] == ["category:101", "category:102"]


async def test_unsupported_message_gets_polite_reply(services, transport):
    image = InboundMessage.model_validate(
        {"id": "wamid.img", "from": PHONE, "type": "image", "image": {"id": "media-9"}}
    )
    await services.handler.handle(image)

    assert transport.bodies() == [UNSUPPORTED_REPLY]
    entry = await services.ledger.get("wamid.img")
    assert entry.processing_status == ProcessingStatus.PROCESSED
    assert await services.store.get_active(PHONE) is None


async def test_voice_note_is_transcribed(services, transport):
    transcriber = FakeTranscriber("Need 5000 stand up pouches 4x6x2 in PET with matte finish")
    handler = MessageHandler(services.ledger, services.controller, transport, transcriber=transcriber)

    await handler.handle(voice_message("wamid.voice"))

    assert transcriber.calls == [(b"OggS-voice", "voice.ogg")]
    assert len(transport.sent) == 1
    assert "Stand Up Pouch" in transport.sent[0]["body"]


async def test_voice_note_without_transcriber(services, transport):
    await services.handler.handle(voice_message("wamid.voice2"))
    assert transport.bodies() == [VOICE_FAILED_REPLY]


async def test_empty_transcript_asks_to_type(services, transport):
    handler = MessageHandler(services.ledger, services.controller, transport, transcriber=FakeTranscriber("  "))
    await handler.handle(voice_message("wamid.voice3"))
    assert transport.bodies() == [VOICE_FAILED_REPLY]


async def test_failed_send_is_followed_by_one_apology(services, transport):
    transport.fail_sends = 1
    await services.handler.handle(text_message("wamid.flaky", "hi"))

    assert transport.bodies() == [APOLOGY]
    entry = await services.ledger.get("wamid.flaky")
    assert entry.response_status == ResponseStatus.SENT


async def test_processing_error_marks_failed_and_apologizes(services, transport):
    async def broken(*args, **kwargs):
        raise RuntimeError("controller exploded")

    services.controller.handle_text = broken
    await services.handler.handle(text_message("wamid.err", "hi"))

    assert transport.bodies() == [APOLOGY]
    entry = await services.ledger.get("wamid.err")
    assert entry.processing_status == ProcessingStatus.FAILED
    assert entry.retry_count == 1
    assert "controller exploded" in entry.processing_error


async def test_lost_version_race_is_retried_once(services, transport):
    original = services.controller.handle_text
    calls = []

    async def racy(message_id, phone, text, responder, reply_id=None):
        calls.append(message_id)
        if len(calls) == 1:
            raise StaleConversationError(phone, 1)
        return await original(message_id, phone, text, responder, reply_id=reply_id)

    services.controller.handle_text = racy
    await services.handler.handle(text_message("wamid.race", "hi"))

    assert calls == ["wamid.race", "wamid.race"]
    assert len(transport.sent) == 1
    entry = await services.ledger.get("wamid.race")
    assert entry.processing_status == ProcessingStatus.PROCESSED


async def test_keyed_locks_are_released():
    locks = KeyedLocks()
    order = []

    async def worker(name):
        async with locks.hold("phone"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert len(locks) == 0
