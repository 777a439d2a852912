"""
WhatsApp webhook.

GET  /webhook  verification handshake (Meta calls it once when the URL is registered)
POST /webhook  inbound events; ALWAYS 200 so Meta never redelivers because
               we were slow or broken. Duplicates that arrive anyway are
               stopped by the delivery ledger.
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from app.api.deps import get_message_handler
from app.core.config import settings
from app.core.exceptions import WebhookError
from app.schemas.webhook import extract_messages
from app.services.message_handler import MessageHandler

logger = logging.getLogger(__name__)
router = APIRouter()

RECEIVED = {"status": "received"}


@router.get("", response_class=PlainTextResponse)
def verify_webhook(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """Echo the challenge when mode=subscribe and the verify token matches."""
    expected = settings.WHATSAPP_VERIFY_TOKEN
    if (
        hub_mode == "subscribe"
        and expected
        and hub_verify_token is not None
        and hmac.compare_digest(hub_verify_token.encode(), expected.encode())
    ):
        logger.info("[Webhook] Verification handshake accepted")
        return PlainTextResponse(hub_challenge or "")
    raise WebhookError.forbidden(f"verify handshake rejected (mode={hub_mode})")


@router.post("")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    handler: MessageHandler = Depends(get_message_handler),
):
    """Acknowledge immediately; each message is processed in its own background task."""
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("[Webhook] Body is not JSON; acknowledging anyway")
        return RECEIVED

    messages = extract_messages(payload)
    for message in messages:
        background_tasks.add_task(handler.handle, message)

    if messages:
        logger.info(f"[Webhook] Scheduled {len(messages)} message(s)")
    return RECEIVED
