"""FastAPI dependencies: the wired service graph.

Built once per process on first use. Tests either override
`get_message_handler` through `app.dependency_overrides` or install their
own graph with `set_services(build_services(...))`.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from app.db.session import SessionLocal
from app.services.catalog import CatalogLookup
from app.services.conversation_store import ConversationStore
from app.services.delivery_ledger import DeliveryLedger
from app.services.entity_reconciler import EntityReconciler
from app.services.flow_controller import ConversationFlowController
from app.services.message_handler import MessageHandler
from app.services.pricing import PricingClient
from app.services.quote_service import QuoteService
from app.services.whatsapp import WhatsAppClient
from nlu import NLUAdapter, build_nlu_adapter
from nlu.groq_client import GroqClient, get_groq_client

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: ConversationStore
    ledger: DeliveryLedger
    catalog: CatalogLookup
    transport: WhatsAppClient
    pricing: PricingClient
    controller: ConversationFlowController
    handler: MessageHandler


def build_services(
    session_factory=SessionLocal,
    transport: Optional[WhatsAppClient] = None,
    pricing: Optional[PricingClient] = None,
    nlu: Optional[NLUAdapter] = None,
    groq_client: Optional[GroqClient] = None,
) -> Services:
    """Wire every collaborator; anything passed in replaces the default."""
    store = ConversationStore(session_factory)
    ledger = DeliveryLedger(session_factory)
    catalog = CatalogLookup(session_factory)
    transport = transport or WhatsAppClient()
    pricing = pricing or PricingClient()

    if nlu is None:
        groq_client = groq_client or get_groq_client()
        nlu = build_nlu_adapter(catalog, groq_client=groq_client)

    controller = ConversationFlowController(
        store=store,
        catalog=catalog,
        nlu=nlu,
        reconciler=EntityReconciler(catalog),
        pricing=pricing,
        quotes=QuoteService(session_factory),
    )
    handler = MessageHandler(ledger, controller, transport, transcriber=groq_client)
    return Services(
        store=store,
        ledger=ledger,
        catalog=catalog,
        transport=transport,
        pricing=pricing,
        controller=controller,
        handler=handler,
    )


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
        logger.info("[Deps] Service graph built")
    return _services


def set_services(services: Optional[Services]) -> None:
    global _services
    _services = services


async def close_services() -> None:
    """Close pooled HTTP clients. Called from FastAPI shutdown."""
    global _services
    if _services is None:
        return
    await _services.transport.aclose()
    await _services.pricing.aclose()
    _services = None


def get_message_handler() -> MessageHandler:
    return get_services().handler
