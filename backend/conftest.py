"""Shared fixtures: a seeded SQLite database, fake WhatsApp transport, fake pricing."""
import itertools

import pytest

from app.api.deps import build_services
from app.core.exceptions import TransportError
from app.db.init_db import init_db
from app.db.session import make_engine, make_session_factory
from app.schemas.order import PricingResult, PricingTier
from app.services.catalog import CatalogLookup
from app.services.pricing import build_pricing_request
from app.services.responder import Responder
from nlu.rule_based import RuleBasedNLU
from seed_catalog import seed_catalog

PHONE = "15551230001"


class FakeTransport:
    """Records every outbound message instead of calling the Graph API."""

    def __init__(self):
        self.sent = []
        self.read = []
        self.fail_sends = 0
        self.media = (b"OggS-voice", "audio/ogg")
        self._ids = itertools.count(1)

    def _record(self, kind, to, **fields):
        if self.fail_sends:
            self.fail_sends -= 1
            raise TransportError("WhatsApp API returned 500", status_code=500)
        self.sent.append({"kind": kind, "to": to, **fields})
        return f"wamid.out{next(self._ids)}"

    async def send_text(self, to, body):
        return self._record("text", to, body=body)

    async def send_buttons(self, to, body, buttons):
        return self._record("buttons", to, body=body, buttons=list(buttons))

    async def send_list(self, to, body, button_label, sections):
        return self._record("list", to, body=body, rows=[r["id"] for s in sections for r in s["rows"]])

    async def send_document(self, to, filename, content=None, link=None, caption=None, mime_type="application/pdf"):
        return self._record("document", to, filename=filename, content=content, caption=caption)

    async def mark_as_read(self, message_id):
        self.read.append(message_id)

    async def download_media(self, media_id):
        return self.media

    async def aclose(self):
        pass

    def bodies(self):
        return [m.get("body", "") for m in self.sent]


class FakePricing:
    """Prices every quantity at $0.25 unless told to fail."""

    def __init__(self, unit_cost=0.25, error=None):
        self.unit_cost = unit_cost
        self.error = error
        self.requests = []

    async def get_pricing(self, order):
        self.requests.append(build_pricing_request(order))
        if self.error is not None:
            raise self.error
        return PricingResult(tiers=[
            PricingTier(quantity=q, unit_cost=self.unit_cost, total=int(round(q * self.unit_cost)))
            for q in order.quantity
        ])

    async def aclose(self):
        pass


@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite so every thread-pool call gets its own connection."""
    engine = make_engine(f"sqlite:///{tmp_path / 'quotebot-test.db'}")
    init_db(bind=engine)
    factory = make_session_factory(engine)
    with factory() as db:
        seed_catalog(db)
    yield factory
    engine.dispose()


@pytest.fixture
def catalog(session_factory):
    return CatalogLookup(session_factory, timeout=5)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def pricing():
    return FakePricing()


@pytest.fixture
def nlu(catalog):
    return RuleBasedNLU(vocabulary_provider=catalog.vocabulary)


@pytest.fixture
def services(session_factory, transport, pricing, nlu):
    return build_services(session_factory, transport=transport, pricing=pricing, nlu=nlu)


@pytest.fixture
def converse(services, transport):
    """
    Send one customer message through the flow controller.

    Returns the conversation snapshot after the turn; replies land in
    `transport.sent`.
    """
    counter = itertools.count(1)

    async def send(text, phone=PHONE, reply_id=None):
        message_id = f"wamid.in{next(counter)}"
        await services.ledger.begin_processing(message_id, phone, "text")
        responder = Responder(services.ledger, transport, message_id, phone)
        return await services.controller.handle_text(message_id, phone, text, responder, reply_id=reply_id)

    return send
