"""Quote records, the PDF document, and the housekeeping sweep."""
import re
from datetime import timedelta

from app.agent.maintenance import run_maintenance
from app.db.base import utcnow
from app.models.conversation_state import ConversationState
from app.models.message_status import MessageStatus
from app.schemas.order import (
    CatalogRef,
    CategoryRef,
    DimensionSpec,
    DimensionValue,
    OrderData,
    PricingResult,
    PricingTier,
    ProductRef,
)
from app.services.pdf_service import generate_quote_pdf
from app.services.quote_service import QuoteService, generate_quote_number


def priced_order():
    order = OrderData(
        selected_category=CategoryRef(id=1, external_id=101, name="Mylar Bags"),
        selected_product=ProductRef(
            id=1, external_id=201, name="Stand Up Pouch", category_id=1,
            required_dimensions=[DimensionSpec(name="W"), DimensionSpec(name="H"), DimensionSpec(name="G")],
        ),
        dimensions=[DimensionValue(name="W", value=4), DimensionValue(name="H", value=6), DimensionValue(name="G", value=2.5)],
        selected_material=CatalogRef(id=1, external_id=301, name="PET"),
        selected_finish=[CatalogRef(id=1, external_id=401, name="Matte"), CatalogRef(id=3, external_id=403, name="Spot UV")],
        quantity=[1000, 5000],
    )
    order.pricing_data = PricingResult(tiers=[
        PricingTier(quantity=1000, unit_cost=0.42, total=420),
        PricingTier(quantity=5000, unit_cost=0.25, total=1250),
    ])
    order.pricing_done = True
    return order


def test_quote_number_format():
    number = generate_quote_number()
    assert re.fullmatch(r"Q-\d{8}-[0-9A-F]{6}", number)
    assert generate_quote_number() != number


async def test_quote_lifecycle(session_factory):
    quotes = QuoteService(session_factory)
    quote = await quotes.create(priced_order(), "15551230001", conversation_id=3)

    assert quote.status == "priced"
    assert quote.product_name == "Stand Up Pouch"
    assert quote.pricing["tiers"][1]["total"] == 1250
    assert "pricing_data" not in quote.order_snapshot
    assert quote.valid_until > quote.created_at

    await quotes.mark_pdf_sent(quote.quote_number)
    assert (await quotes.get(quote.quote_number)).status == "pdf_sent"
    assert await quotes.get("Q-00000000-000000") is None


def test_pdf_document():
    order = priced_order()
    issued = utcnow()
    pdf = generate_quote_pdf(order, order.pricing_data, "Q-20250101-ABC123", "15551230001", issued, issued + timedelta(days=30))
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000


def test_maintenance_sweep(session_factory, services):
    now = utcnow()
    with session_factory() as db:
        db.add_all([
            ConversationState(phone="1001", current_step="material_selection", order_data={},
                              is_active=True, last_message_at=now - timedelta(hours=3)),
            ConversationState(phone="1002", current_step="start", order_data={},
                              is_active=True, last_message_at=now),
            ConversationState(phone="1003", current_step="completed", order_data={},
                              is_active=False, last_message_at=now - timedelta(days=3),
                              completed_at=now - timedelta(days=3)),
            MessageStatus(message_id="wamid.ancient", from_phone="1001", received_at=now - timedelta(days=30)),
            MessageStatus(message_id="wamid.recent", from_phone="1001", received_at=now),
        ])
        db.commit()

    results = run_maintenance(services.store, services.ledger)

    assert results == {"stale_deactivated": 1, "inactive_purged": 1, "ledger_purged": 1}
    with session_factory() as db:
        active = {c.phone for c in db.query(ConversationState).filter(ConversationState.is_active.is_(True))}
        assert active == {"1002"}
        assert {m.message_id for m in db.query(MessageStatus)} == {"wamid.recent"}


def test_maintenance_isolates_failures(services, monkeypatch):
    def broken(retention):
        raise RuntimeError("disk full")

    monkeypatch.setattr(services.store, "deactivate_stale", broken)
    results = run_maintenance(services.store, services.ledger)
    assert results["stale_deactivated"] == 0
    assert "ledger_purged" in results
