"""Quote records: created when pricing succeeds, marked when the PDF goes out."""
import logging
import secrets
from datetime import timedelta
from typing import Optional

from app.core.config import settings
from app.db.base import utcnow
from app.db.session import SessionLocal, run_db
from app.models.quote import Quote
from app.schemas.order import OrderData

logger = logging.getLogger(__name__)


def generate_quote_number() -> str:
    """Q-YYYYMMDD-XXXXXX (random hex suffix)."""
    return f"Q-{utcnow().strftime('%Y%m%d')}-{secrets.token_hex(3).upper()}"


class QuoteService:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    async def create(self, order: OrderData, phone: str, conversation_id: Optional[int]) -> Quote:
        return await run_db(self._create, order, phone, conversation_id)

    def _create(self, order: OrderData, phone: str, conversation_id: Optional[int]) -> Quote:
        now = utcnow()
        quote = Quote(
            quote_number=generate_quote_number(),
            phone=phone,
            conversation_id=conversation_id,
            category_name=order.selected_category.name if order.selected_category else None,
            product_name=order.selected_product.name,
            material_name=order.selected_material.name if order.selected_material else None,
            order_snapshot=order.model_dump(mode="json", exclude={"pricing_data"}),
            pricing=order.pricing_data.model_dump(mode="json") if order.pricing_data else {},
            status="priced",
            valid_until=now + timedelta(days=settings.QUOTE_VALIDITY_DAYS),
            created_at=now,
        )
        with self.session_factory() as db:
            db.add(quote)
            db.commit()
            db.refresh(quote)
        logger.info(f"[Quotes] Created {quote.quote_number} for {phone[-4:]} ({quote.product_name})")
        return quote

    async def get(self, quote_number: str) -> Optional[Quote]:
        return await run_db(self._get, quote_number)

    def _get(self, quote_number: str) -> Optional[Quote]:
        with self.session_factory() as db:
            return db.query(Quote).filter(Quote.quote_number == quote_number).first()

    async def mark_pdf_sent(self, quote_number: str) -> None:
        await run_db(self._mark_pdf_sent, quote_number)

    def _mark_pdf_sent(self, quote_number: str) -> None:
        with self.session_factory() as db:
            quote = db.query(Quote).filter(Quote.quote_number == quote_number).first()
            if quote is not None:
                quote.status = "pdf_sent"
                db.commit()
