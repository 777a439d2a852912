from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.types import JSON

from app.db.base import Base, utcnow


class Quote(Base):
    """
    Priced quote issued to a customer.

    order_snapshot and pricing are frozen copies taken at pricing time so the
    PDF matches what the customer saw even if the catalog changes later.
    """
    __tablename__ = "quotes"

    id = Column(Integer, primary_key=True, index=True)
    quote_number = Column(String(32), unique=True, nullable=False, index=True)
    phone = Column(String(32), nullable=False, index=True)
    conversation_id = Column(Integer, nullable=True)
    category_name = Column(String(255), nullable=True)
    product_name = Column(String(255), nullable=False)
    material_name = Column(String(255), nullable=True)
    order_snapshot = Column(JSON, nullable=False, default=dict)
    pricing = Column(JSON, nullable=False, default=dict)
    status = Column(String(16), nullable=False, default="priced")  # priced | pdf_sent
    valid_until = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
