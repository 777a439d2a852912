"""
Print Catalog Models.

Read-mostly tables mirrored from the ERP (the sync job lives elsewhere).
Every entity carries:
- external_id: the ERP id, which is what the pricing API understands
- is_active: inactive rows are never matched or listed
- sort_order: natural catalog order, ties broken by name
"""
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Boolean, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON

from app.db.base import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Integer, unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    aliases = Column(JSON, nullable=False, default=list)  # e.g. ["mylar", "pouch bags"]
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)

    products = relationship("Product", back_populates="category")
    materials = relationship("Material", back_populates="category")
    finishes = relationship("Finish", back_populates="category")


class Product(Base):
    """
    Printable product.

    dimension_fields is an ORDERED list; the order is the order users are
    asked for values and the order positional input ("4x6x2") is mapped:
        [{"name": "W", "unit": "inches", "is_required": true,
          "min_value": 1, "max_value": 40}, ...]
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Integer, unique=True, nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Numeric(10, 4), nullable=True)
    dimension_fields = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)

    category = relationship("Category", back_populates="products")


class Material(Base):
    __tablename__ = "materials"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Integer, unique=True, nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price_per_unit = Column(Numeric(10, 4), nullable=True)
    unit = Column(String(32), nullable=True)
    thickness = Column(String(64), nullable=True)  # e.g. "3.5 mil"
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)

    category = relationship("Category", back_populates="materials")


class Finish(Base):
    __tablename__ = "finishes"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Integer, unique=True, nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    attribute = Column(String(128), nullable=True)  # e.g. "Lamination", "Embellishment"
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)

    category = relationship("Category", back_populates="finishes")
