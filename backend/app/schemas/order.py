"""
Order data accumulated over a conversation.

Stored as JSON in ConversationState.order_data. All merge helpers are
append-only: they never remove or overwrite a value except where noted
(selected_material is single-valued, last mention wins).
"""
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CategoryRef(BaseModel):
    id: int
    external_id: int
    name: str


class DimensionSpec(BaseModel):
    """One declared dimension of a product (order matters)."""
    name: str
    unit: str = "inches"
    is_required: bool = True
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    def accepts(self, value: float) -> bool:
        if self.min_value is not None and value < self.min_value:
            return False
        if self.max_value is not None and value > self.max_value:
            return False
        return True


class ProductRef(BaseModel):
    id: int
    external_id: int
    name: str
    category_id: Optional[int] = None
    required_dimensions: List[DimensionSpec] = Field(default_factory=list)

    def required_dimension_names(self) -> List[str]:
        return [d.name for d in self.required_dimensions if d.is_required]


class CatalogRef(BaseModel):
    """Material or finish reference; external_id is what the pricing API needs."""
    id: int
    external_id: int
    name: str


class DimensionValue(BaseModel):
    name: str
    value: float


class PricingTier(BaseModel):
    quantity: int
    unit_cost: float
    total: int


class PricingResult(BaseModel):
    tiers: List[PricingTier]


class OrderData(BaseModel):
    wants_quote: bool = False

    selected_category: Optional[CategoryRef] = None
    requested_category: Optional[str] = None

    selected_product: Optional[ProductRef] = None
    requested_product_name: Optional[str] = None

    dimensions: List[DimensionValue] = Field(default_factory=list)
    selected_material: Optional[CatalogRef] = None
    selected_finish: List[CatalogRef] = Field(default_factory=list)
    quantity: List[int] = Field(default_factory=list)

    quote_acknowledged: bool = False
    pricing_done: bool = False
    pricing_data: Optional[PricingResult] = None
    quote_number: Optional[str] = None
    completed: bool = False

    @field_validator("quantity")
    @classmethod
    def dedupe_quantities(cls, v: List[int]) -> List[int]:
        """Keep first-mention order, drop repeats and non-positive values."""
        seen = []
        for q in v:
            if q > 0 and q not in seen:
                seen.append(q)
        return seen

    # ------------------------------------------------------------------
    # Append-only merge helpers
    # ------------------------------------------------------------------

    def has_dimension(self, name: str) -> bool:
        return any(d.name == name for d in self.dimensions)

    def add_dimension(self, name: str, value: float) -> bool:
        """Append a dimension unless the name is already present or undeclared."""
        if self.selected_product is None or self.has_dimension(name):
            return False
        declared = {d.name for d in self.selected_product.required_dimensions}
        if name not in declared:
            return False
        self.dimensions.append(DimensionValue(name=name, value=value))
        return True

    def add_finish(self, finish: CatalogRef) -> bool:
        if any(f.external_id == finish.external_id for f in self.selected_finish):
            return False
        self.selected_finish.append(finish)
        return True

    def add_quantity(self, quantity: int) -> bool:
        if quantity <= 0 or quantity in self.quantity:
            return False
        self.quantity.append(quantity)
        return True

    def missing_dimensions(self) -> List[str]:
        """Required dimension names not yet supplied, in declared order."""
        if self.selected_product is None:
            return []
        return [
            name for name in self.selected_product.required_dimension_names()
            if not self.has_dimension(name)
        ]

    def dimension_values(self) -> List[float]:
        """Values in the product's declared order (pricing API contract)."""
        if self.selected_product is None:
            return []
        by_name = {d.name: d.value for d in self.dimensions}
        return [
            by_name[spec.name]
            for spec in self.selected_product.required_dimensions
            if spec.name in by_name
        ]

    def has_order_details(self) -> bool:
        """True once any catalog-backed detail has been captured."""
        return any((
            self.selected_category, self.requested_category,
            self.selected_product, self.requested_product_name,
            self.dimensions, self.selected_material,
            self.selected_finish, self.quantity,
        ))

    def clear_product(self) -> None:
        """Forget the product and everything scoped to it; quantities stay."""
        self.selected_product = None
        self.requested_product_name = None
        self.dimensions = []
        self.selected_material = None
        self.selected_finish = []

    def describe_dimensions(self) -> str:
        """Labelled values in declared order, e.g. "W 4 x H 6 x G 2 inches"."""
        if not self.dimensions:
            return "-"
        by_name = {d.name: d.value for d in self.dimensions}
        specs = self.selected_product.required_dimensions if self.selected_product else []
        names = [s.name for s in specs if s.name in by_name]
        names += [d.name for d in self.dimensions if d.name not in names]
        unit = f" {specs[0].unit}" if specs else ""
        return " x ".join(f"{name} {_format_number(by_name[name])}" for name in names) + unit


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"
