"""
Quote Validator - gate before the confirmation summary and before pricing.

quote_acknowledged is persisted, so a conversation can be acknowledged and
still be missing data later (replays, catalog edits). Validate every time.
"""
from dataclasses import dataclass, field
from typing import List

from app.agent.conversation_state import ConversationStep
from app.schemas.order import OrderData

CATEGORY = "category"
PRODUCT = "product"
MATERIAL = "material"
FINISH = "finish"
QUANTITY = "quantity"


@dataclass
class QuoteValidation:
    """
    missing_fields holds field keys ("category", "product", "material",
    "finish", "quantity") and bare dimension names ("G") for missing dimensions.
    """
    is_valid: bool
    missing_fields: List[str] = field(default_factory=list)
    missing_dimensions: List[str] = field(default_factory=list)

    def describe(self) -> List[str]:
        """Human-readable list, e.g. ["missing dimension: G", "missing material"]."""
        messages = []
        for name in self.missing_fields:
            if name in self.missing_dimensions:
                messages.append(f"missing dimension: {name}")
            else:
                messages.append(f"missing {name}")
        return messages

    def owning_step(self) -> ConversationStep:
        """The earliest step that collects a missing field."""
        if CATEGORY in self.missing_fields:
            return ConversationStep.CATEGORY_SELECTION
        if PRODUCT in self.missing_fields:
            return ConversationStep.PRODUCT_SELECTION
        if self.missing_dimensions:
            return ConversationStep.DIMENSION_INPUT
        if MATERIAL in self.missing_fields:
            return ConversationStep.MATERIAL_SELECTION
        if FINISH in self.missing_fields:
            return ConversationStep.FINISH_SELECTION
        if QUANTITY in self.missing_fields:
            return ConversationStep.QUANTITY_INPUT
        return ConversationStep.QUOTE_GENERATION


def validate_quote(order: OrderData) -> QuoteValidation:
    missing: List[str] = []
    missing_dimensions: List[str] = []

    if order.selected_category is None:
        missing.append(CATEGORY)
    if order.selected_product is None:
        missing.append(PRODUCT)
    else:
        missing_dimensions = order.missing_dimensions()
        missing.extend(missing_dimensions)

    if order.selected_material is None:
        missing.append(MATERIAL)
    if not order.selected_finish:
        missing.append(FINISH)
    if not order.quantity:
        missing.append(QUANTITY)

    return QuoteValidation(
        is_valid=not missing,
        missing_fields=missing,
        missing_dimensions=missing_dimensions,
    )
