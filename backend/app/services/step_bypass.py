"""
STEP-BYPASS ENGINE

Purpose: never ask for something the customer already told us.

"5000 stand-up pouches, 4x6x2, PET, matte" fills every collection step in
one message, so the flow jumps straight to quote_generation.

There is exactly ONE predicate per step. For dimension_input it is the
complete check (every required dimension present), not "some dimensions
present": a product needing W,H,G with only "4x5" supplied is NOT satisfied.
"""
from app.agent.conversation_state import ConversationStep, FLOW_STEPS, next_in_flow
from app.schemas.order import OrderData


def dimensions_complete(order: OrderData) -> bool:
    """Product selected and every required dimension captured."""
    if order.selected_product is None:
        return False
    return not order.missing_dimensions()


def is_step_satisfied(step: ConversationStep, order: OrderData) -> bool:
    if step == ConversationStep.CATEGORY_SELECTION:
        return bool(order.selected_category or order.requested_category)
    if step == ConversationStep.PRODUCT_SELECTION:
        return bool(order.selected_product or order.requested_product_name)
    if step == ConversationStep.DIMENSION_INPUT:
        return dimensions_complete(order)
    if step == ConversationStep.MATERIAL_SELECTION:
        return order.selected_material is not None
    if step == ConversationStep.FINISH_SELECTION:
        return bool(order.selected_finish)
    if step == ConversationStep.QUANTITY_INPUT:
        return bool(order.quantity)
    return False


def all_quote_data_present(order: OrderData) -> bool:
    return (
        order.selected_category is not None
        and order.selected_product is not None
        and dimensions_complete(order)
        and order.selected_material is not None
        and bool(order.selected_finish)
        and bool(order.quantity)
    )


def next_step_after_bypass(step: ConversationStep, order: OrderData) -> ConversationStep:
    """
    Advance past every satisfied collection step.

    - Everything needed for a quote present → quote_generation, from any step
    - Otherwise walk forward from `step` while each step is satisfied
    - Steps outside the collection flow are returned unchanged

    Idempotent: feeding the result back in returns the same step.
    """
    if step in (ConversationStep.QUOTE_GENERATION, ConversationStep.COMPLETED):
        return step
    if all_quote_data_present(order):
        return ConversationStep.QUOTE_GENERATION
    if step not in FLOW_STEPS:
        return step

    current = step
    while current in FLOW_STEPS and is_step_satisfied(current, order):
        current = next_in_flow(current)
    return current
