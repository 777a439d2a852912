"""Step-bypass engine: one predicate per step, forward-only, idempotent."""
from app.agent.conversation_state import ConversationStep
from app.schemas.order import CatalogRef, CategoryRef, DimensionSpec, DimensionValue, OrderData, ProductRef
from app.services.step_bypass import (
    all_quote_data_present,
    dimensions_complete,
    is_step_satisfied,
    next_step_after_bypass,
)

POUCH = ProductRef(
    id=1, external_id=201, name="Stand Up Pouch", category_id=1,
    required_dimensions=[DimensionSpec(name="W"), DimensionSpec(name="H"), DimensionSpec(name="G")],
)
MYLAR = CategoryRef(id=1, external_id=101, name="Mylar Bags")


def order_with(**fields):
    return OrderData(**fields)


def dims(*pairs):
    return [DimensionValue(name=n, value=v) for n, v in pairs]


def test_partial_dimensions_do_not_satisfy_dimension_step():
    order = order_with(selected_category=MYLAR, selected_product=POUCH, dimensions=dims(("W", 4), ("H", 5)))
    assert not dimensions_complete(order)
    assert not is_step_satisfied(ConversationStep.DIMENSION_INPUT, order)
    assert next_step_after_bypass(ConversationStep.CATEGORY_SELECTION, order) == ConversationStep.DIMENSION_INPUT


def test_optional_dimensions_are_not_required():
    product = POUCH.model_copy(update={
        "required_dimensions": [DimensionSpec(name="W"), DimensionSpec(name="H", is_required=False)],
    })
    order = order_with(selected_product=product, dimensions=dims(("W", 4)))
    assert dimensions_complete(order)


def test_requested_names_satisfy_selection_steps():
    order = order_with(requested_category="cups", requested_product_name="paper cup")
    assert is_step_satisfied(ConversationStep.CATEGORY_SELECTION, order)
    assert is_step_satisfied(ConversationStep.PRODUCT_SELECTION, order)
    assert next_step_after_bypass(ConversationStep.CATEGORY_SELECTION, order) == ConversationStep.DIMENSION_INPUT


def test_everything_present_jumps_to_quote_from_any_step():
    order = order_with(
        selected_category=MYLAR,
        selected_product=POUCH,
        dimensions=dims(("W", 4), ("H", 6), ("G", 2)),
        selected_material=CatalogRef(id=1, external_id=301, name="PET"),
        selected_finish=[CatalogRef(id=1, external_id=401, name="Matte")],
        quantity=[5000],
    )
    assert all_quote_data_present(order)
    for step in (ConversationStep.START, ConversationStep.CATEGORY_SELECTION, ConversationStep.FINISH_SELECTION):
        assert next_step_after_bypass(step, order) == ConversationStep.QUOTE_GENERATION


def test_missing_material_stops_at_material_step():
    order = order_with(
        selected_category=MYLAR,
        selected_product=POUCH,
        dimensions=dims(("W", 4), ("H", 6), ("G", 2)),
        selected_finish=[CatalogRef(id=1, external_id=401, name="Matte")],
        quantity=[5000],
    )
    assert next_step_after_bypass(ConversationStep.CATEGORY_SELECTION, order) == ConversationStep.MATERIAL_SELECTION


def test_non_flow_steps_unchanged():
    order = order_with(selected_category=MYLAR)
    assert next_step_after_bypass(ConversationStep.START, order) == ConversationStep.START
    assert next_step_after_bypass(ConversationStep.GREETING_RESPONSE, order) == ConversationStep.GREETING_RESPONSE
    assert next_step_after_bypass(ConversationStep.COMPLETED, order) == ConversationStep.COMPLETED
    assert next_step_after_bypass(ConversationStep.QUOTE_GENERATION, OrderData()) == ConversationStep.QUOTE_GENERATION


def test_bypass_is_idempotent():
    orders = [
        OrderData(),
        order_with(selected_category=MYLAR),
        order_with(selected_category=MYLAR, selected_product=POUCH, dimensions=dims(("W", 4))),
        order_with(selected_category=MYLAR, selected_product=POUCH,
                   dimensions=dims(("W", 4), ("H", 6), ("G", 2)), quantity=[100]),
    ]
    for order in orders:
        for step in ConversationStep:
            once = next_step_after_bypass(step, order)
            assert next_step_after_bypass(once, order) == once, (step, once)


def test_bypass_never_moves_backwards():
    order = OrderData()
    assert next_step_after_bypass(ConversationStep.QUANTITY_INPUT, order) == ConversationStep.QUANTITY_INPUT


def test_product_without_category_is_not_ready_for_a_quote():
    order = order_with(
        selected_product=POUCH,
        dimensions=dims(("W", 4), ("H", 6), ("G", 2)),
        selected_material=CatalogRef(id=1, external_id=301, name="PET"),
        selected_finish=[CatalogRef(id=1, external_id=401, name="Matte")],
        quantity=[5000],
    )
    assert not all_quote_data_present(order)
    assert next_step_after_bypass(ConversationStep.CATEGORY_SELECTION, order) == ConversationStep.CATEGORY_SELECTION
