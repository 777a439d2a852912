"""Entity reconciliation: precedence, scoping, append-only merges, confidence threshold."""
import pytest

from app.schemas.order import OrderData
from app.services.entity_reconciler import EntityReconciler, merge_dimension_text, product_ref
from nlu.schema import EntityKind, NLUResult


def entities(*items, confidence=0.9):
    result = NLUResult.empty("test")
    for kind, value in items:
        result.add(kind, value, confidence)
    return result.entities


@pytest.fixture
def reconciler(catalog):
    return EntityReconciler(catalog, threshold=0.5)


async def test_full_message_fills_every_field(reconciler):
    order = await reconciler.reconcile(entities(
        (EntityKind.PRODUCT, "stand up pouches"),
        (EntityKind.DIMENSIONS, "4x6x2"),
        (EntityKind.MATERIAL, "PET"),
        (EntityKind.FINISH, "matte"),
        (EntityKind.QUANTITY, "5000"),
    ), OrderData())

    assert order.selected_product.external_id == 201
    # category backfilled from the product
    assert order.selected_category.external_id == 101
    assert [(d.name, d.value) for d in order.dimensions] == [("W", 4.0), ("H", 6.0), ("G", 2.0)]
    assert order.selected_material.external_id == 301
    assert [f.external_id for f in order.selected_finish] == [401]
    assert order.quantity == [5000]


async def test_reconcile_does_not_mutate_input(reconciler):
    original = OrderData()
    await reconciler.reconcile(entities((EntityKind.QUANTITY, "100")), original)
    assert original.quantity == []


async def test_unknown_category_becomes_requested(reconciler):
    order = await reconciler.reconcile(entities((EntityKind.CATEGORY, "cups")), OrderData())
    assert order.selected_category is None
    assert order.requested_category == "cups"


async def test_known_category_clears_requested(reconciler):
    order = OrderData(requested_category="cups")
    order = await reconciler.reconcile(entities((EntityKind.CATEGORY, "mylar")), order)
    assert order.selected_category.name == "Mylar Bags"
    assert order.requested_category is None


async def test_unknown_product_becomes_requested_name(reconciler):
    order = await reconciler.reconcile(entities((EntityKind.PRODUCT, "coffee cup")), OrderData())
    assert order.selected_product is None
    assert order.requested_product_name == "coffee cup"


async def test_first_product_wins(reconciler):
    order = await reconciler.reconcile(entities((EntityKind.PRODUCT, "flat pouch")), OrderData())
    order = await reconciler.reconcile(entities((EntityKind.PRODUCT, "stand up pouch")), order)
    assert order.selected_product.name == "Flat Pouch"


async def test_category_conflicting_with_product_is_ignored(reconciler):
    order = await reconciler.reconcile(entities((EntityKind.PRODUCT, "stand up pouch")), OrderData())
    order = await reconciler.reconcile(entities((EntityKind.CATEGORY, "labels")), order)
    assert order.selected_category.name == "Mylar Bags"


async def test_product_matched_within_selected_category(reconciler):
    order = await reconciler.reconcile(entities((EntityKind.CATEGORY, "labels")), OrderData())
    order = await reconciler.reconcile(entities((EntityKind.PRODUCT, "stand up pouch")), order)
    assert order.selected_product is None
    assert order.requested_product_name == "stand up pouch"


async def test_dimensions_ignored_without_product(reconciler):
    order = await reconciler.reconcile(entities((EntityKind.DIMENSIONS, "4x6x2")), OrderData())
    assert order.dimensions == []


async def test_partial_dimensions_then_completion(reconciler):
    order = await reconciler.reconcile(entities(
        (EntityKind.PRODUCT, "stand up pouch"), (EntityKind.DIMENSIONS, "4x5"),
    ), OrderData())
    assert [d.name for d in order.dimensions] == ["W", "H"]
    assert order.missing_dimensions() == ["G"]

    # A later full set never overwrites W/H, only fills G
    order = await reconciler.reconcile(entities((EntityKind.DIMENSIONS, "9x9x2")), order)
    assert [(d.name, d.value) for d in order.dimensions] == [("W", 4.0), ("H", 5.0), ("G", 2.0)]


async def test_material_last_mention_wins_and_is_scoped(reconciler):
    order = await reconciler.reconcile(entities((EntityKind.CATEGORY, "labels")), OrderData())
    order = await reconciler.reconcile(entities(
        (EntityKind.MATERIAL, "silver foil"), (EntityKind.MATERIAL, "white bopp"),
    ), order)
    assert order.selected_material.external_id == 311

    order = await reconciler.reconcile(entities((EntityKind.MATERIAL, "silver foil")), order)
    assert order.selected_material.external_id == 312


async def test_finishes_and_quantities_append_unique(reconciler):
    order = await reconciler.reconcile(entities(
        (EntityKind.CATEGORY, "mylar"),
        (EntityKind.FINISH, "matte"), (EntityKind.FINISH, "spot uv"),
        (EntityKind.QUANTITY, "1000"), (EntityKind.QUANTITY, "5k"),
    ), OrderData())
    order = await reconciler.reconcile(entities(
        (EntityKind.FINISH, "matte"), (EntityKind.QUANTITY, "1,000"), (EntityKind.QUANTITY, "2500"),
    ), order)

    assert [f.name for f in order.selected_finish] == ["Matte", "Spot UV"]
    assert order.quantity == [1000, 5000, 2500]


async def test_confidence_threshold_is_strict(reconciler):
    at_threshold = entities((EntityKind.QUANTITY, "500"), confidence=0.5)
    order = await reconciler.reconcile(at_threshold, OrderData())
    assert order.quantity == []

    above = entities((EntityKind.QUANTITY, "500"), confidence=0.51)
    order = await reconciler.reconcile(above, OrderData())
    assert order.quantity == [500]


async def test_unparseable_quantity_is_skipped(reconciler):
    order = await reconciler.reconcile(entities((EntityKind.QUANTITY, "lots")), OrderData())
    assert order.quantity == []


async def test_merge_dimension_text_fill_missing(catalog):
    product = await catalog.find_product("stand up pouch")
    order = OrderData(selected_product=product_ref(product))

    assert merge_dimension_text(order, "4x5") == ["W", "H"]
    # a short follow-up answer goes to the missing dimension
    assert merge_dimension_text(order, "2", fill_missing=True) == ["G"]
    assert order.dimension_values() == [4.0, 5.0, 2.0]


async def test_out_of_range_dimension_dropped(catalog):
    product = await catalog.find_product("stand up pouch")
    order = OrderData(selected_product=product_ref(product))
    assert merge_dimension_text(order, "4x6x50") == ["W", "H"]
    assert order.missing_dimensions() == ["G"]
