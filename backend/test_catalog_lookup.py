"""Catalog matching: normalization, priority order, category scoping, inactive rows."""
from app.services.catalog import CatalogKind, normalize_tokens, resolve_record


def test_normalize_tokens_folds_case_punctuation_and_plurals():
    assert normalize_tokens("Stand-Up Pouches!") == ["stand", "up", "pouch"]
    assert normalize_tokens("the Boxes") == ["box"]
    assert normalize_tokens("Gloss") == ["gloss"]
    assert normalize_tokens(None) == []


async def test_find_category_by_name_alias_and_plural(catalog):
    assert (await catalog.find_category("Mylar Bags")).external_id == 101
    assert (await catalog.find_category("mylar")).external_id == 101
    assert (await catalog.find_category("stickers")).external_id == 102
    assert (await catalog.find_category("label")).external_id == 102


async def test_find_category_never_returns_inactive(catalog):
    assert await catalog.find_category("Folding Cartons") is None
    assert await catalog.find_category("boxes") is None


async def test_find_product_variants(catalog):
    for text in ("Stand Up Pouch", "stand-up pouches", "STAND UP POUCH", "need stand up pouches please"):
        product = await catalog.find_product(text)
        assert product is not None, text
        assert product.external_id == 201


async def test_find_product_skips_inactive(catalog):
    assert await catalog.find_product("Retired Spout Pouch") is None


async def test_find_product_scoped_to_category(catalog):
    labels = await catalog.find_category("Labels")
    assert await catalog.find_product("stand up pouch", labels.id) is None
    assert (await catalog.find_product("roll label", labels.id)).external_id == 211


async def test_material_scope_picks_the_right_duplicate_name(catalog):
    mylar = await catalog.find_category("Mylar Bags")
    labels = await catalog.find_category("Labels")
    assert (await catalog.find_material("silver foil", mylar.id)).external_id == 303
    assert (await catalog.find_material("silver foil", labels.id)).external_id == 312


async def test_partial_name_and_description_matches(catalog):
    mylar = await catalog.find_category("Mylar Bags")
    # "silver" is contained in "Silver Foil"
    assert (await catalog.find_material("silver", mylar.id)).external_id == 303
    # "pet material" contains "PET"
    assert (await catalog.find_material("pet material", mylar.id)).external_id == 301
    # description only: "brown paper" -> Kraft
    assert (await catalog.find_material("brown paper", mylar.id)).external_id == 302


async def test_external_id_lookup(catalog):
    mylar = await catalog.find_category("Mylar Bags")
    assert (await catalog.find_finish("403", mylar.id)).name == "Spot UV"
    assert (await catalog.get_by_external_id(CatalogKind.MATERIAL, 302, mylar.id)).name == "Kraft"
    assert await catalog.get_by_external_id(CatalogKind.MATERIAL, 312, mylar.id) is None


async def test_no_match_and_blank_input(catalog):
    assert await catalog.find_category("cups") is None
    assert await catalog.find_material("", None) is None
    assert await catalog.find_finish("   ", None) is None


async def test_list_active_in_catalog_order(catalog):
    mylar = await catalog.find_category("Mylar Bags")
    finishes = await catalog.list_active(CatalogKind.FINISH, mylar.id)
    assert [f.name for f in finishes] == ["Matte", "Gloss", "Spot UV"]
    categories = await catalog.list_active(CatalogKind.CATEGORY)
    assert [c.name for c in categories] == ["Mylar Bags", "Labels"]


async def test_get_category_only_active(catalog, session_factory):
    from app.models.catalog import Category

    with session_factory() as db:
        cartons = db.query(Category).filter(Category.external_id == 103).one()
        mylar = db.query(Category).filter(Category.external_id == 101).one()
    assert await catalog.get_category(cartons.id) is None
    assert (await catalog.get_category(mylar.id)).name == "Mylar Bags"
    assert await catalog.get_category(None) is None


async def test_vocabulary_lists_active_names_and_aliases(catalog):
    vocab = await catalog.vocabulary()
    assert "Stand Up Pouch" in vocab[CatalogKind.PRODUCT]
    assert "Retired Spout Pouch" not in vocab[CatalogKind.PRODUCT]
    assert "mylar" in vocab[CatalogKind.CATEGORY]


def test_exact_name_beats_containment():
    class Record:
        def __init__(self, name, external_id):
            self.name = name
            self.external_id = external_id
            self.description = None

    records = [Record("Gloss Varnish", 1), Record("Gloss", 2)]
    assert resolve_record(records, "gloss").external_id == 2
    assert resolve_record(records, "gloss varnish please").external_id == 1
