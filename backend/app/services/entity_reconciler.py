"""
ENTITY RECONCILER

Purpose: Merge freshly extracted entities into the accumulated order
- Resolves every mention against the live catalog
- Applies confidence threshold and precedence rules
- Never removes data; only adds (or overwrites the single-valued material)

Processing order is FIXED:
    category → product → dimensions → material → finishes → quantities
Product matching needs the category scope, and dimension parsing needs the
product's declared dimension names.

Per-kind rules:
- category:   match → selected_category; no match → requested_category
- product:    first match wins; backfills category from the product
- dimensions: only with a product; positional onto declared names, no overwrite
- material:   scoped to category; last resolved mention wins
- finishes:   scoped to category; appended, unique by external id
- quantities: integers, appended, unique, first-mention order

Fails soft: an error in one kind is logged and that kind is skipped.
"""
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from app.core.config import settings
from app.schemas.order import CatalogRef, CategoryRef, DimensionSpec, OrderData, ProductRef
from app.services.catalog import CatalogLookup
from app.services.entity_extractor import parse_dimension_values, parse_quantity
from nlu.schema import EntityCandidate, EntityKind

logger = logging.getLogger(__name__)


def category_ref(category) -> CategoryRef:
    return CategoryRef(id=category.id, external_id=category.external_id, name=category.name)


def product_ref(product) -> ProductRef:
    specs = [DimensionSpec.model_validate(field) for field in (product.dimension_fields or [])]
    return ProductRef(
        id=product.id,
        external_id=product.external_id,
        name=product.name,
        category_id=product.category_id,
        required_dimensions=specs,
    )


def catalog_ref(record) -> CatalogRef:
    return CatalogRef(id=record.id, external_id=record.external_id, name=record.name)


def merge_dimension_text(order: OrderData, text: str, fill_missing: bool = False) -> List[str]:
    """
    Map parsed values positionally onto the product's declared dimensions.

    Names already present are skipped (never overwritten); values outside a
    spec's min/max are dropped. Returns the names that were added.

    Example (product W,H,G; nothing captured yet):
        "4x5" -> adds W=4, H=5; G still missing

    With fill_missing=True a short answer is mapped onto the dimensions that
    are still missing instead ("2" after "4x5" -> G=2). A full set of values
    is always mapped from the first declared dimension.
    """
    if order.selected_product is None:
        return []
    values = parse_dimension_values(text)
    specs = list(order.selected_product.required_dimensions)
    if fill_missing and len(values) < len(specs):
        specs = [s for s in specs if not order.has_dimension(s.name)]
    added: List[str] = []
    for spec, value in zip(specs, values):
        if order.has_dimension(spec.name):
            continue
        if not spec.accepts(value):
            logger.warning(
                f"[Reconciler] {spec.name}={value} outside "
                f"[{spec.min_value}, {spec.max_value}] for {order.selected_product.name}"
            )
            continue
        if order.add_dimension(spec.name, value):
            added.append(spec.name)
    return added


class EntityReconciler:
    def __init__(self, catalog: CatalogLookup, threshold: Optional[float] = None):
        self.catalog = catalog
        self.threshold = threshold if threshold is not None else settings.ENTITY_CONFIDENCE_THRESHOLD

    def _pipeline(self) -> List[Tuple[EntityKind, Callable[[List[EntityCandidate], OrderData], Awaitable[None]]]]:
        return [
            (EntityKind.CATEGORY, self._merge_category),
            (EntityKind.PRODUCT, self._merge_product),
            (EntityKind.DIMENSIONS, self._merge_dimensions),
            (EntityKind.MATERIAL, self._merge_material),
            (EntityKind.FINISH, self._merge_finishes),
            (EntityKind.QUANTITY, self._merge_quantities),
        ]

    async def reconcile(
        self,
        entities: Dict[EntityKind, List[EntityCandidate]],
        order: OrderData,
    ) -> OrderData:
        """Return a copy of `order` with `entities` merged in."""
        updated = order.model_copy(deep=True)
        for kind, merge in self._pipeline():
            candidates = [c for c in entities.get(kind, []) if c.confidence > self.threshold]
            if not candidates:
                continue
            try:
                await merge(candidates, updated)
            except Exception as e:
                logger.error(f"[Reconciler] Failed to merge {kind.value} entities: {e}", exc_info=True)
        return updated

    async def _merge_category(self, candidates: List[EntityCandidate], order: OrderData) -> None:
        for candidate in candidates:
            category = await self.catalog.find_category(candidate.value)
            if category is not None:
                if order.selected_product is not None and order.selected_product.category_id not in (None, category.id):
                    logger.info(
                        f"[Reconciler] Ignoring category '{category.name}': product "
                        f"'{order.selected_product.name}' belongs to another category"
                    )
                    return
                order.selected_category = category_ref(category)
                order.requested_category = None
                return
        if order.selected_category is None:
            order.requested_category = candidates[0].raw_text or candidates[0].value

    async def _merge_product(self, candidates: List[EntityCandidate], order: OrderData) -> None:
        if order.selected_product is not None:
            return
        scope = order.selected_category.id if order.selected_category else None
        for candidate in candidates:
            product = await self.catalog.find_product(candidate.value, scope)
            if product is None:
                continue
            order.selected_product = product_ref(product)
            order.requested_product_name = None
            if order.selected_category is None:
                category = await self.catalog.get_category(product.category_id)
                if category is not None:
                    order.selected_category = category_ref(category)
                    order.requested_category = None
            return
        order.requested_product_name = candidates[0].raw_text or candidates[0].value

    async def _merge_dimensions(self, candidates: List[EntityCandidate], order: OrderData) -> None:
        if order.selected_product is None:
            return
        for candidate in candidates:
            merge_dimension_text(order, candidate.raw_text or candidate.value)

    async def _merge_material(self, candidates: List[EntityCandidate], order: OrderData) -> None:
        scope = order.selected_category.id if order.selected_category else None
        for candidate in candidates:
            material = await self.catalog.find_material(candidate.value, scope)
            if material is not None:
                order.selected_material = catalog_ref(material)

    async def _merge_finishes(self, candidates: List[EntityCandidate], order: OrderData) -> None:
        scope = order.selected_category.id if order.selected_category else None
        for candidate in candidates:
            finish = await self.catalog.find_finish(candidate.value, scope)
            if finish is not None:
                order.add_finish(catalog_ref(finish))

    async def _merge_quantities(self, candidates: List[EntityCandidate], order: OrderData) -> None:
        for candidate in candidates:
            quantity = parse_quantity(candidate.value)
            if quantity is None:
                logger.warning(f"[Reconciler] Unparseable quantity '{candidate.raw_text}'")
                continue
            order.add_quantity(quantity)
