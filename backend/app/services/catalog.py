"""
CATALOG LOOKUP SERVICE

Purpose: Map user text (any variant) to an active catalog record
- Categories, products, materials and finishes
- Scoped to a category when one is known (no cross-category matches)
- Never returns inactive records

Match order (first hit wins, records in catalog order: sort_order, name):
1. Exact normalized name (or category alias)
2. Name containment on word boundaries, either direction
   ("silver" -> "Silver Foil", "pet material" -> "PET")
3. Category alias containment
4. Description containment
5. External (ERP) id, when the text is a bare number

Normalization:
    "Stand-Up Pouches!" -> ["stand", "up", "pouch"]
"""
import re
import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal, run_db
from app.models.catalog import Category, Product, Material, Finish

logger = logging.getLogger(__name__)


# Filler words dropped from both sides before comparing
NOISE_WORDS = {"a", "an", "the", "please", "need", "want", "some", "i", "we", "my", "our"}


class CatalogKind(str, Enum):
    CATEGORY = "category"
    PRODUCT = "product"
    MATERIAL = "material"
    FINISH = "finish"


MODELS = {
    CatalogKind.CATEGORY: Category,
    CatalogKind.PRODUCT: Product,
    CatalogKind.MATERIAL: Material,
    CatalogKind.FINISH: Finish,
}


def _fold_plural(word: str) -> str:
    if len(word) <= 3 or word.endswith("ss"):
        return word
    if word.endswith(("ches", "shes", "xes", "sses")):
        return word[:-2]
    if word.endswith("s"):
        return word[:-1]
    return word


def normalize_tokens(text: Optional[str]) -> List[str]:
    """
    Normalize text for catalog matching.

    Handles:
    - Case insensitivity
    - Punctuation and hyphens ("stand-up" == "stand up")
    - Simple plurals ("pouches" == "pouch")
    - Filler words
    """
    if not text:
        return []
    cleaned = re.sub(r"[^\w\s]", " ", str(text).lower())
    return [_fold_plural(w) for w in cleaned.split() if w not in NOISE_WORDS]


def contains_phrase(haystack: Sequence[str], needle: Sequence[str]) -> bool:
    """True when `needle` appears as a contiguous word run inside `haystack`."""
    if not needle or len(needle) > len(haystack):
        return False
    width = len(needle)
    return any(list(haystack[i:i + width]) == list(needle) for i in range(len(haystack) - width + 1))


def phrase_overlap(a: Sequence[str], b: Sequence[str]) -> bool:
    return contains_phrase(a, b) or contains_phrase(b, a)


def resolve_record(records: Sequence, text: str):
    """
    Pick the first record matching `text`, in match-priority order.

    `records` must already be filtered to active rows in catalog order.
    """
    tokens = normalize_tokens(text)
    if not tokens and not str(text or "").strip().isdigit():
        return None

    def aliases(record) -> List[List[str]]:
        return [normalize_tokens(a) for a in (getattr(record, "aliases", None) or [])]

    # 1. exact name / alias
    for record in records:
        if normalize_tokens(record.name) == tokens or tokens in aliases(record):
            return record

    # 2. name containment
    for record in records:
        if phrase_overlap(normalize_tokens(record.name), tokens):
            return record

    # 3. alias containment
    for record in records:
        if any(phrase_overlap(alias, tokens) for alias in aliases(record)):
            return record

    # 4. description containment
    for record in records:
        if contains_phrase(normalize_tokens(record.description), tokens):
            return record

    # 5. external id
    raw = str(text).strip()
    if raw.isdigit():
        external_id = int(raw)
        for record in records:
            if record.external_id == external_id:
                return record

    return None


def load_active(db: Session, kind: CatalogKind, category_id: Optional[int] = None) -> list:
    """Active records of one kind in catalog order, optionally scoped to a category."""
    model = MODELS[kind]
    query = db.query(model).filter(model.is_active.is_(True))
    if category_id is not None and kind != CatalogKind.CATEGORY:
        query = query.filter(model.category_id == category_id)
    return query.order_by(model.sort_order, model.name).all()


class CatalogLookup:
    """
    Async facade over the catalog tables.

    Every query runs on the thread pool with a time bound; a timeout is
    logged and treated as "no match" so a slow database degrades to a
    re-prompt instead of an error.
    """

    def __init__(self, session_factory=SessionLocal, timeout: float = None):
        self.session_factory = session_factory
        self.timeout = timeout if timeout is not None else settings.CATALOG_TIMEOUT_SECONDS

    def _load(self, kind: CatalogKind, category_id: Optional[int]) -> list:
        with self.session_factory() as db:
            return load_active(db, kind, category_id)

    def _get(self, kind: CatalogKind, record_id: int):
        with self.session_factory() as db:
            return db.get(MODELS[kind], record_id)

    async def list_active(self, kind: CatalogKind, category_id: Optional[int] = None) -> list:
        try:
            return await run_db(self._load, kind, category_id, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Catalog] Timed out listing {kind.value} (category_id={category_id})")
            return []

    async def _find(self, kind: CatalogKind, text: str, category_id: Optional[int] = None):
        if text is None or not str(text).strip():
            return None
        records = await self.list_active(kind, category_id)
        match = resolve_record(records, str(text))
        if match:
            logger.info(
                f"[Catalog] Matched {kind.value} '{text}' -> '{match.name}' "
                f"(external_id={match.external_id}, scope={category_id})"
            )
        else:
            logger.info(f"[Catalog] No {kind.value} match for '{text}' (scope={category_id})")
        return match

    async def find_category(self, name_or_id: str) -> Optional[Category]:
        return await self._find(CatalogKind.CATEGORY, name_or_id)

    async def find_product(self, name_or_id: str, category_id: Optional[int] = None) -> Optional[Product]:
        return await self._find(CatalogKind.PRODUCT, name_or_id, category_id)

    async def find_material(self, name_or_id: str, category_id: Optional[int] = None) -> Optional[Material]:
        return await self._find(CatalogKind.MATERIAL, name_or_id, category_id)

    async def find_finish(self, name_or_id: str, category_id: Optional[int] = None) -> Optional[Finish]:
        return await self._find(CatalogKind.FINISH, name_or_id, category_id)

    async def get_category(self, category_id: Optional[int]) -> Optional[Category]:
        """Fetch an ACTIVE category by internal id (used to backfill from a product)."""
        if category_id is None:
            return None
        try:
            category = await run_db(self._get, CatalogKind.CATEGORY, category_id, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Catalog] Timed out loading category {category_id}")
            return None
        return category if category is not None and category.is_active else None

    async def vocabulary(self) -> Dict[CatalogKind, List[str]]:
        """Active names per kind (plus category aliases) for keyword tagging."""
        vocab: Dict[CatalogKind, List[str]] = {}
        for kind in CatalogKind:
            names: List[str] = []
            for record in await self.list_active(kind):
                names.append(record.name)
                names.extend(getattr(record, "aliases", None) or [])
            vocab[kind] = names
        return vocab

    def _by_external_id(self, kind: CatalogKind, external_id: int, category_id: Optional[int]):
        with self.session_factory() as db:
            model = MODELS[kind]
            query = db.query(model).filter(model.external_id == external_id, model.is_active.is_(True))
            if category_id is not None and kind != CatalogKind.CATEGORY:
                query = query.filter(model.category_id == category_id)
            return query.first()

    async def get_by_external_id(self, kind: CatalogKind, external_id: int, category_id: Optional[int] = None):
        """Exact lookup for list-reply selections ("material:301")."""
        try:
            return await run_db(self._by_external_id, kind, external_id, category_id, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Catalog] Timed out loading {kind.value} {external_id}")
            return None
