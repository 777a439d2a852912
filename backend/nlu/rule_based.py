"""Rule-based entity extraction.

Used when no LLM is configured, and as the fallback when the LLM is down
or returns garbage. Deterministic: same text + same catalog = same result.

Extracts:
- dimensions via regex ("4x6x2", "l:5,w:3,h:7")
- quantities via regex ("5000", "5,000", "5k"), ignoring dimension numbers
- category/product/material/finish by spotting active catalog names
- intents via keyword patterns (greeting, yes/no, quote request, reset)
"""
import re
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from app.services.catalog import CatalogKind, contains_phrase, normalize_tokens
from app.services.entity_extractor import find_dimension_spans, find_quantities

from .schema import EntityKind, Intent, IntentName, NLUResult

logger = logging.getLogger(__name__)

VocabularyProvider = Callable[[], Awaitable[Dict[CatalogKind, List[str]]]]

# Quantities in free text below this are more likely counts of something else
MIN_FREE_TEXT_QUANTITY = 50

INTENT_PATTERNS = {
    IntentName.RESET: [r"^\s*(reset|restart|start over|new quote)\s*[.!]?\s*$"],
    IntentName.GREETING: [r"\b(hi|hello|hey|hola|greetings|good (morning|afternoon|evening))\b"],
    IntentName.QUOTE_REQUEST: [r"\b(quote|quotation|price|pricing|cost|estimate|order|need|want)\b"],
    IntentName.AFFIRM: [r"^\s*(yes|y|yeah|yep|yup|sure|ok|okay|confirm|go ahead|please do)\b"],
    IntentName.DENY: [r"^\s*(no|n|nope|nah|not now|cancel|no thanks)\b"],
}

CATALOG_TO_ENTITY = {
    CatalogKind.CATEGORY: EntityKind.CATEGORY,
    CatalogKind.PRODUCT: EntityKind.PRODUCT,
    CatalogKind.MATERIAL: EntityKind.MATERIAL,
    CatalogKind.FINISH: EntityKind.FINISH,
}


class RuleBasedNLU:
    """Regex + catalog-vocabulary extractor. Never raises for ordinary text."""

    source = "rules"

    def __init__(self, vocabulary_provider: Optional[VocabularyProvider] = None):
        self.vocabulary_provider = vocabulary_provider

    async def process(self, text: str, current_step: Optional[str] = None) -> NLUResult:
        result = NLUResult.empty(self.source)
        text = (text or "").strip()
        if not text:
            return result

        self._detect_intents(text, result)

        for span_text, _ in find_dimension_spans(text):
            result.add(EntityKind.DIMENSIONS, span_text, 0.9)

        for quantity in find_quantities(text, minimum=MIN_FREE_TEXT_QUANTITY):
            result.add(EntityKind.QUANTITY, str(quantity), 0.85)

        if self.vocabulary_provider is not None:
            vocabulary = await self.vocabulary_provider()
            self._tag_catalog_names(text, vocabulary, result)

        kinds = {kind.value: len(found) for kind, found in result.entities.items()}
        logger.debug(f"[RuleNLU] '{text[:50]}' -> entities={kinds} intents={[i.name.value for i in result.intents]}")
        return result

    def _detect_intents(self, text: str, result: NLUResult) -> None:
        lowered = text.lower()
        for name, patterns in INTENT_PATTERNS.items():
            if any(re.search(p, lowered) for p in patterns):
                result.intents.append(Intent(name=name, confidence=0.8))

    def _tag_catalog_names(self, text: str, vocabulary: Dict[CatalogKind, List[str]], result: NLUResult) -> None:
        """Tag every catalog name that appears as a whole word run in the text."""
        tokens = normalize_tokens(text)
        for catalog_kind, entity_kind in CATALOG_TO_ENTITY.items():
            seen = set()
            for name in vocabulary.get(catalog_kind, []):
                name_tokens = normalize_tokens(name)
                key = tuple(name_tokens)
                if key in seen:
                    continue
                if contains_phrase(tokens, name_tokens):
                    seen.add(key)
                    result.add(entity_kind, name, 0.8, raw_text=name)
