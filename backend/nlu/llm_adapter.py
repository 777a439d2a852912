"""
LLM-based Entity Extractor - Groq JSON mode behind the typed NLU contract.

WHAT THE LLM DOES:
- Reads free text ("need 5k stand up pouches 4x6 in kraft with matte")
- Returns raw mentions: category, product type, sizes, materials, finishes,
  quantities, plus a coarse intent

WHAT IT DOES NOT DO:
- It never picks catalog records; the reconciler fuzzy-matches the mentions
- Its output is never trusted blindly: pydantic validates the JSON, and
  invalid output degrades to the rule-based extractor
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from app.services.entity_extractor import parse_quantity

from .groq_client import GroqClient, get_groq_client
from .prompts import build_extraction_prompt
from .rule_based import RuleBasedNLU
from .schema import EntityKind, Intent, IntentName, NLUResult

logger = logging.getLogger(__name__)


class ExtractionPayload(BaseModel):
    """Validated LLM output. Any deviation triggers the rule-based fallback."""
    category: Optional[str] = None
    product_type: Optional[str] = None
    dimensions: Optional[str] = None
    materials: List[str] = Field(default_factory=list)
    finishes: List[str] = Field(default_factory=list)
    quantities: List[str] = Field(default_factory=list)
    intent: Optional[IntentName] = None
    confidence_score: float = 0.8

    @field_validator("dimensions", mode="before")
    @classmethod
    def flatten_dimensions(cls, v: Any) -> Optional[str]:
        """Accept "4x6x2", [4, 6, 2] or {"width": 4, "height": 6, "depth": 2}."""
        if v is None or v == "":
            return None
        if isinstance(v, dict):
            ordered = [v.get(k) for k in ("width", "length", "height", "depth", "gusset")]
            values = [str(x) for x in ordered if x not in (None, "", 0)]
            return " x ".join(values) or None
        if isinstance(v, (list, tuple)):
            return " x ".join(str(x) for x in v) or None
        return str(v)

    @field_validator("materials", "finishes", "quantities", mode="before")
    @classmethod
    def listify(cls, v: Union[None, str, int, List[Any]]) -> List[str]:
        if v is None:
            return []
        if not isinstance(v, list):
            v = [v]
        return [str(x).strip() for x in v if x is not None and str(x).strip()]

    @field_validator("intent", mode="before")
    @classmethod
    def unknown_intent_is_none(cls, v: Any) -> Optional[str]:
        allowed = {i.value for i in IntentName}
        return v if v in allowed else None

    @field_validator("confidence_score", mode="before")
    @classmethod
    def default_confidence(cls, v: Any) -> float:
        try:
            return max(0.0, min(1.0, float(v)))
        except (TypeError, ValueError):
            return 0.8

    def to_result(self, source: str = "llm") -> NLUResult:
        result = NLUResult.empty(source)
        confidence = self.confidence_score

        if self.category:
            result.add(EntityKind.CATEGORY, self.category, confidence)
        if self.product_type:
            result.add(EntityKind.PRODUCT, self.product_type, confidence)
        if self.dimensions:
            result.add(EntityKind.DIMENSIONS, self.dimensions, confidence)
        for material in self.materials:
            result.add(EntityKind.MATERIAL, material, confidence)
        for finish in self.finishes:
            result.add(EntityKind.FINISH, finish, confidence)
        for raw in self.quantities:
            quantity = parse_quantity(raw)
            if quantity is not None:
                result.add(EntityKind.QUANTITY, str(quantity), confidence, raw_text=raw)

        if self.intent:
            result.intents.append(Intent(name=self.intent, confidence=confidence))
        return result


def parse_llm_output(raw: str) -> Optional[ExtractionPayload]:
    """Parse and validate JSON from the model; None when unusable."""
    try:
        data: Dict[str, Any] = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"[LLMExtractor] Invalid JSON from LLM: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning("[LLMExtractor] LLM returned non-object JSON")
        return None
    try:
        return ExtractionPayload.model_validate(data)
    except ValidationError as e:
        logger.warning(f"[LLMExtractor] Schema validation failed: {e.error_count()} errors")
        return None


class GroqEntityExtractor:
    """
    NLU backend backed by Groq.

    Raises NLUError (from GroqClient) on transport failure; garbage output
    is handled here by delegating to the rule-based extractor.
    """

    source = "llm"

    def __init__(self, client: Optional[GroqClient] = None, fallback: Optional[RuleBasedNLU] = None):
        self.client = client or get_groq_client()
        self.fallback = fallback or RuleBasedNLU()

    async def process(self, text: str, current_step: Optional[str] = None) -> NLUResult:
        text = (text or "").strip()
        if not text:
            return NLUResult.empty(self.source)

        raw = await self.client.complete_json(build_extraction_prompt(text, current_step))
        payload = parse_llm_output(raw) if raw else None
        if payload is None:
            logger.info("[LLMExtractor] Falling back to rule-based extraction")
            return await self.fallback.process(text)

        result = payload.to_result(self.source)
        logger.info(
            f"[LLMExtractor] Extracted {sum(len(v) for v in result.entities.values())} entities "
            f"(confidence={payload.confidence_score:.2f})"
        )
        return result
