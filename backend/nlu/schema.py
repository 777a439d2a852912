"""NLU Schema - stable typed contract shared by every extraction backend.

Backends (rule-based, LLM) MUST return NLUResult. The reconciler only
ever sees `kind -> [candidates]`, never backend-specific key names.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class EntityKind(str, Enum):
    """Entity kinds, listed in reconciliation order."""
    CATEGORY = "category"
    PRODUCT = "product"
    DIMENSIONS = "dimensions"
    MATERIAL = "material"
    FINISH = "finish"
    QUANTITY = "quantity"


class IntentName(str, Enum):
    GREETING = "greeting"
    AFFIRM = "affirm"
    DENY = "deny"
    QUOTE_REQUEST = "quote_request"
    RESET = "reset"


class EntityCandidate(BaseModel):
    """One extracted mention. `value` is normalized, `raw_text` is as typed."""
    value: str
    confidence: float = 1.0
    raw_text: str = ""

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return max(0.0, min(1.0, v))

    @field_validator("value", "raw_text")
    @classmethod
    def strip_strings(cls, v: str) -> str:
        return (v or "").strip()


class Intent(BaseModel):
    name: IntentName
    confidence: float = 1.0


class NLUResult(BaseModel):
    entities: Dict[EntityKind, List[EntityCandidate]] = Field(default_factory=dict)
    intents: List[Intent] = Field(default_factory=list)
    source: str = "none"  # Audit: which backend produced this

    @classmethod
    def empty(cls, source: str = "none") -> "NLUResult":
        return cls(source=source)

    def add(self, kind: EntityKind, value: str, confidence: float, raw_text: Optional[str] = None):
        candidate = EntityCandidate(value=value, confidence=confidence, raw_text=raw_text or value)
        if not candidate.value:
            return
        self.entities.setdefault(kind, []).append(candidate)

    def candidates(self, kind: EntityKind) -> List[EntityCandidate]:
        return self.entities.get(kind, [])

    def has_intent(self, name: IntentName, min_confidence: float = 0.5) -> bool:
        return any(i.name == name and i.confidence >= min_confidence for i in self.intents)

    def has_entities(self) -> bool:
        return any(self.entities.values())
