"""NLU module: typed entity extraction for customer messages.

Backends:
- RuleBasedNLU: regex + catalog vocabulary (always available)
- GroqEntityExtractor: LLM extraction via Groq, validated with pydantic

If the LLM fails, the system falls back to rule-based extraction.
"""

from .adapter import FallbackNLU, NLUAdapter, build_nlu_adapter
from .llm_adapter import GroqEntityExtractor
from .rule_based import RuleBasedNLU
from .schema import EntityCandidate, EntityKind, Intent, IntentName, NLUResult

__all__ = [
    "FallbackNLU",
    "NLUAdapter",
    "build_nlu_adapter",
    "GroqEntityExtractor",
    "RuleBasedNLU",
    "EntityCandidate",
    "EntityKind",
    "Intent",
    "IntentName",
    "NLUResult",
]
