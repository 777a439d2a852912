"""NLU adapter selection.

Every backend exposes `async process(text, current_step=None) -> NLUResult`.
The flow controller depends only on that method, so backends are
interchangeable without touching the reconciler.
"""
import logging
from typing import Optional, Protocol

from app.core.config import settings
from app.core.exceptions import NLUError
from app.services.catalog import CatalogLookup

from .groq_client import GroqClient, get_groq_client
from .llm_adapter import GroqEntityExtractor
from .rule_based import RuleBasedNLU
from .schema import NLUResult

logger = logging.getLogger(__name__)


class NLUAdapter(Protocol):
    async def process(self, text: str, current_step: Optional[str] = None) -> NLUResult:
        ...


class FallbackNLU:
    """Try the primary backend; on a transport failure use the fallback."""

    def __init__(self, primary: NLUAdapter, fallback: NLUAdapter):
        self.primary = primary
        self.fallback = fallback

    async def process(self, text: str, current_step: Optional[str] = None) -> NLUResult:
        try:
            return await self.primary.process(text, current_step)
        except NLUError as e:
            logger.warning(f"[NLU] Primary backend failed ({e}); using fallback")
            return await self.fallback.process(text, current_step)


def build_nlu_adapter(
    catalog: CatalogLookup,
    backend: Optional[str] = None,
    groq_client: Optional[GroqClient] = None,
) -> NLUAdapter:
    """
    Build the configured backend.

    NLU_BACKEND:
        "rules" -> RuleBasedNLU only
        "llm"   -> Groq, falling back to rules on failure
        "auto"  -> "llm" when a Groq key is configured, else "rules"
    """
    backend = (backend or settings.NLU_BACKEND).lower()
    rules = RuleBasedNLU(vocabulary_provider=catalog.vocabulary)

    if backend == "rules":
        logger.info("[NLU] Using rule-based extraction")
        return rules

    client = groq_client or get_groq_client()
    if backend == "auto" and not client.is_available():
        logger.info("[NLU] No Groq key configured; using rule-based extraction")
        return rules

    logger.info("[NLU] Using Groq extraction with rule-based fallback")
    return FallbackNLU(GroqEntityExtractor(client=client, fallback=rules), rules)
