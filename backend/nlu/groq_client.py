"""
Groq API Client - async wrapper for entity extraction and voice transcription.

================================================================================
LLM ROLE IS EXTRACTOR ONLY
================================================================================

This client calls Groq for TWO purposes:
- Turn a customer message into JSON entities (category, product, sizes, ...)
- Transcribe WhatsApp voice notes (Whisper)

THIS CLIENT DOES NOT:
- Match anything against the catalog (the reconciler does that)
- Decide conversation steps
- Send messages to customers

FAILURE CONTRACT:
- Transport-level failures (timeout, rate limit, connection, 5xx) raise
  NLUError after retries; callers degrade to rule-based extraction.
- An empty completion returns None.

================================================================================
"""

import asyncio
import logging
from typing import Optional

from groq import AsyncGroq, APIConnectionError, APIError, APITimeoutError, RateLimitError

from app.core.config import settings
from app.core.exceptions import NLUError

# Configure logging (NEVER log API keys)
logger = logging.getLogger(__name__)


class GroqClient:
    """
    Minimal async wrapper for the Groq API.

    - Temperature: 0 (deterministic output for same input)
    - Max tokens: 512 (entity JSON is small, limits abuse)
    - JSON mode: the model must answer with a single JSON object
    - Retries: 2 with exponential backoff on timeouts / rate limits
    """

    TEMPERATURE = 0
    MAX_TOKENS = 512

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        transcription_model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncGroq] = None,
    ):
        self.model = model or settings.GROQ_MODEL
        self.transcription_model = transcription_model or settings.GROQ_TRANSCRIPTION_MODEL
        api_key = api_key if api_key is not None else settings.GROQ_API_KEY

        if client is not None:
            self.client = client
        elif not api_key:
            logger.warning(
                "⚠️ GROQ_API_KEY not found in environment. "
                "LLM extraction and voice transcription are DISABLED."
            )
            self.client = None
        else:
            self.client = AsyncGroq(
                api_key=api_key,
                timeout=timeout or settings.NLU_TIMEOUT_SECONDS,
                max_retries=0,  # retries handled below with our own backoff
            )
            logger.info("✅ Groq client initialized")

    def is_available(self) -> bool:
        """Check if Groq client is ready to use."""
        return self.client is not None

    async def complete_json(self, prompt: str, max_retries: int = 2) -> Optional[str]:
        """
        Ask the model for a JSON object.

        Returns:
            Raw JSON string, or None if the model returned nothing

        Raises:
            NLUError: client missing, or transport failure after retries
        """
        if not self.is_available():
            raise NLUError("Groq client not configured")

        for attempt in range(max_retries + 1):
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=self.TEMPERATURE,
                    max_tokens=self.MAX_TOKENS,
                    response_format={"type": "json_object"},
                )
                if response.choices:
                    content = response.choices[0].message.content
                    logger.debug(f"[Groq] Response received: {len(content or '')} chars (attempt {attempt + 1})")
                    return content
                logger.warning("[Groq] Empty completion")
                return None

            except (APITimeoutError, RateLimitError, APIConnectionError) as e:
                if attempt < max_retries:
                    wait_time = 0.5 * (2 ** attempt)  # 0.5s, 1s
                    logger.warning(
                        f"⏱️ Groq {type(e).__name__}, retry {attempt + 1}/{max_retries} after {wait_time}s"
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise NLUError(f"Groq unavailable after {max_retries} retries: {type(e).__name__}") from e

            except APIError as e:
                logger.error(f"❌ Groq API error (permanent): {e}")
                raise NLUError(f"Groq API error: {type(e).__name__}") from e

        return None

    async def transcribe(self, audio: bytes, filename: str = "voice.ogg") -> str:
        """
        Transcribe a voice note with Whisper.

        Raises:
            NLUError: client missing or the API call failed
        """
        if not self.is_available():
            raise NLUError("Groq client not configured")
        try:
            transcription = await self.client.audio.transcriptions.create(
                file=(filename, audio),
                model=self.transcription_model,
            )
        except APIError as e:
            raise NLUError(f"Transcription failed: {type(e).__name__}") from e
        text = (getattr(transcription, "text", "") or "").strip()
        logger.info(f"[Groq] Transcribed voice note: {len(text)} chars")
        return text


# Singleton instance
_groq_client: Optional[GroqClient] = None


def get_groq_client() -> GroqClient:
    """Get or create singleton Groq client instance."""
    global _groq_client
    if _groq_client is None:
        _groq_client = GroqClient()
    return _groq_client
