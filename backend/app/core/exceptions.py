"""
Exception taxonomy for the quoting bot.

PRINCIPLE: Users never see internal details.
Collaborator failures are logged with context here and turned into one
short, polite reply by the flow controller.

Categories:
- Input errors (bad dimensions, unknown catalog names) are NOT exceptions;
  step handlers re-prompt instead.
- Collaborator errors (NLU, pricing, transport) are the classes below.
- Invariant violations (pricing with incomplete data) raise QuoteValidationError.
"""
from typing import List, Optional

from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


class QuoteBotError(Exception):
    """Base class for every domain failure raised by the bot."""


class NLUError(QuoteBotError):
    """Entity extraction backend unreachable or timed out (recoverable)."""


class CatalogTimeoutError(QuoteBotError):
    """Catalog lookup exceeded its time bound."""


class PricingError(QuoteBotError):
    """Pricing API returned non-2xx, timed out, or sent a malformed body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(QuoteBotError):
    """Messaging provider rejected the send or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StaleConversationError(QuoteBotError):
    """Another writer updated the conversation since it was read."""

    def __init__(self, phone: str, expected_version: int):
        super().__init__(
            f"Conversation for {phone} changed since version {expected_version}"
        )
        self.phone = phone
        self.expected_version = expected_version


class QuoteValidationError(QuoteBotError):
    """A quote was requested while required fields are still missing."""

    def __init__(self, missing_fields: List[str]):
        super().__init__(f"Quote is missing: {', '.join(missing_fields)}")
        self.missing_fields = list(missing_fields)


class WebhookError:
    """HTTP errors for the webhook surface with safe (non-leaky) messages."""

    @staticmethod
    def forbidden(reason: str = "") -> HTTPException:
        """
        Generic 403 for a failed verification handshake.

        SECURITY: The response never says which part of the handshake was wrong.
        """
        logger.warning(f"Forbidden webhook access: {reason}")
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )
