"""
Audit logging for conversation and quote events.

One JSON line per business event, emitted on a dedicated "audit" logger
so it can be shipped separately from application logs.

PRIVACY: Phone numbers are masked to their last four digits.
"""
import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")


def mask_phone(phone: Optional[str]) -> str:
    if not phone:
        return ""
    return f"***{phone[-4:]}"


class AuditLog:
    """Central audit logging for conversation lifecycle and quotes."""

    @staticmethod
    def _emit(event_type: str, phone: str, details: Optional[Dict[str, Any]] = None):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "phone": mask_phone(phone),
        }
        if details:
            log_entry.update(details)
        audit_logger.info(json.dumps(log_entry, default=str))

    @staticmethod
    def log_transition(phone: str, from_step: str, to_step: str, message_id: str):
        """
        Log a state machine transition.

        Usage:
            AuditLog.log_transition("15551234567", "start", "greeting_response", "wamid.X")
        """
        if from_step == to_step:
            return
        AuditLog._emit(
            "conversation.transition",
            phone,
            {"from": from_step, "to": to_step, "message_id": message_id},
        )

    @staticmethod
    def log_reset(phone: str, reason: str):
        AuditLog._emit("conversation.reset", phone, {"reason": reason})

    @staticmethod
    def log_quote(action: str, phone: str, quote_number: str, changes: Optional[Dict[str, Any]] = None):
        """
        Log quote lifecycle events ("priced", "pdf_sent").

        Usage:
            AuditLog.log_quote("priced", phone, "Q-20240101-AB12CD", {"tiers": 3})
        """
        details: Dict[str, Any] = {"quote_number": quote_number}
        if changes:
            details["changes"] = changes
        AuditLog._emit(f"quote.{action}", phone, details)

    @staticmethod
    def log_duplicate(phone: str, message_id: str, stage: str):
        """Log a rejected duplicate (redelivery or second response attempt)."""
        AuditLog._emit("message.duplicate", phone, {"message_id": message_id, "stage": stage})
