"""
Conversation State Model - Persistent state machine storage.

WHY THIS EXISTS:
- In-memory state is lost on server restart
- Multi-worker deployments would race on a shared dict
- A quote conversation spans many messages and minutes

One row per conversation; a phone may have many historical rows but at
most one with is_active = true (enforced by a partial unique index).
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index, text
from sqlalchemy.types import JSON

from app.db.base import Base, utcnow


class ConversationState(Base):
    """
    Persists the quote conversation per WhatsApp sender.

    Schema:
        phone: WhatsApp sender id (E.164 digits)
        current_step: ConversationStep value (e.g., "dimension_input")
        order_data: JSON blob of OrderData (category, product, dimensions, ...)
        is_active: False once completed, reset, or swept as stale
        version: Bumped on every write; used for compare-and-swap saves

    Lifecycle:
        1. Created lazily on the first inbound message from a phone
        2. Updated on every step transition (version + 1)
        3. Deactivated on completion, explicit reset, or staleness sweep
        4. Purged after the inactive retention window
    """
    __tablename__ = "conversation_states"

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String(32), nullable=False, index=True)
    current_step = Column(String(32), nullable=False, default="start")
    order_data = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    last_message_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index(
            "uq_conversation_states_active_phone",
            "phone",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    def __repr__(self):
        return (
            f"<ConversationState phone={self.phone} step={self.current_step} "
            f"active={self.is_active} v{self.version}>"
        )
