"""
Delivery Ledger Model - one row per inbound WhatsApp message id.

The provider delivers webhooks at least once. This table is the single
source of truth for "did we already process / answer this message?".

Status machines:
    processing_status: pending → processing → processed | failed
    response_status:   not_sent | failed → sending → sent | failed
"""
from sqlalchemy import Column, Integer, String, DateTime, Text

from app.db.base import Base, utcnow


class ProcessingStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class ResponseStatus:
    NOT_SENT = "not_sent"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"

    # A response may be attempted only from these states
    SENDABLE = (NOT_SENT, FAILED)


class MessageStatus(Base):
    __tablename__ = "message_status"

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(String(128), unique=True, nullable=False, index=True)
    from_phone = Column(String(32), nullable=False, index=True)
    message_type = Column(String(32), nullable=False, default="text")

    processing_status = Column(String(16), nullable=False, default=ProcessingStatus.PENDING, index=True)
    response_status = Column(String(16), nullable=False, default=ResponseStatus.NOT_SENT, index=True)

    response_message_id = Column(String(128), nullable=True)
    response_type = Column(String(32), nullable=True)
    processing_error = Column(Text, nullable=True)
    response_error = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    conversation_id = Column(Integer, nullable=True)

    received_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    processed_at = Column(DateTime, nullable=True)
    responded_at = Column(DateTime, nullable=True)

    def can_send_response(self) -> bool:
        return self.response_status in ResponseStatus.SENDABLE

    def has_been_processed(self) -> bool:
        return self.processing_status == ProcessingStatus.PROCESSED

    def __repr__(self):
        return (
            f"<MessageStatus {self.message_id} processing={self.processing_status} "
            f"response={self.response_status}>"
        )
