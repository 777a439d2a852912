"""
DELIVERY LEDGER - exactly-once processing and replies under at-least-once webhooks.

WhatsApp retries webhooks on timeouts and non-200s, and may deliver the same
message id several times (sometimes concurrently). The message_status table
is the single source of truth:

    begin_processing()   claim the message: pending|failed → processing
    claim_response()     gate before any send:  not_sent|failed → sending
    mark_response_sent() sending → sent         (the ONLY way to reach sent)
    mark_processed()     processing → processed

Both claims are conditional UPDATEs, so two workers racing on the same id
cannot both win. A bounded LRU in front caches only terminal facts
("processed", "sent") which can never be contradicted by the table.
"""
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, Hashable, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.db.base import utcnow
from app.db.session import SessionLocal, run_db
from app.models.message_status import MessageStatus, ProcessingStatus, ResponseStatus

logger = logging.getLogger(__name__)

PROCESSED = "processed"
SENT = "sent"


class LRUCache:
    """Small bounded LRU. maxsize=0 disables caching."""

    def __init__(self, maxsize: int):
        self.maxsize = maxsize
        self._data: "OrderedDict[Hashable, set]" = OrderedDict()

    def get(self, key: Hashable) -> Optional[set]:
        if key not in self._data:
            return None
        self._data.move_to_end(key)
        return self._data[key]

    def add_fact(self, key: Hashable, fact: str) -> None:
        if self.maxsize <= 0:
            return
        facts = self._data.pop(key, set())
        facts.add(fact)
        self._data[key] = facts
        while len(self._data) > self.maxsize:
            self._data.popitem(last=False)

    def has_fact(self, key: Hashable, fact: str) -> bool:
        facts = self.get(key)
        return bool(facts and fact in facts)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class DeliveryLedger:
    def __init__(self, session_factory=SessionLocal, cache_size: Optional[int] = None):
        self.session_factory = session_factory
        self.cache = LRUCache(settings.LEDGER_CACHE_SIZE if cache_size is None else cache_size)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def begin_processing(self, message_id: str, from_phone: str, message_type: str) -> bool:
        """
        Record the message and claim it for processing.

        Returns:
            True if this caller owns processing; False for a duplicate that is
            already processing or processed.
        """
        if self.cache.has_fact(message_id, PROCESSED):
            logger.info(f"[Ledger] Duplicate {message_id} (cached as processed)")
            return False
        claimed = await run_db(self._begin_processing, message_id, from_phone, message_type)
        if not claimed:
            logger.info(f"[Ledger] Duplicate {message_id} skipped")
        return claimed

    def _begin_processing(self, message_id: str, from_phone: str, message_type: str) -> bool:
        with self.session_factory() as db:
            exists = db.query(MessageStatus.id).filter(MessageStatus.message_id == message_id).first()
            if exists is None:
                db.add(MessageStatus(
                    message_id=message_id,
                    from_phone=from_phone,
                    message_type=message_type,
                    processing_status=ProcessingStatus.PENDING,
                    response_status=ResponseStatus.NOT_SENT,
                ))
                try:
                    db.commit()
                except IntegrityError:
                    # Concurrent delivery inserted it first; fall through to the claim
                    db.rollback()

            result = db.execute(
                update(MessageStatus)
                .where(
                    MessageStatus.message_id == message_id,
                    MessageStatus.processing_status.in_(
                        [ProcessingStatus.PENDING, ProcessingStatus.FAILED]
                    ),
                )
                .values(processing_status=ProcessingStatus.PROCESSING)
            )
            db.commit()
            return result.rowcount == 1

    async def mark_processed(self, message_id: str, conversation_id: Optional[int] = None) -> None:
        await run_db(self._update, message_id, {
            "processing_status": ProcessingStatus.PROCESSED,
            "processed_at": utcnow(),
            "conversation_id": conversation_id,
            "processing_error": None,
        })
        self.cache.add_fact(message_id, PROCESSED)

    async def mark_failed(self, message_id: str, error: str) -> None:
        await run_db(self._update, message_id, {
            "processing_status": ProcessingStatus.FAILED,
            "processing_error": (error or "")[:2000],
            "retry_count": MessageStatus.retry_count + 1,
        })

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    async def claim_response(self, message_id: str) -> bool:
        """
        Gate before sending: not_sent|failed → sending.

        Returns False when a reply is already sending or sent; the caller
        must not send.
        """
        if self.cache.has_fact(message_id, SENT):
            return False
        return await run_db(self._claim_response, message_id)

    def _claim_response(self, message_id: str) -> bool:
        with self.session_factory() as db:
            result = db.execute(
                update(MessageStatus)
                .where(
                    MessageStatus.message_id == message_id,
                    MessageStatus.response_status.in_(ResponseStatus.SENDABLE),
                )
                .values(response_status=ResponseStatus.SENDING)
            )
            db.commit()
            return result.rowcount == 1

    async def mark_response_sent(self, message_id: str, response_message_id: Optional[str], response_type: str) -> None:
        await run_db(self._update, message_id, {
            "response_status": ResponseStatus.SENT,
            "response_message_id": response_message_id,
            "response_type": response_type,
            "responded_at": utcnow(),
            "response_error": None,
        })
        self.cache.add_fact(message_id, SENT)

    async def mark_response_failed(self, message_id: str, error: str) -> None:
        await run_db(self._update, message_id, {
            "response_status": ResponseStatus.FAILED,
            "response_error": (error or "")[:2000],
        })

    async def has_response_been_sent(self, message_id: str) -> bool:
        if self.cache.has_fact(message_id, SENT):
            return True
        entry = await self.get(message_id)
        return entry is not None and entry.response_status == ResponseStatus.SENT

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------

    async def get(self, message_id: str) -> Optional[MessageStatus]:
        return await run_db(self._get, message_id)

    def _get(self, message_id: str) -> Optional[MessageStatus]:
        with self.session_factory() as db:
            return db.query(MessageStatus).filter(MessageStatus.message_id == message_id).first()

    def _update(self, message_id: str, values: Dict) -> None:
        with self.session_factory() as db:
            db.execute(update(MessageStatus).where(MessageStatus.message_id == message_id).values(**values))
            db.commit()

    def purge_expired(self, retention: timedelta) -> int:
        """Delete entries older than the retention window. Runs in the maintenance loop."""
        cutoff = utcnow() - retention
        with self.session_factory() as db:
            result = db.execute(delete(MessageStatus).where(MessageStatus.received_at < cutoff))
            db.commit()
        if result.rowcount:
            self.cache.clear()
            logger.info(f"[Ledger] Purged {result.rowcount} entries older than {retention}")
        return result.rowcount

    def statistics(self, since: Optional[datetime] = None) -> Dict[str, Dict[str, int]]:
        """Counts per processing and response status (last 24h by default)."""
        since = since or (utcnow() - timedelta(hours=24))
        with self.session_factory() as db:
            stats = {}
            for column in (MessageStatus.processing_status, MessageStatus.response_status):
                rows = (
                    db.query(column, func.count(MessageStatus.id))
                    .filter(MessageStatus.received_at >= since)
                    .group_by(column)
                    .all()
                )
                stats[column.key] = {status: count for status, count in rows}
        return stats
