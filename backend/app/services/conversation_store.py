"""
CONVERSATION STORE

Persists the per-phone quote conversation: current step + OrderData.

Invariants:
- At most one active conversation per phone (partial unique index)
- A new conversation is created only after the previous one is deactivated
- Every save is a compare-and-swap on `version`; losing the race raises
  StaleConversationError instead of silently overwriting another worker
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from app.agent.conversation_state import ConversationStep
from app.core.exceptions import StaleConversationError
from app.db.base import utcnow
from app.db.session import SessionLocal, run_db
from app.models.conversation_state import ConversationState
from app.schemas.order import OrderData

logger = logging.getLogger(__name__)


@dataclass
class ConversationSnapshot:
    """Detached, typed view of one conversation row."""
    id: int
    phone: str
    step: ConversationStep
    order: OrderData
    version: int
    is_active: bool = True
    last_message_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created: bool = field(default=False, compare=False)

    @classmethod
    def from_row(cls, row: ConversationState, created: bool = False) -> "ConversationSnapshot":
        return cls(
            id=row.id,
            phone=row.phone,
            step=ConversationStep.parse(row.current_step),
            order=OrderData.model_validate(row.order_data or {}),
            version=row.version,
            is_active=row.is_active,
            last_message_at=row.last_message_at,
            completed_at=row.completed_at,
            created=created,
        )


class ConversationStore:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Async API (used by the flow controller)
    # ------------------------------------------------------------------

    async def get_or_create(self, phone: str) -> ConversationSnapshot:
        return await run_db(self._get_or_create, phone)

    async def save(self, state: ConversationSnapshot) -> ConversationSnapshot:
        return await run_db(self._save, state)

    async def complete(self, state: ConversationSnapshot) -> None:
        await run_db(self._deactivate, state.phone)
        state.is_active = False

    async def reset(self, phone: str) -> ConversationSnapshot:
        return await run_db(self._reset, phone)

    async def get_active(self, phone: str) -> Optional[ConversationSnapshot]:
        return await run_db(self._get_active, phone)

    # ------------------------------------------------------------------
    # Sync implementations (thread pool)
    # ------------------------------------------------------------------

    def _get_active(self, phone: str) -> Optional[ConversationSnapshot]:
        with self.session_factory() as db:
            row = (
                db.query(ConversationState)
                .filter(ConversationState.phone == phone, ConversationState.is_active.is_(True))
                .first()
            )
            return ConversationSnapshot.from_row(row) if row else None

    def _get_or_create(self, phone: str) -> ConversationSnapshot:
        existing = self._get_active(phone)
        if existing is not None:
            return existing

        with self.session_factory() as db:
            row = ConversationState(
                phone=phone,
                current_step=ConversationStep.START.value,
                order_data=OrderData().model_dump(mode="json"),
                is_active=True,
                version=1,
                last_message_at=utcnow(),
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                # Another worker created the active row first
                db.rollback()
                logger.info(f"[ConversationStore] Lost create race for {phone}; re-reading")
                existing = self._get_active(phone)
                if existing is None:
                    raise
                return existing
            db.refresh(row)
            logger.info(f"[ConversationStore] Started conversation #{row.id} for {phone}")
            return ConversationSnapshot.from_row(row, created=True)

    def _save(self, state: ConversationSnapshot) -> ConversationSnapshot:
        """Compare-and-swap on (id, is_active, version)."""
        now = utcnow()
        with self.session_factory() as db:
            result = db.execute(
                update(ConversationState)
                .where(
                    ConversationState.id == state.id,
                    ConversationState.is_active.is_(True),
                    ConversationState.version == state.version,
                )
                .values(
                    current_step=state.step.value,
                    order_data=state.order.model_dump(mode="json"),
                    version=state.version + 1,
                    last_message_at=now,
                )
            )
            db.commit()
        if result.rowcount != 1:
            raise StaleConversationError(state.phone, state.version)
        state.version += 1
        state.last_message_at = now
        return state

    def _deactivate(self, phone: str) -> int:
        with self.session_factory() as db:
            result = db.execute(
                update(ConversationState)
                .where(ConversationState.phone == phone, ConversationState.is_active.is_(True))
                .values(is_active=False, completed_at=utcnow(), version=ConversationState.version + 1)
            )
            db.commit()
            return result.rowcount

    def _reset(self, phone: str) -> ConversationSnapshot:
        deactivated = self._deactivate(phone)
        logger.info(f"[ConversationStore] Reset {phone} (deactivated {deactivated})")
        return self._get_or_create(phone)

    # ------------------------------------------------------------------
    # Housekeeping (maintenance loop, already on the thread pool)
    # ------------------------------------------------------------------

    def deactivate_stale(self, older_than: timedelta) -> int:
        """Deactivate active conversations with no message for `older_than`."""
        now = utcnow()
        with self.session_factory() as db:
            result = db.execute(
                update(ConversationState)
                .where(
                    ConversationState.is_active.is_(True),
                    ConversationState.last_message_at < now - older_than,
                )
                .values(is_active=False, completed_at=now, version=ConversationState.version + 1)
            )
            db.commit()
        if result.rowcount:
            logger.info(f"[ConversationStore] Deactivated {result.rowcount} stale conversations")
        return result.rowcount

    def purge_inactive(self, older_than: timedelta) -> int:
        cutoff = utcnow() - older_than
        with self.session_factory() as db:
            result = db.execute(
                delete(ConversationState).where(
                    ConversationState.is_active.is_(False),
                    ConversationState.completed_at < cutoff,
                )
            )
            db.commit()
        if result.rowcount:
            logger.info(f"[ConversationStore] Purged {result.rowcount} inactive conversations")
        return result.rowcount
