"""Conversation store: one active row per phone, CAS saves, reset, housekeeping."""
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from app.agent.conversation_state import ConversationStep
from app.core.exceptions import StaleConversationError
from app.db.base import utcnow
from app.models.conversation_state import ConversationState
from app.services.conversation_store import ConversationStore

PHONE = "15551230002"


@pytest.fixture
def store(session_factory):
    return ConversationStore(session_factory)


async def test_get_or_create_reuses_active_row(store):
    first = await store.get_or_create(PHONE)
    assert first.created
    assert first.step == ConversationStep.START
    assert first.version == 1

    again = await store.get_or_create(PHONE)
    assert not again.created
    assert again.id == first.id


async def test_save_bumps_version_and_persists_order(store):
    state = await store.get_or_create(PHONE)
    state.step = ConversationStep.QUANTITY_INPUT
    state.order.add_quantity(5000)
    await store.save(state)
    assert state.version == 2

    loaded = await store.get_active(PHONE)
    assert loaded.step == ConversationStep.QUANTITY_INPUT
    assert loaded.order.quantity == [5000]
    assert loaded.version == 2


async def test_concurrent_writer_loses_compare_and_swap(store):
    a = await store.get_or_create(PHONE)
    b = await store.get_active(PHONE)

    a.order.add_quantity(100)
    await store.save(a)

    b.order.add_quantity(200)
    with pytest.raises(StaleConversationError):
        await store.save(b)

    loaded = await store.get_active(PHONE)
    assert loaded.order.quantity == [100]


async def test_reset_deactivates_and_starts_fresh(store, session_factory):
    state = await store.get_or_create(PHONE)
    state.step = ConversationStep.MATERIAL_SELECTION
    state.order.add_quantity(5000)
    await store.save(state)

    fresh = await store.reset(PHONE)
    assert fresh.id != state.id
    assert fresh.step == ConversationStep.START
    assert fresh.order.quantity == []

    with session_factory() as db:
        rows = db.query(ConversationState).filter(ConversationState.phone == PHONE).all()
    assert len(rows) == 2
    assert sum(1 for r in rows if r.is_active) == 1

    # the old snapshot can no longer be saved
    with pytest.raises(StaleConversationError):
        await store.save(state)


async def test_complete_deactivates(store):
    state = await store.get_or_create(PHONE)
    await store.complete(state)
    assert not state.is_active
    assert await store.get_active(PHONE) is None


def test_unique_index_allows_only_one_active_row(session_factory):
    with session_factory() as db:
        db.add(ConversationState(phone=PHONE, current_step="start", order_data={}, is_active=True))
        db.commit()
        db.add(ConversationState(phone=PHONE, current_step="start", order_data={}, is_active=True))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
        db.add(ConversationState(phone=PHONE, current_step="completed", order_data={}, is_active=False))
        db.commit()


async def test_unknown_step_in_database_restarts(store, session_factory):
    state = await store.get_or_create(PHONE)
    with session_factory() as db:
        row = db.get(ConversationState, state.id)
        row.current_step = "awaiting_payment"
        db.commit()
    assert (await store.get_active(PHONE)).step == ConversationStep.START


async def test_deactivate_stale_and_purge_inactive(store, session_factory):
    stale = await store.get_or_create(PHONE)
    fresh = await store.get_or_create("15551230003")

    with session_factory() as db:
        row = db.get(ConversationState, stale.id)
        row.last_message_at = utcnow() - timedelta(hours=2)
        db.commit()

    assert store.deactivate_stale(timedelta(minutes=30)) == 1
    assert await store.get_active(PHONE) is None
    assert (await store.get_active("15551230003")).id == fresh.id

    with session_factory() as db:
        row = db.get(ConversationState, stale.id)
        row.completed_at = utcnow() - timedelta(days=2)
        db.commit()

    assert store.purge_inactive(timedelta(hours=24)) == 1
    with session_factory() as db:
        assert db.get(ConversationState, stale.id) is None
