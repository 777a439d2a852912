"""Create all tables. Run on app startup."""
from app.db.base import Base
from app.db.session import engine
from app.models import catalog, conversation_state, message_status, quote  # noqa: F401 - register models


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)
