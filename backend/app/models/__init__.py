from app.models.catalog import Category, Product, Material, Finish
from app.models.conversation_state import ConversationState
from app.models.message_status import MessageStatus
from app.models.quote import Quote

__all__ = ["Category", "Product", "Material", "Finish", "ConversationState", "MessageStatus", "Quote"]
