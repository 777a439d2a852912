"""
Conversation Steps - closed set of states for the quote flow.

start → greeting_response → category_selection → product_selection →
dimension_input → material_selection → finish_selection → quantity_input →
quote_generation → completed

The six data-collection steps (category .. quantity) form the FLOW; the
bypass engine only ever moves forward along it.
"""
from enum import Enum
from typing import Optional


class ConversationStep(str, Enum):
    """Every state the controller can be in. Adding one requires a handler."""
    START = "start"
    GREETING_RESPONSE = "greeting_response"
    CATEGORY_SELECTION = "category_selection"
    PRODUCT_SELECTION = "product_selection"
    DIMENSION_INPUT = "dimension_input"
    MATERIAL_SELECTION = "material_selection"
    FINISH_SELECTION = "finish_selection"
    QUANTITY_INPUT = "quantity_input"
    QUOTE_GENERATION = "quote_generation"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ConversationStep":
        """Unknown or legacy step names restart the conversation."""
        try:
            return cls(value)
        except ValueError:
            return cls.START


# Data-collection order
FLOW_STEPS = (
    ConversationStep.CATEGORY_SELECTION,
    ConversationStep.PRODUCT_SELECTION,
    ConversationStep.DIMENSION_INPUT,
    ConversationStep.MATERIAL_SELECTION,
    ConversationStep.FINISH_SELECTION,
    ConversationStep.QUANTITY_INPUT,
)


def next_in_flow(step: ConversationStep) -> ConversationStep:
    """The step after `step` in collection order; the last one leads to the quote."""
    index = FLOW_STEPS.index(step)
    if index + 1 < len(FLOW_STEPS):
        return FLOW_STEPS[index + 1]
    return ConversationStep.QUOTE_GENERATION


# Keyword vocab for yes/no replies (button titles arrive as plain text too)
AFFIRMATIVE_WORDS = {
    "yes", "y", "yeah", "yep", "yup", "sure", "ok", "okay", "confirm",
    "please", "go ahead", "absolutely", "of course", "si", "get quote",
}
NEGATIVE_WORDS = {
    "no", "n", "nope", "nah", "not now", "cancel", "stop", "no thanks", "later",
}
GREETING_WORDS = {
    "hi", "hello", "hey", "hola", "good morning", "good afternoon", "good evening", "greetings",
}
RESET_COMMANDS = {"reset", "restart", "start over", "new quote"}
HELP_COMMANDS = {"help", "menu", "what can you do", "how does this work"}
CONTACT_COMMANDS = {"contact", "contact us", "contact info", "business hours", "opening hours", "talk to a human"}
