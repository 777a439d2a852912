"""
CONVERSATION FLOW CONTROLLER

Purpose: Drive one inbound message through the quote state machine.

Per message (exactly ONE outbound reply):
1. Load (or create) the active conversation
2. Reset commands short-circuit everything; help and contact answer in place
3. NLU (time-bounded; failure = no entities)
4. Reconcile entities into the order
5. Step bypass: skip every step the order already satisfies
6. Persist, then dispatch to the step handler for the current step

A handler either REPLIES (sends the turn's one message and names the step
to wait in) or ADVANCES (names the next step without replying). After an
advance the bypass engine runs again and the next handler is dispatched,
so "4x5" for a W,H,G product lands back in dimension_input with a prompt
for G, and "4x5x2" goes straight on to materials.

The incoming text belongs to the step the customer was answering. Once the
flow has moved past that step in this turn, later handlers only prompt.

On any unexpected error the conversation is reset and the customer gets
at most one apology.
"""
import re
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from app.agent.conversation_state import (
    AFFIRMATIVE_WORDS,
    CONTACT_COMMANDS,
    ConversationStep,
    GREETING_WORDS,
    HELP_COMMANDS,
    NEGATIVE_WORDS,
    RESET_COMMANDS,
)
from app.core.audit import AuditLog
from app.core.config import settings
from app.core.exceptions import NLUError, PricingError, QuoteValidationError, StaleConversationError
from app.db.base import utcnow
from app.schemas.order import OrderData
from app.services.catalog import CatalogKind, CatalogLookup
from app.services.conversation_store import ConversationSnapshot, ConversationStore
from app.services.entity_extractor import find_dimension_spans, find_quantities
from app.services.entity_reconciler import (
    EntityReconciler,
    catalog_ref,
    category_ref,
    merge_dimension_text,
    product_ref,
)
from app.services.pdf_service import generate_quote_pdf
from app.services.pricing import PricingClient
from app.services.quote_service import QuoteService
from app.services.quote_validator import validate_quote
from app.services.responder import Responder
from app.services.step_bypass import dimensions_complete, next_step_after_bypass
from nlu.adapter import NLUAdapter
from nlu.schema import EntityKind, IntentName, NLUResult

logger = logging.getLogger(__name__)

APOLOGY = (
    "Sorry, something went wrong on our side. 🙏\n"
    "I've restarted our chat. Say *hi* whenever you're ready for a new quote."
)
PRICING_APOLOGY = (
    "Sorry, I couldn't get pricing right now. 😔\n"
    "Reply *Yes* in a few minutes to try again, or type *restart* to start over."
)
YES_NO_BUTTONS = [("yes", "Yes"), ("no", "No")]

# Finish answers may list several: "matte, spot uv" / "gloss and foil"
FINISH_SPLIT = r"\s*(?:,|;|/|&|\+|\band\b|\bwith\b)\s*"


@dataclass
class Turn:
    """Everything one inbound message carries through the handlers."""
    message_id: str
    phone: str
    text: str
    state: ConversationSnapshot
    responder: Responder
    nlu: NLUResult
    reply_id: Optional[str] = None
    consumed: bool = False
    dimensions_added: bool = False
    notices: List[str] = field(default_factory=list)

    @property
    def order(self) -> OrderData:
        return self.state.order

    def notice(self, message: str) -> None:
        self.notices.append(message)

    def compose(self, body: str) -> str:
        """Prefix pending notices ("couldn't find X") to the prompt."""
        if not self.notices:
            return body
        return "\n".join(self.notices) + "\n\n" + body


@dataclass
class StepResult:
    step: ConversationStep
    replied: bool = False
    finished: bool = False


def reply(step: ConversationStep) -> StepResult:
    return StepResult(step=step, replied=True)


def advance(step: ConversationStep) -> StepResult:
    return StepResult(step=step, replied=False)


def finish() -> StepResult:
    return StepResult(step=ConversationStep.COMPLETED, replied=True, finished=True)


StepHandler = Callable[[Turn], Awaitable[StepResult]]


def _normalize(text: str) -> str:
    return " ".join((text or "").lower().replace("!", " ").replace("?", " ").replace(".", " ").split())


def is_reset_command(text: str) -> bool:
    return _normalize(text) in RESET_COMMANDS


def is_help_command(text: str) -> bool:
    return _normalize(text) in HELP_COMMANDS


def is_contact_command(text: str) -> bool:
    return _normalize(text) in CONTACT_COMMANDS


def is_greeting(text: str) -> bool:
    normalized = _normalize(text)
    return any(normalized == g or normalized.startswith(g + " ") for g in GREETING_WORDS)


def help_text() -> str:
    return (
        f"🤖 Here's how *{settings.COMPANY_NAME}* can help:\n\n"
        "📝 *Get a quote*: tell me what you need, e.g. "
        "\"5000 stand up pouches, 4x6x2, PET, matte\". I'll only ask for what's missing.\n"
        "🎤 *Voice notes* work too.\n"
        "🔄 *restart*: start a new quote\n"
        "📞 *contact*: our hours and contact details\n\n"
        "Just carry on where we left off whenever you're ready."
    )


def contact_text() -> str:
    lines = [f"📞 *{settings.COMPANY_NAME}*", ""]
    if settings.BUSINESS_HOURS:
        lines.append(f"🏢 *Hours:* {settings.BUSINESS_HOURS}")
    if settings.CONTACT_PHONE:
        lines.append(f"📱 *Phone:* {settings.CONTACT_PHONE}")
    if settings.CONTACT_EMAIL:
        lines.append(f"📧 *Email:* {settings.CONTACT_EMAIL}")
    if settings.CONTACT_WEBSITE:
        lines.append(f"🌐 *Website:* {settings.CONTACT_WEBSITE}")
    lines += ["", "You can also keep chatting here and I'll pick up your quote where we left off."]
    return "\n".join(lines)


def _rows(kind: CatalogKind, records) -> List[Dict[str, str]]:
    return [
        {"id": f"{kind.value}:{r.external_id}", "title": r.name, "description": r.description or ""}
        for r in records
    ]


def _format_money(value: float) -> str:
    return f"${value:,.0f}"


class ConversationFlowController:
    # Upper bound on advance hops in one turn; each hop moves forward or
    # back-routes once, so the real maximum is far lower
    MAX_HOPS = 2 * len(ConversationStep)

    def __init__(
        self,
        store: ConversationStore,
        catalog: CatalogLookup,
        nlu: NLUAdapter,
        reconciler: EntityReconciler,
        pricing: PricingClient,
        quotes: QuoteService,
        nlu_timeout: Optional[float] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.nlu = nlu
        self.reconciler = reconciler
        self.pricing = pricing
        self.quotes = quotes
        self.nlu_timeout = nlu_timeout or settings.NLU_TIMEOUT_SECONDS

        self.handlers: Dict[ConversationStep, StepHandler] = {
            ConversationStep.START: self._handle_start,
            ConversationStep.GREETING_RESPONSE: self._handle_greeting_response,
            ConversationStep.CATEGORY_SELECTION: self._handle_category_selection,
            ConversationStep.PRODUCT_SELECTION: self._handle_product_selection,
            ConversationStep.DIMENSION_INPUT: self._handle_dimension_input,
            ConversationStep.MATERIAL_SELECTION: self._handle_material_selection,
            ConversationStep.FINISH_SELECTION: self._handle_finish_selection,
            ConversationStep.QUANTITY_INPUT: self._handle_quantity_input,
            ConversationStep.QUOTE_GENERATION: self._handle_quote_generation,
            ConversationStep.COMPLETED: self._handle_completed,
        }
        missing = set(ConversationStep) - set(self.handlers)
        if missing:
            raise RuntimeError(f"No handler for steps: {sorted(s.value for s in missing)}")

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle_text(
        self,
        message_id: str,
        phone: str,
        text: str,
        responder: Responder,
        reply_id: Optional[str] = None,
    ) -> ConversationSnapshot:
        """
        Process one inbound message and send its single reply.

        Raises:
            StaleConversationError: another worker saved this conversation
                first; the caller may retry with fresh state if nothing was sent.
        """
        state = await self.store.get_or_create(phone)
        turn = Turn(
            message_id=message_id,
            phone=phone,
            text=(text or "").strip(),
            state=state,
            responder=responder,
            nlu=NLUResult.empty(),
            reply_id=reply_id,
        )
        entry_step = state.step

        try:
            if is_reset_command(turn.text):
                await self._restart(turn, reason="command")
            elif is_help_command(turn.text):
                await turn.responder.text(help_text())
            elif is_contact_command(turn.text):
                await turn.responder.text(contact_text())
            else:
                await self._process(turn)
        except StaleConversationError:
            raise
        except Exception as e:
            await self._recover(turn, e)
            return turn.state

        AuditLog.log_transition(phone, entry_step.value, turn.state.step.value, message_id)
        return turn.state

    async def _process(self, turn: Turn) -> None:
        state = turn.state
        entry_step = state.step

        # Button/list replies are unambiguous; they never go through NLU
        if turn.reply_id is None:
            turn.nlu = await self._extract(turn.text, entry_step)
            if entry_step == ConversationStep.DIMENSION_INPUT and not find_dimension_spans(turn.text):
                # A bare "300 200 100" answers the size question; none of it is a quantity
                turn.nlu.entities.pop(EntityKind.QUANTITY, None)
            if turn.nlu.has_intent(IntentName.RESET, min_confidence=0.8) and not turn.nlu.has_entities():
                await self._restart(turn, reason="intent")
                return

        # Entities never change an order that is already being quoted
        if entry_step not in (ConversationStep.QUOTE_GENERATION, ConversationStep.COMPLETED):
            before = len(state.order.dimensions)
            state.order = await self.reconciler.reconcile(turn.nlu.entities, state.order)
            turn.dimensions_added = len(state.order.dimensions) > before

        step = entry_step
        if step in (ConversationStep.START, ConversationStep.GREETING_RESPONSE) and state.order.has_order_details():
            state.order.wants_quote = True
            step = ConversationStep.CATEGORY_SELECTION
        step = next_step_after_bypass(step, state.order)

        if step != entry_step:
            logger.info(f"[Flow] {turn.phone[-4:]}: {entry_step.value} -> {step.value} (bypass)")
            turn.consumed = True
        state.step = step
        await self.store.save(state)

        await self._run(turn)

    async def _run(self, turn: Turn) -> None:
        """Dispatch handlers until one of them replies."""
        state = turn.state
        for _ in range(self.MAX_HOPS):
            step = state.step
            result = await self.handlers[step](turn)

            if result.finished:
                state.step = ConversationStep.COMPLETED
                state.order.completed = True
                await self.store.save(state)
                await self.store.complete(state)
                logger.info(f"[Flow] Conversation #{state.id} completed")
                return

            next_step = result.step
            if not result.replied:
                next_step = next_step_after_bypass(next_step, state.order)
            state.step = next_step
            await self.store.save(state)

            if result.replied or turn.responder.replied:
                return
            logger.debug(f"[Flow] {step.value} -> {next_step.value} without reply")
            turn.consumed = True

        raise RuntimeError(f"Step handlers did not reply within {self.MAX_HOPS} hops (at {state.step.value})")

    async def _extract(self, text: str, step: ConversationStep) -> NLUResult:
        if not text:
            return NLUResult.empty()
        try:
            return await asyncio.wait_for(self.nlu.process(text, step.value), timeout=self.nlu_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Flow] NLU timed out after {self.nlu_timeout}s; continuing without entities")
        except NLUError as e:
            logger.warning(f"[Flow] NLU failed ({e}); continuing without entities")
        except Exception as e:
            logger.error(f"[Flow] NLU crashed: {e}", exc_info=True)
        return NLUResult.empty()

    async def _restart(self, turn: Turn, reason: str) -> None:
        turn.state = await self.store.reset(turn.phone)
        AuditLog.log_reset(turn.phone, reason)
        turn.consumed = True
        await self._run(turn)

    async def _recover(self, turn: Turn, error: Exception) -> None:
        logger.error(
            f"[Flow] Error at step {turn.state.step.value} for {turn.phone[-4:]} "
            f"(message {turn.message_id}): {error}",
            exc_info=True,
        )
        try:
            turn.state = await self.store.reset(turn.phone)
            AuditLog.log_reset(turn.phone, "error")
        except Exception as reset_error:
            logger.error(f"[Flow] Could not reset conversation for {turn.phone[-4:]}: {reset_error}")

        if await turn.responder.already_replied():
            return
        try:
            await turn.responder.text(APOLOGY)
        except Exception as send_error:
            logger.error(f"[Flow] Apology not delivered to {turn.phone[-4:]}: {send_error}")

    # ------------------------------------------------------------------
    # Input helpers
    # ------------------------------------------------------------------

    def _answer(self, turn: Turn) -> Optional[bool]:
        """Yes/no from a button id, the text itself, or an NLU intent."""
        if turn.reply_id in ("yes", "no"):
            return turn.reply_id == "yes"
        normalized = _normalize(turn.text)
        if normalized in AFFIRMATIVE_WORDS or normalized.startswith(("yes ", "yes,", "sure ", "ok ")):
            return True
        if normalized in NEGATIVE_WORDS or normalized.startswith(("no ", "no,")):
            return False
        if turn.nlu.has_intent(IntentName.AFFIRM):
            return True
        if turn.nlu.has_intent(IntentName.DENY):
            return False
        return None

    def _selected_external_id(self, turn: Turn, kind: CatalogKind) -> Optional[int]:
        """External id from a list reply such as "material:301"."""
        if not turn.reply_id:
            return None
        prefix, _, value = turn.reply_id.partition(":")
        if prefix != kind.value or not value.isdigit():
            return None
        return int(value)

    async def _lookup(self, turn: Turn, kind: CatalogKind, scope: Optional[int], text: Optional[str] = None):
        external_id = self._selected_external_id(turn, kind)
        if external_id is not None:
            return await self.catalog.get_by_external_id(kind, external_id, scope)
        text = turn.text if text is None else text
        finders = {
            CatalogKind.CATEGORY: lambda: self.catalog.find_category(text),
            CatalogKind.PRODUCT: lambda: self.catalog.find_product(text, scope),
            CatalogKind.MATERIAL: lambda: self.catalog.find_material(text, scope),
            CatalogKind.FINISH: lambda: self.catalog.find_finish(text, scope),
        }
        return await finders[kind]()

    @staticmethod
    def _scope(order: OrderData) -> Optional[int]:
        return order.selected_category.id if order.selected_category else None

    # ------------------------------------------------------------------
    # Step handlers
    # ------------------------------------------------------------------

    async def _handle_start(self, turn: Turn) -> StepResult:
        if turn.order.wants_quote:
            return advance(ConversationStep.CATEGORY_SELECTION)
        hello = "Hi there! 👋" if is_greeting(turn.text) or turn.nlu.has_intent(IntentName.GREETING) else "Hello! 👋"
        await turn.responder.buttons(
            turn.compose(
                f"{hello} Welcome to *{settings.COMPANY_NAME}*.\n\n"
                "I can prepare an instant price quote for your custom packaging.\n"
                "Would you like a quote?"
            ),
            [("yes", "Yes, get a quote"), ("no", "No, thanks")],
        )
        return reply(ConversationStep.GREETING_RESPONSE)

    async def _handle_greeting_response(self, turn: Turn) -> StepResult:
        answer = self._answer(turn)
        if answer is None and turn.nlu.has_intent(IntentName.QUOTE_REQUEST):
            answer = True

        if answer:
            turn.order.wants_quote = True
            return advance(ConversationStep.CATEGORY_SELECTION)
        if answer is False:
            await turn.responder.text(
                "No problem! 😊 Message us any time you need a quote."
            )
            return finish()

        await turn.responder.buttons(
            "Would you like a price quote? Just tap a button below.",
            [("yes", "Yes, get a quote"), ("no", "No, thanks")],
        )
        return reply(ConversationStep.GREETING_RESPONSE)

    async def _handle_category_selection(self, turn: Turn) -> StepResult:
        order = turn.order
        if not turn.consumed and (turn.text or turn.reply_id):
            category = await self._lookup(turn, CatalogKind.CATEGORY, None)
            if category is not None:
                if order.selected_product is not None and order.selected_product.category_id not in (None, category.id):
                    logger.info(
                        f"[Flow] {turn.phone[-4:]}: {order.selected_product.name} is not in {category.name}; "
                        "clearing product details"
                    )
                    order.clear_product()
                order.selected_category = category_ref(category)
                order.requested_category = None
                return advance(ConversationStep.PRODUCT_SELECTION)
            turn.notice(f"Sorry, I couldn't find a category called \"{turn.text}\".")

        categories = await self.catalog.list_active(CatalogKind.CATEGORY)
        if not categories:
            await turn.responder.text(turn.compose("Which type of packaging do you need? Please type its name."))
        else:
            await turn.responder.list(
                turn.compose("What type of packaging do you need? 📦\nPick one below or type its name."),
                "Categories",
                [{"title": "Categories", "rows": _rows(CatalogKind.CATEGORY, categories)}],
            )
        return reply(ConversationStep.CATEGORY_SELECTION)

    async def _handle_product_selection(self, turn: Turn) -> StepResult:
        order = turn.order
        scope = self._scope(order)

        if not turn.consumed and (turn.text or turn.reply_id):
            product = await self._lookup(turn, CatalogKind.PRODUCT, scope)
            if product is None and order.requested_product_name:
                product = await self.catalog.find_product(order.requested_product_name, scope)
            if product is not None:
                order.selected_product = product_ref(product)
                order.requested_product_name = None
                if order.selected_category is None:
                    category = await self.catalog.get_category(product.category_id)
                    if category is not None:
                        order.selected_category = category_ref(category)
                        order.requested_category = None
                # "stand up pouch 4x6x2" in one answer; the text is used up either way
                for span_text, _ in find_dimension_spans(turn.text):
                    merge_dimension_text(order, span_text)
                turn.dimensions_added = True
                return advance(ConversationStep.DIMENSION_INPUT)
            turn.notice(f"Sorry, I couldn't find a product called \"{turn.text}\".")

        if order.requested_category and order.selected_category is None:
            turn.notice(f"We don't carry \"{order.requested_category}\" as a category, but here is what we make.")

        products = await self.catalog.list_active(CatalogKind.PRODUCT, scope)
        label = f" {order.selected_category.name}" if order.selected_category else ""
        if not products:
            await turn.responder.text(turn.compose(f"Which{label} product do you need? Please type its name."))
        else:
            await turn.responder.list(
                turn.compose(f"Great! Which{label} product would you like? 🛍️"),
                "Products",
                [{"title": "Products", "rows": _rows(CatalogKind.PRODUCT, products)}],
            )
        return reply(ConversationStep.PRODUCT_SELECTION)

    async def _handle_dimension_input(self, turn: Turn) -> StepResult:
        order = turn.order

        if order.selected_product is None:
            # Free-text product/category names that matched nothing: ask again
            if order.requested_product_name:
                turn.notice(f"Sorry, I couldn't find a product called \"{order.requested_product_name}\".")
                order.requested_product_name = None
            if order.selected_category is None:
                if order.requested_category:
                    turn.notice(f"Sorry, I couldn't find a category called \"{order.requested_category}\".")
                    order.requested_category = None
                return advance(ConversationStep.CATEGORY_SELECTION)
            return advance(ConversationStep.PRODUCT_SELECTION)

        if dimensions_complete(order):
            return advance(ConversationStep.MATERIAL_SELECTION)

        if not turn.consumed and not turn.dimensions_added and turn.text:
            spans = find_dimension_spans(turn.text)
            source = " ".join(span for span, _ in spans) if spans else turn.text
            added = merge_dimension_text(order, source, fill_missing=bool(order.dimensions))
            if dimensions_complete(order):
                return advance(ConversationStep.MATERIAL_SELECTION)
            if not added:
                turn.notice("Sorry, I couldn't read those measurements.")

        product = order.selected_product
        specs = product.required_dimensions
        missing = order.missing_dimensions()
        unit = specs[0].unit if specs else "inches"
        lines = [f"Please send the size of your *{product.name}* in {unit}."]
        if order.dimensions:
            lines.append(f"Got: {order.describe_dimensions()}. Still needed: *{', '.join(missing)}*.")
        else:
            lines.append(f"Needed: *{' x '.join(s.name for s in specs if s.is_required)}*")
            example = "x".join(str(n) for n in (4, 6, 2, 3)[:len(missing)])
            lines.append(f"For example: {example}")
        await turn.responder.text(turn.compose("\n".join(lines)))
        return reply(ConversationStep.DIMENSION_INPUT)

    async def _handle_material_selection(self, turn: Turn) -> StepResult:
        order = turn.order
        scope = self._scope(order)
        if order.selected_material is not None:
            return advance(ConversationStep.FINISH_SELECTION)

        if not turn.consumed and (turn.text or turn.reply_id):
            material = await self._lookup(turn, CatalogKind.MATERIAL, scope)
            if material is not None:
                order.selected_material = catalog_ref(material)
                return advance(ConversationStep.FINISH_SELECTION)
            turn.notice(f"Sorry, \"{turn.text}\" isn't one of our materials for this product.")

        materials = await self.catalog.list_active(CatalogKind.MATERIAL, scope)
        if not materials:
            await turn.responder.text(turn.compose("Which material would you like? Please type its name."))
        else:
            await turn.responder.list(
                turn.compose("Which material would you like? 🧱"),
                "Materials",
                [{"title": "Materials", "rows": _rows(CatalogKind.MATERIAL, materials)}],
            )
        return reply(ConversationStep.MATERIAL_SELECTION)

    async def _handle_finish_selection(self, turn: Turn) -> StepResult:
        order = turn.order
        scope = self._scope(order)
        if order.selected_finish:
            return advance(ConversationStep.QUANTITY_INPUT)

        if not turn.consumed and (turn.text or turn.reply_id):
            matched = []
            if turn.reply_id:
                record = await self._lookup(turn, CatalogKind.FINISH, scope)
                matched = [record] if record is not None else []
            else:
                for part in [p for p in re.split(FINISH_SPLIT, turn.text, flags=re.IGNORECASE) if p]:
                    record = await self.catalog.find_finish(part, scope)
                    if record is not None:
                        matched.append(record)
            for record in matched:
                order.add_finish(catalog_ref(record))
            if order.selected_finish:
                return advance(ConversationStep.QUANTITY_INPUT)
            turn.notice(f"Sorry, \"{turn.text}\" isn't one of our finishes for this product.")

        finishes = await self.catalog.list_active(CatalogKind.FINISH, scope)
        if not finishes:
            await turn.responder.text(turn.compose("Which finish would you like? Please type its name."))
        else:
            await turn.responder.list(
                turn.compose("Which finish would you like? ✨\nYou can type several, e.g. \"matte, spot uv\"."),
                "Finishes",
                [{"title": "Finishes", "rows": _rows(CatalogKind.FINISH, finishes)}],
            )
        return reply(ConversationStep.FINISH_SELECTION)

    async def _handle_quantity_input(self, turn: Turn) -> StepResult:
        order = turn.order

        if not turn.consumed and turn.text:
            found = find_quantities(turn.text)
            for quantity in found:
                order.add_quantity(quantity)
            if not found and not order.quantity:
                turn.notice("Sorry, I couldn't read a quantity.")

        if order.quantity:
            validation = validate_quote(order)
            if not validation.is_valid:
                logger.info(f"[Flow] Quantity captured but still {validation.describe()}")
                return advance(validation.owning_step())
            return advance(ConversationStep.QUOTE_GENERATION)

        await turn.responder.text(turn.compose(
            "How many pieces do you need? 🔢\n"
            "You can ask for several quantities to compare, e.g. *1000, 2500, 5000*"
        ))
        return reply(ConversationStep.QUANTITY_INPUT)

    async def _handle_quote_generation(self, turn: Turn) -> StepResult:
        order = turn.order
        if order.pricing_done:
            return await self._offer_pdf(turn)
        if order.quote_acknowledged and not turn.consumed:
            return await self._price_quote(turn)
        return await self._confirm_summary(turn)

    async def _handle_completed(self, turn: Turn) -> StepResult:
        # A completed conversation is inactive; a new message starts over
        turn.order.wants_quote = False
        return await self._handle_start(turn)

    # ------------------------------------------------------------------
    # Quote phases
    # ------------------------------------------------------------------

    def _route_missing(self, turn: Turn, missing: List[str], step: ConversationStep) -> StepResult:
        turn.order.quote_acknowledged = False
        if step == ConversationStep.CATEGORY_SELECTION:
            # An unresolved category name still satisfies the category step
            turn.order.requested_category = None
        turn.notice(f"Almost there! I still need: {', '.join(missing)}.")
        return advance(step)

    async def _confirm_summary(self, turn: Turn) -> StepResult:
        order = turn.order
        validation = validate_quote(order)
        if not validation.is_valid:
            return self._route_missing(turn, validation.describe(), validation.owning_step())

        quantities = ", ".join(f"{q:,}" for q in order.quantity)
        summary = (
            "Here's your order summary 📋\n\n"
            f"*Product:* {order.selected_product.name}\n"
            f"*Size:* {order.describe_dimensions()}\n"
            f"*Material:* {order.selected_material.name}\n"
            f"*Finish:* {', '.join(f.name for f in order.selected_finish)}\n"
            f"*Quantity:* {quantities}\n\n"
            "Shall I get your price?"
        )
        await turn.responder.buttons(turn.compose(summary), [("yes", "Yes, get price"), ("no", "No, thanks")])
        order.quote_acknowledged = True
        return reply(ConversationStep.QUOTE_GENERATION)

    async def _price_quote(self, turn: Turn) -> StepResult:
        order = turn.order
        answer = self._answer(turn)
        if answer is False:
            await turn.responder.text("No problem! Your details are cleared. Message us any time for a new quote. 👋")
            return finish()
        if answer is None:
            await turn.responder.buttons("Shall I get your price? Please tap *Yes* or *No*.", YES_NO_BUTTONS)
            return reply(ConversationStep.QUOTE_GENERATION)

        validation = validate_quote(order)
        if not validation.is_valid:
            return self._route_missing(turn, validation.describe(), validation.owning_step())

        try:
            pricing = await self.pricing.get_pricing(order)
        except QuoteValidationError as e:
            logger.warning(f"[Flow] Pricing refused incomplete order for {turn.phone[-4:]}: {e}")
            return self._route_missing(turn, e.missing_fields, validation.owning_step())
        except PricingError as e:
            logger.error(
                f"[Flow] Pricing failed for {turn.phone[-4:]} "
                f"(product={order.selected_product.external_id}, status={e.status_code}): {e}"
            )
            await turn.responder.text(PRICING_APOLOGY)
            return reply(ConversationStep.QUOTE_GENERATION)

        order.pricing_data = pricing
        order.pricing_done = True
        quote = await self.quotes.create(order, turn.phone, turn.state.id)
        order.quote_number = quote.quote_number
        AuditLog.log_quote("priced", turn.phone, quote.quote_number, {"tiers": len(pricing.tiers)})

        lines = [f"💰 *Your quote* ({quote.quote_number})", ""]
        for tier in pricing.tiers:
            lines.append(f"• {tier.quantity:,} pcs: ${tier.unit_cost:.3f}/pc = *{_format_money(tier.total)}*")
        lines += ["", "Would you like a PDF copy of this quote?"]
        await turn.responder.buttons("\n".join(lines), [("yes", "Yes, send PDF"), ("no", "No, thanks")])
        return reply(ConversationStep.QUOTE_GENERATION)

    async def _offer_pdf(self, turn: Turn) -> StepResult:
        order = turn.order
        answer = self._answer(turn)
        if answer is None:
            await turn.responder.buttons("Would you like a PDF copy of your quote?", YES_NO_BUTTONS)
            return reply(ConversationStep.QUOTE_GENERATION)

        if answer:
            issued_at = utcnow()
            quote = await self.quotes.get(order.quote_number) if order.quote_number else None
            valid_until = quote.valid_until if quote is not None else issued_at
            loop = asyncio.get_running_loop()
            pdf = await loop.run_in_executor(
                None,
                generate_quote_pdf,
                order,
                order.pricing_data,
                order.quote_number or "DRAFT",
                turn.phone,
                issued_at,
                valid_until,
            )
            await turn.responder.document(
                f"{order.quote_number or 'quote'}.pdf",
                pdf,
                caption="Here's your quote. Thank you for choosing us! 🙏",
            )
            if order.quote_number:
                await self.quotes.mark_pdf_sent(order.quote_number)
                AuditLog.log_quote("pdf_sent", turn.phone, order.quote_number)
            return finish()

        await turn.responder.text("Thank you! 🙏 Message us any time for a new quote.")
        return finish()
