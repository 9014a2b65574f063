"""
State Machine for the Order Flow.

One call to ``OrderStateMachine.handle()`` processes one customer message:
load (or create) the customer's open cart, run the handler for its current
step, persist the result and return the reply text.

Steps advance browsing -> collecting_items -> collecting_details ->
confirming_order -> awaiting_payment. A cancel keyword, a declined
confirmation, a failed payment or a payment the customer never received
parks the cart at completed; a cart with an unknown step is reset to
browsing.

Nothing here raises to the caller. Store failures fall back to the
knowledge-base reply, adapter failures become an apology in Indonesian.
Every write passes the version it read so a concurrent delivery for the same
customer surfaces as CartConflictError instead of a lost update.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence
import logging

from ..errors import CartStoreError, MessagingError
from ..schemas.ordering import Cart, CartItem
from . import message_builder
from .parsers import classify, parse_details, parse_items, validate_order, validate_phone_number
from .parsers.constants import AFFIRM_KEYWORDS, CANCEL_KEYWORDS, PROCEED_KEYWORDS
from .phases import CartStep, is_forward

logger = logging.getLogger(__name__)


@dataclass
class OrderReply:
    """
    Result of one order step.

    ``text`` is empty when there is nothing to send: either the message was
    not about ordering, or the machine already delivered its messages itself
    (``sent_directly``). ``used_fallback`` means the cart could not be used
    and the text came from the knowledge base.
    """
    text: str
    step: str
    sent_directly: bool = False
    used_fallback: bool = False


def contains_keyword(message: str, keywords: Sequence[str]) -> bool:
    lower = message.lower()
    return any(keyword in lower for keyword in keywords)


class OrderStateMachine:
    """
    Usage:
        machine = OrderStateMachine(store, catalog, payments, messaging, notifier, qr_storage, knowledge)
        reply = machine.handle(profile, customer.id, customer.whatsapp_number, "menu")

    Collaborators are duck-typed: ``store`` is a CartStore, ``catalog`` a
    ProductCatalog, ``payments`` anything with ``create_payment()``,
    ``messaging`` anything with ``send()``/``send_with_image()``.
    ``knowledge`` may be None, in which case fallbacks return empty text and
    leave the answer to the caller.
    """

    def __init__(self, store, catalog, payments, messaging, notifier, qr_storage, knowledge=None):
        self.store = store
        self.catalog = catalog
        self.payments = payments
        self.messaging = messaging
        self.notifier = notifier
        self.qr_storage = qr_storage
        self.knowledge = knowledge

        self._handlers = {
            CartStep.BROWSING: self._handle_browsing,
            CartStep.COLLECTING_ITEMS: self._handle_collecting_items,
            CartStep.COLLECTING_DETAILS: self._handle_collecting_details,
            CartStep.CONFIRMING_ORDER: self._handle_confirming_order,
            CartStep.AWAITING_PAYMENT: self._handle_awaiting_payment,
        }

    def handle(
        self,
        profile: Any,
        customer_id: str,
        customer_number: str,
        message: str,
        customer_name: Optional[str] = None,
        history: Sequence[Dict[str, Any]] = (),
    ) -> OrderReply:
        """
        Process one customer message against their open cart.

        Args:
            profile: The tenant's BusinessProfile
            customer_id: WhatsAppUser id
            customer_number: Customer's WhatsApp number, for direct sends
            message: Raw message text
            customer_name: Known customer name, for the knowledge-base fallback
            history: Recent conversation, oldest first, for the fallback
        """
        tenant_id = profile.user_id

        if contains_keyword(message, CANCEL_KEYWORDS):
            self.store.clear(tenant_id, customer_id)
            return OrderReply(message_builder.CANCELLED, CartStep.COMPLETED.value)

        cart = self._load_cart(tenant_id, customer_id)
        if cart is None:
            return self._fallback(profile, message, customer_name, history, CartStep.BROWSING.value)

        step = CartStep.parse(cart.step)
        handler = self._handlers.get(step)
        try:
            if handler is None:
                return self._handle_unknown_step(cart)
            return handler(cart, profile, customer_number, message)
        except CartStoreError as e:
            logger.error("Order step %s failed for cart %s: %s", cart.step, cart.id, e)
            return self._fallback(profile, message, customer_name, history, cart.step)

    # -------------------------------------------------------------------------
    # Cart Access
    # -------------------------------------------------------------------------

    def _load_cart(self, tenant_id: str, customer_id: str) -> Optional[Cart]:
        try:
            return self.store.get_or_create(tenant_id, customer_id)
        except CartStoreError as e:
            logger.error("Error loading cart, retrying with a fresh one: %s", e)
        try:
            return self.store.create(tenant_id, customer_id)
        except CartStoreError as e:
            logger.error("Could not create cart, bypassing order flow: %s", e)
            return None

    def _advance(self, cart: Cart, step: CartStep, **fields) -> Cart:
        """Write ``fields`` and move to ``step``; never moves backwards."""
        current = CartStep.parse(cart.step)
        if current is not None and not is_forward(current, step):
            logger.error("Refusing to move cart %s back from %s to %s", cart.id, current.value, step.value)
            step = current
        return self.store.update(cart.id, expected_version=cart.version, step=step.value, **fields)

    def _fallback(self, profile, message, customer_name, history, step: str) -> OrderReply:
        if self.knowledge is None:
            return OrderReply("", step, used_fallback=True)
        text = self.knowledge.answer(profile, message, customer_name=customer_name, history=history)
        return OrderReply(text, step, used_fallback=True)

    # -------------------------------------------------------------------------
    # Step Handlers
    # -------------------------------------------------------------------------

    def _handle_browsing(self, cart: Cart, profile, customer_number: str, message: str) -> OrderReply:
        products = self.catalog.list_active_products(cart.tenant_id)
        parsed = parse_items(message, products)

        if parsed:
            items = cart.items + [CartItem.from_parsed(item) for item in parsed]
            cart = self._advance(cart, CartStep.COLLECTING_ITEMS, items=items)
            logger.info("Cart %s: %d item(s) added from browsing", cart.id, len(parsed))
            text = message_builder.build_items_added(cart.items, cart.total_amount, ask_for_details=True)
            return OrderReply(text, cart.step)

        intent = classify(message)
        if intent.is_ordering or intent.intent == "menu":
            cart = self._advance(cart, CartStep.COLLECTING_ITEMS)
            return OrderReply(message_builder.build_menu(products), cart.step)

        # Not about ordering; the caller answers from the knowledge base
        return OrderReply("", cart.step)

    def _handle_collecting_items(self, cart: Cart, profile, customer_number: str, message: str) -> OrderReply:
        products = self.catalog.list_active_products(cart.tenant_id)
        if not products:
            return OrderReply(message_builder.MENU_UNAVAILABLE, cart.step)

        if contains_keyword(message, PROCEED_KEYWORDS):
            if not cart.items:
                return OrderReply(message_builder.EMPTY_CART, cart.step)
            cart = self._advance(cart, CartStep.COLLECTING_DETAILS)
            outlets = getattr(profile, "outlets", None) or message_builder.DEFAULT_OUTLETS
            text = message_builder.build_details_request(cart.items, cart.total_amount, outlets)
            return OrderReply(text, cart.step)

        parsed = parse_items(message, products)
        if parsed:
            items = cart.items + [CartItem.from_parsed(item) for item in parsed]
            cart = self.store.update(cart.id, expected_version=cart.version, items=items)
            logger.info("Cart %s: %d item(s) added", cart.id, len(parsed))
            text = message_builder.build_items_added(cart.items, cart.total_amount, ask_for_details=False)
            return OrderReply(text, cart.step)

        return OrderReply(message_builder.ITEM_NOT_FOUND, cart.step)

    def _handle_collecting_details(self, cart: Cart, profile, customer_number: str, message: str) -> OrderReply:
        details = parse_details(message)
        found = {field: value for field, value in details.model_dump().items() if value}

        phone_error = None
        if details.phone_number:
            _, phone_error = validate_phone_number(details.phone_number)
            if phone_error:
                logger.info("Cart %s: rejected phone number with %d digits", cart.id,
                            sum(c.isdigit() for c in details.phone_number))
                del found["phone_number"]

        if found:
            cart = self.store.update(cart.id, expected_version=cart.version, **found)
            logger.info("Cart %s: details updated (%s)", cart.id, ", ".join(sorted(found)))

        validation = validate_order(cart)
        if phone_error:
            text = phone_error
            if not validation.is_complete:
                text += "\n\n" + message_builder.build_missing_details_prompt(validation.missing_fields)
            return OrderReply(text, cart.step)
        if not validation.is_complete:
            return OrderReply(message_builder.build_missing_details_prompt(validation.missing_fields), cart.step)

        cart = self._advance(cart, CartStep.CONFIRMING_ORDER)
        return OrderReply(message_builder.build_order_confirmation(cart), cart.step)

    def _handle_confirming_order(self, cart: Cart, profile, customer_number: str, message: str) -> OrderReply:
        if not contains_keyword(message, AFFIRM_KEYWORDS):
            self.store.clear(cart.tenant_id, cart.customer_id)
            return OrderReply(message_builder.CONFIRMATION_DECLINED, CartStep.COMPLETED.value)

        try:
            payment = self.payments.create_payment(
                cart.tenant_id, cart.customer_id, cart.items, cart.total_amount, cart.customer_name,
            )
        except Exception as e:
            logger.error("Payment adapter raised for cart %s: %s", cart.id, e, exc_info=True)
            payment = None

        if payment is None or not payment.success:
            logger.error("Payment creation failed for cart %s: %s", cart.id, payment.error if payment else "exception")
            self.store.clear(cart.tenant_id, cart.customer_id)
            return OrderReply(message_builder.PAYMENT_FAILED, CartStep.COMPLETED.value)

        try:
            cart = self._advance(cart, CartStep.AWAITING_PAYMENT)
        except CartStoreError as e:
            # The payment exists; keep going so the customer still gets the QR
            logger.error("Could not mark cart %s as awaiting payment: %s", cart.id, e)
        step = CartStep.AWAITING_PAYMENT.value

        self.notifier.notify_business(payment.order_id, cart, profile)

        confirmation = message_builder.build_payment_confirmation(
            payment.order_id, cart.total_amount, profile.business_name,
        )
        try:
            self._send(profile, customer_number, confirmation)
            if payment.qr_code_url:
                self._send_qr(profile, customer_number, payment.qr_code_url, payment.order_id)
        except MessagingError as e:
            # Without the QR the customer cannot pay
            logger.error("Could not deliver payment for order %s, clearing cart: %s", payment.order_id, e)
            self.store.clear(cart.tenant_id, cart.customer_id)
            return OrderReply(message_builder.PAYMENT_FAILED, CartStep.COMPLETED.value)

        return OrderReply("", step, sent_directly=True)

    def _handle_awaiting_payment(self, cart: Cart, profile, customer_number: str, message: str) -> OrderReply:
        return OrderReply(message_builder.AWAITING_PAYMENT, cart.step)

    def _handle_unknown_step(self, cart: Cart) -> OrderReply:
        logger.warning("Cart %s has unknown step %r, resetting", cart.id, cart.step)
        cart = self.store.update(
            cart.id,
            expected_version=cart.version,
            step=CartStep.BROWSING.value,
            items=[],
            customer_name=None,
            phone_number=None,
            outlet_preference=None,
            delivery_method=None,
        )
        return OrderReply(message_builder.GREETING, cart.step)

    # -------------------------------------------------------------------------
    # Outbound Messages
    # -------------------------------------------------------------------------

    def _send(self, profile, to: str, text: str) -> None:
        self.messaging.send(
            to, text,
            device_id=profile.fonnte_device_id,
            device_token=profile.fonnte_device_token,
        )

    def _send_qr(self, profile, to: str, qr_code_url: str, order_id: str) -> None:
        stored = self.qr_storage.store_png(qr_code_url, order_id)
        if stored.success:
            self.messaging.send_with_image(
                to,
                message_builder.build_qr_caption(qr_code_url),
                stored.png_url,
                device_id=profile.fonnte_device_id,
                device_token=profile.fonnte_device_token,
            )
        else:
            logger.warning("QR storage failed for order %s (%s), sending link", order_id, stored.error)
            self._send(profile, to, message_builder.build_qr_link_fallback(qr_code_url))
