"""
Webhook message processing.

This module provides the MessageProcessor class that handles the complete
lifecycle of one inbound WhatsApp message:
- Filtering (non-text, incomplete, self-messages, duplicate deliveries)
- Tenant lookup by the bot number the message was sent to
- Customer lookup / auto-registration within the plan's customer limit
- Conversation logging and monthly AI-response quota
- Order state machine (ordering industries) or knowledge-base reply
- Sending the reply through Fonnte

The webhook route only decodes the request body; everything else lives here.
Every outcome, including unexpected errors, is returned as a WebhookAck so
the gateway always gets HTTP 200 and never retries.
"""

import hashlib
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .config import (
    DEFAULT_PLAN,
    ORDERING_INDUSTRIES,
    Settings,
    get_ai_response_limit,
    get_settings,
    get_whatsapp_user_limit,
)
from .errors import MessagingError
from .fonnte import FonnteClient
from .logging_config import mask_phone
from .models import BusinessProfile, Conversation, ProcessedMessage, WhatsAppUser
from .notifications import BusinessNotifier
from .ordering import OrderReply, OrderStateMachine, message_builder
from .ordering.parsers import classify, clean_phone_number
from .ordering.parsers.constants import ORDERING_INTENTS
from .payments import MidtransPaymentGateway
from .qr_storage import QrCodeStorage
from .schemas.ordering import IntentResult
from .schemas.webhook import WebhookAck, WebhookPayload
from .services.cart_store import CartStore, customer_lock
from .services.catalog import ProductCatalog
from .services.knowledge import KnowledgeBase

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10


# -----------------------------------------------------------------------------
# Data Classes
# -----------------------------------------------------------------------------

@dataclass
class ProcessingContext:
    """Everything resolved about one message before a reply is produced."""
    profile: BusinessProfile
    customer: WhatsAppUser
    message: str
    sender: str
    intent: IntentResult
    history: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ProcessingResult:
    """The reply chosen for a message."""
    response: str
    order_reply: Optional[OrderReply] = None

    # Run the order flow after the reply went out and send its text as well
    order_follow_up: bool = False


def message_key(payload: WebhookPayload) -> str:
    """Idempotency key for a delivery; the gateway resends identical payloads."""
    raw = f"{payload.sender}|{payload.to}|{payload.timestamp}|{payload.message}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# -----------------------------------------------------------------------------
# MessageProcessor Class
# -----------------------------------------------------------------------------

class MessageProcessor:
    """
    Usage:
        processor = MessageProcessor(db)
        ack = processor.process(WebhookPayload(message="menu", sender="6281...", to="6285..."))

    Adapters default to the real Fonnte / Midtrans / OpenAI clients built
    from settings; tests pass fakes.
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        messaging=None,
        knowledge=None,
        payments=None,
        qr_storage=None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.messaging = messaging or FonnteClient(self.settings)
        self.knowledge = knowledge or KnowledgeBase(db, self.settings)
        self.machine = OrderStateMachine(
            store=CartStore(db),
            catalog=ProductCatalog(db),
            payments=payments or MidtransPaymentGateway(self.settings, db),
            messaging=self.messaging,
            notifier=BusinessNotifier(self.messaging),
            qr_storage=qr_storage or QrCodeStorage(self.settings),
            knowledge=self.knowledge,
        )

    def process(self, payload: WebhookPayload) -> WebhookAck:
        """Process one webhook delivery. Never raises."""
        try:
            return self._process(payload, time.monotonic())
        except Exception as e:
            logger.error("Unexpected error processing webhook: %s", e, exc_info=True)
            self.db.rollback()
            return WebhookAck(success=False, message="Internal error while processing message")

    def _process(self, payload: WebhookPayload, started: float) -> WebhookAck:
        # 1. Filter deliveries we never answer
        if payload.type != "text":
            return WebhookAck(message=f"Non-text message type ignored: {payload.type}")
        if not payload.is_complete:
            return WebhookAck(message="Incomplete webhook payload ignored")
        if payload.sender == payload.to:
            return WebhookAck(message="Self-message ignored to prevent loop")
        if payload.timestamp and not self._claim(payload):
            logger.info("Duplicate delivery from %s ignored", mask_phone(payload.sender))
            return WebhookAck(message="Duplicate message ignored")

        # 2. Tenant
        profile = self._find_tenant(payload.to)
        if profile is None:
            logger.warning("No business registered for bot number %s", mask_phone(payload.to))
            return WebhookAck(message="No business registered for this number")
        if clean_phone_number(payload.sender) == clean_phone_number(profile.whatsapp_number or ""):
            return WebhookAck(message="Bot self-message ignored to prevent loop")

        plan = profile.selected_plan or DEFAULT_PLAN

        # 3. Customer
        customer = self._get_or_register_customer(profile, payload.sender)
        if customer is None:
            limit = get_whatsapp_user_limit(plan)
            self._send_quietly(profile, payload.sender, message_builder.build_customer_limit_reached(plan, limit))
            return WebhookAck(message=f"WhatsApp user limit reached for plan {plan}")

        message = payload.message
        if len(message) > self.settings.max_message_length:
            logger.warning("Truncating %d-character message from %s", len(message), mask_phone(payload.sender))
            message = message[: self.settings.max_message_length]

        # 4. Conversation log and quota
        self._log_conversation(profile.user_id, payload.sender, "incoming", message)
        history = self._recent_history(profile.user_id, payload.sender)

        used = self._current_month_usage(profile)
        limit = get_ai_response_limit(plan)
        if limit != -1 and used >= limit:
            logger.info("AI response limit reached for tenant %s (%d/%d)", profile.user_id, used, limit)
            self._send_quietly(profile, payload.sender, message_builder.build_ai_limit_reached(plan, limit))
            return WebhookAck(message="AI response limit exceeded")

        # 5. Reply
        ctx = ProcessingContext(
            profile=profile,
            customer=customer,
            message=message,
            sender=payload.sender,
            intent=classify(message),
            history=history,
        )
        logger.info(
            "Message for tenant %s from %s (intent=%s, confidence=%.2f)",
            profile.user_id, mask_phone(payload.sender), ctx.intent.intent, ctx.intent.confidence,
        )
        result = self._reply(ctx)
        processing_time_ms = int((time.monotonic() - started) * 1000)

        # 6. Bookkeeping and delivery
        self._increment_usage(profile.user_id)
        self._log_conversation(
            profile.user_id, payload.sender, "outgoing", result.response,
            ai_response=result.response, processing_time_ms=processing_time_ms,
        )

        ack = WebhookAck(
            response=result.response,
            processing_time_ms=processing_time_ms,
            ordering_intent_detected=result.order_follow_up,
            intent_result=ctx.intent.model_dump(),
        )

        if result.response.strip():
            try:
                self._send(profile, payload.sender, result.response)
            except MessagingError as e:
                logger.error("Failed to send reply to %s: %s", mask_phone(payload.sender), e)
                ack.send_error = str(e)
                return ack

        if result.order_follow_up:
            self._send_order_follow_up(ctx)

        return ack

    # -------------------------------------------------------------------------
    # Reply Selection
    # -------------------------------------------------------------------------

    def _reply(self, ctx: ProcessingContext) -> ProcessingResult:
        if (ctx.profile.industry or "") not in ORDERING_INDUSTRIES:
            return ProcessingResult(response=self._knowledge_answer(ctx))

        if ctx.intent.is_ordering or ctx.intent.intent in ORDERING_INTENTS:
            # Natural answer first, the menu / cart update follows as a second message
            return ProcessingResult(response=self._knowledge_answer(ctx), order_follow_up=True)

        order_reply = self._run_order_flow(ctx)
        if not order_reply.text and not order_reply.sent_directly:
            return ProcessingResult(response=self._knowledge_answer(ctx), order_reply=order_reply)
        return ProcessingResult(response=order_reply.text, order_reply=order_reply)

    def _run_order_flow(self, ctx: ProcessingContext) -> OrderReply:
        with customer_lock(ctx.profile.user_id, ctx.customer.id):
            reply = self.machine.handle(
                ctx.profile,
                ctx.customer.id,
                ctx.sender,
                ctx.message,
                customer_name=ctx.customer.customer_name,
                history=ctx.history,
            )
        logger.info("Order flow for tenant %s -> step %s", ctx.profile.user_id, reply.step)
        return reply

    def _send_order_follow_up(self, ctx: ProcessingContext) -> None:
        reply = self._run_order_flow(ctx)
        if not reply.text.strip():
            return
        try:
            self._send(ctx.profile, ctx.sender, reply.text)
        except MessagingError as e:
            logger.error("Failed to send order follow-up to %s: %s", mask_phone(ctx.sender), e)
            return
        self._log_conversation(ctx.profile.user_id, ctx.sender, "outgoing", reply.text, ai_response=reply.text)

    def _knowledge_answer(self, ctx: ProcessingContext) -> str:
        return self.knowledge.answer(
            ctx.profile, ctx.message, customer_name=ctx.customer.customer_name, history=ctx.history,
        )

    # -------------------------------------------------------------------------
    # Persistence Helpers
    # -------------------------------------------------------------------------

    def _claim(self, payload: WebhookPayload) -> bool:
        """Record the delivery; False if it was already processed."""
        self.db.add(ProcessedMessage(message_key=message_key(payload)))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def _find_tenant(self, bot_number: str) -> Optional[BusinessProfile]:
        candidates = {bot_number, clean_phone_number(bot_number)}
        return (
            self.db.query(BusinessProfile)
            .filter(BusinessProfile.whatsapp_number.in_(candidates))
            .first()
        )

    def _get_or_register_customer(self, profile: BusinessProfile, number: str) -> Optional[WhatsAppUser]:
        """Existing customer, a newly registered one, or None if the plan is full."""
        customer = (
            self.db.query(WhatsAppUser)
            .filter(WhatsAppUser.user_id == profile.user_id)
            .filter(WhatsAppUser.whatsapp_number == number)
            .first()
        )
        if customer is not None:
            return customer

        limit = get_whatsapp_user_limit(profile.selected_plan)
        if limit != -1:
            count = self.db.query(WhatsAppUser).filter(WhatsAppUser.user_id == profile.user_id).count()
            if count >= limit:
                logger.info("Customer limit reached for tenant %s (%d/%d)", profile.user_id, count, limit)
                return None

        customer = WhatsAppUser(user_id=profile.user_id, whatsapp_number=number, is_active=True)
        self.db.add(customer)
        self.db.commit()
        self.db.refresh(customer)
        logger.info("Registered new customer %s for tenant %s", mask_phone(number), profile.user_id)
        return customer

    def _log_conversation(
        self,
        tenant_id: str,
        number: str,
        message_type: str,
        content: str,
        ai_response: Optional[str] = None,
        processing_time_ms: Optional[int] = None,
    ) -> None:
        try:
            self.db.add(Conversation(
                user_id=tenant_id,
                whatsapp_number=number,
                message_type=message_type,
                message_content=content,
                ai_response=ai_response,
                processing_time_ms=processing_time_ms,
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Error logging %s message: %s", message_type, e)

    def _recent_history(self, tenant_id: str, number: str) -> List[Dict[str, Any]]:
        """Last messages with this customer, oldest first."""
        rows = (
            self.db.query(Conversation)
            .filter(Conversation.user_id == tenant_id)
            .filter(Conversation.whatsapp_number == number)
            .order_by(Conversation.created_at.desc(), Conversation.id.desc())
            .limit(HISTORY_LIMIT)
            .all()
        )
        return [
            {
                "message_type": row.message_type,
                "message_content": row.message_content,
                "ai_response": row.ai_response,
            }
            for row in reversed(rows)
        ]

    def _current_month_usage(self, profile: BusinessProfile) -> int:
        """AI responses used this month, resetting the counter when the month changed."""
        month = datetime.now().month
        if profile.ai_responses_last_reset_month != month:
            logger.info("Resetting AI response count for tenant %s (month %d)", profile.user_id, month)
            profile.ai_responses_count = 0
            profile.ai_responses_last_reset_month = month
            self.db.commit()
        return profile.ai_responses_count or 0

    def _increment_usage(self, tenant_id: str) -> None:
        try:
            self.db.execute(
                sa_update(BusinessProfile)
                .where(BusinessProfile.user_id == tenant_id)
                .values(ai_responses_count=BusinessProfile.ai_responses_count + 1)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Error incrementing AI response count: %s", e)

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def _send(self, profile: BusinessProfile, to: str, text: str) -> None:
        self.messaging.send(
            to, text,
            device_id=profile.fonnte_device_id,
            device_token=profile.fonnte_device_token,
        )

    def _send_quietly(self, profile: BusinessProfile, to: str, text: str) -> None:
        try:
            self._send(profile, to, text)
        except MessagingError as e:
            logger.error("Failed to send notice to %s: %s", mask_phone(to), e)
