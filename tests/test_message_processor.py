"""
Tests for the webhook message pipeline.

Runs MessageProcessor directly against the in-memory database with fake
messaging, knowledge base, payments and QR storage.
"""
import dataclasses
import itertools
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from conftest import BOT_NUMBER, CUSTOMER_NUMBER, TENANT_ID
from wa_order_bot.message_processor import MessageProcessor, message_key
from wa_order_bot.models import BusinessProfile, CartOrder, Conversation, ProcessedMessage, WhatsAppUser
from wa_order_bot.ordering import message_builder as mb
from wa_order_bot.schemas.webhook import WebhookPayload

_timestamps = itertools.count(1700000000)


def payload(message, sender=CUSTOMER_NUMBER, to=BOT_NUMBER, **kwargs):
    kwargs.setdefault("timestamp", str(next(_timestamps)))
    return WebhookPayload(message=message, sender=sender, to=to, **kwargs)


@pytest.fixture
def processor(db_session, settings, fake_messaging, fake_knowledge, fake_payments, fake_qr_storage):
    return MessageProcessor(
        db_session,
        settings,
        messaging=fake_messaging,
        knowledge=fake_knowledge,
        payments=fake_payments,
        qr_storage=fake_qr_storage,
    )


def refreshed(db_session, tenant):
    db_session.expire_all()
    return db_session.query(BusinessProfile).filter(BusinessProfile.user_id == tenant.user_id).one()


def conversations(db_session, number=CUSTOMER_NUMBER):
    return (
        db_session.query(Conversation)
        .filter(Conversation.whatsapp_number == number)
        .order_by(Conversation.id)
        .all()
    )


# =============================================================================
# Filtering
# =============================================================================

class TestFiltering:
    """Deliveries that are acknowledged without a reply."""

    def test_non_text_message(self, processor, tenant):
        ack = processor.process(payload("", type="image"))
        assert ack.success is True
        assert ack.message == "Non-text message type ignored: image"

    @pytest.mark.parametrize("fields", [
        {"message": "", "sender": CUSTOMER_NUMBER, "to": BOT_NUMBER},
        {"message": "halo", "sender": "", "to": BOT_NUMBER},
        {"message": "halo", "sender": CUSTOMER_NUMBER, "to": ""},
    ])
    def test_incomplete_payload(self, processor, tenant, fields):
        ack = processor.process(WebhookPayload(timestamp="1", **fields))
        assert ack.message == "Incomplete webhook payload ignored"

    def test_self_message(self, processor, tenant, fake_knowledge):
        ack = processor.process(payload("halo", sender=BOT_NUMBER))
        assert ack.message == "Self-message ignored to prevent loop"
        assert fake_knowledge.calls == []

    def test_bot_number_in_local_format_is_self_message(self, processor, tenant):
        """Test that the bot's own number is caught even when formatted differently."""
        ack = processor.process(payload("halo", sender="085700000001"))
        assert ack.message == "Bot self-message ignored to prevent loop"

    def test_duplicate_delivery(self, processor, tenant, fake_knowledge, fake_messaging):
        first = payload("halo", timestamp="1700000000")
        processor.process(first)
        ack = processor.process(first.model_copy())

        assert ack.message == "Duplicate message ignored"
        assert len(fake_knowledge.calls) == 1
        assert len(fake_messaging.sent) == 1

    def test_delivery_without_timestamp_is_never_deduplicated(self, processor, tenant, fake_knowledge,
                                                              db_session):
        """Test that two identical untimestamped messages are both answered."""
        first = processor.process(payload("halo", timestamp=""))
        second = processor.process(payload("halo", timestamp=""))

        assert first.response == second.response == "KB: halo"
        assert len(fake_knowledge.calls) == 2
        assert db_session.query(ProcessedMessage).count() == 0

    def test_unknown_bot_number(self, processor, tenant):
        ack = processor.process(payload("halo", to="6289999999999"))
        assert ack.message == "No business registered for this number"

    def test_tenant_found_by_local_number(self, processor, tenant):
        ack = processor.process(payload("halo", to="085700000001"))
        assert ack.response == "KB: halo"

    def test_message_key_depends_on_every_field(self):
        base = payload("halo", timestamp="1")
        assert message_key(base) == message_key(base.model_copy())
        assert message_key(base) != message_key(base.model_copy(update={"timestamp": "2"}))
        assert message_key(base) != message_key(base.model_copy(update={"message": "hai"}))


# =============================================================================
# Customers and Quotas
# =============================================================================

class TestCustomersAndQuotas:

    def test_new_customer_is_registered(self, processor, tenant, db_session):
        processor.process(payload("halo", sender="6281111111111"))
        customer = (
            db_session.query(WhatsAppUser)
            .filter(WhatsAppUser.whatsapp_number == "6281111111111")
            .one()
        )
        assert customer.user_id == TENANT_ID
        assert customer.is_active is True

    def test_existing_customer_is_reused(self, processor, tenant, customer, db_session, fake_knowledge):
        processor.process(payload("halo"))
        assert db_session.query(WhatsAppUser).count() == 1
        assert fake_knowledge.calls[0]["customer_name"] == "Ria"

    def test_customer_limit_reached(self, processor, tenant, db_session, fake_messaging, fake_knowledge):
        db_session.add_all([
            WhatsAppUser(user_id=TENANT_ID, whatsapp_number=f"62811000000{i:02d}") for i in range(50)
        ])
        db_session.commit()

        ack = processor.process(payload("halo", sender="6289876543210"))

        assert ack.message == "WhatsApp user limit reached for plan starter"
        assert fake_messaging.texts_to("6289876543210") == [mb.build_customer_limit_reached("starter", 50)]
        assert fake_knowledge.calls == []

    def test_ai_limit_reached(self, processor, tenant, db_session, fake_messaging, fake_knowledge):
        tenant.ai_responses_count = 1000
        tenant.ai_responses_last_reset_month = datetime.now().month
        db_session.commit()

        ack = processor.process(payload("halo"))

        assert ack.message == "AI response limit exceeded"
        assert fake_messaging.texts_to(CUSTOMER_NUMBER) == [mb.build_ai_limit_reached("starter", 1000)]
        assert fake_knowledge.calls == []
        assert [c.message_type for c in conversations(db_session)] == ["incoming"]

    def test_counter_resets_in_a_new_month(self, processor, tenant, db_session):
        tenant.ai_responses_count = 1000
        tenant.ai_responses_last_reset_month = datetime.now().month % 12 + 1
        db_session.commit()

        ack = processor.process(payload("halo"))

        assert ack.response == "KB: halo"
        profile = refreshed(db_session, tenant)
        assert profile.ai_responses_count == 1
        assert profile.ai_responses_last_reset_month == datetime.now().month

    def test_enterprise_is_unlimited(self, processor, tenant, db_session):
        tenant.selected_plan = "enterprise"
        tenant.ai_responses_count = 999999
        tenant.ai_responses_last_reset_month = datetime.now().month
        db_session.commit()

        ack = processor.process(payload("halo"))
        assert ack.response == "KB: halo"

    def test_each_reply_counts_once(self, processor, tenant, db_session):
        processor.process(payload("halo"))
        processor.process(payload("jam buka?"))
        assert refreshed(db_session, tenant).ai_responses_count == 2


# =============================================================================
# Reply Selection
# =============================================================================

class TestReplies:

    def test_non_ordering_industry_uses_knowledge_only(self, processor, tenant, products, db_session,
                                                       fake_messaging):
        tenant.industry = "healthcare"
        db_session.commit()

        ack = processor.process(payload("menu"))

        assert ack.response == "KB: menu"
        assert fake_messaging.texts_to(CUSTOMER_NUMBER) == ["KB: menu"]
        assert db_session.query(CartOrder).count() == 0

    def test_menu_intent_answers_then_follows_up_with_menu(self, processor, tenant, products, db_session,
                                                           fake_messaging):
        """Test that an ordering intent gets a natural answer and then the menu."""
        ack = processor.process(payload("menu"))

        assert ack.response == "KB: menu"
        assert ack.intent_result["intent"] == "menu"
        assert ack.ordering_intent_detected is True

        first, second = fake_messaging.texts_to(CUSTOMER_NUMBER)
        assert first == "KB: menu"
        assert "*MENU STREET SUSHI*" in second
        assert db_session.query(CartOrder).one().step == "collecting_items"
        assert [c.message_type for c in conversations(db_session)] == ["incoming", "outgoing", "outgoing"]

    def test_order_flow_reply_replaces_knowledge_answer(self, processor, tenant, products, fake_knowledge):
        ack = processor.process(payload("Salmon Roll 2 porsi"))
        assert "1. Salmon Roll x2 = Rp 100.000" in ack.response
        assert fake_knowledge.calls == []

    def test_unrelated_question_falls_through_to_knowledge(self, processor, tenant, products):
        ack = processor.process(payload("jam buka kapan?"))
        assert ack.response == "KB: jam buka kapan?"
        assert ack.ordering_intent_detected is False
        assert ack.intent_result == {"is_ordering": False, "intent": "general", "confidence": 0.0}

    def test_full_order_over_webhook_messages(self, processor, tenant, products, fake_payments,
                                              fake_messaging, db_session):
        processor.process(payload("Salmon Roll 2 porsi"))
        processor.process(payload("lanjut"))
        processor.process(payload("Nama saya Ria, HP 081234567890, outlet Palagan, ambil sendiri"))
        ack = processor.process(payload("ya"))

        assert ack.response == ""
        assert fake_payments.calls[0]["total"] == 100000.0
        assert fake_payments.calls[0]["customer_name"] == "Ria"
        assert fake_messaging.sent[-1]["image_url"] is not None
        assert db_session.query(CartOrder).one().step == "awaiting_payment"

    def test_history_is_passed_oldest_first(self, processor, tenant, fake_knowledge):
        processor.process(payload("halo"))
        processor.process(payload("jam buka?"))

        history = fake_knowledge.calls[-1]["history"]
        assert [(h["message_type"], h["message_content"]) for h in history] == [
            ("incoming", "halo"),
            ("outgoing", "KB: halo"),
            ("incoming", "jam buka?"),
        ]

    def test_long_message_is_truncated(self, db_session, settings, fake_messaging, fake_knowledge, tenant):
        processor = MessageProcessor(
            db_session, dataclasses.replace(settings, max_message_length=10),
            messaging=fake_messaging, knowledge=fake_knowledge,
        )
        processor.process(payload("x" * 50))
        assert fake_knowledge.calls[0]["message"] == "x" * 10
        assert conversations(db_session)[0].message_content == "x" * 10

    def test_outgoing_message_is_logged_with_timing(self, processor, tenant, db_session):
        ack = processor.process(payload("halo"))
        incoming, outgoing = conversations(db_session)
        assert incoming.message_content == "halo"
        assert outgoing.ai_response == "KB: halo"
        assert outgoing.processing_time_ms == ack.processing_time_ms


# =============================================================================
# Failures
# =============================================================================

class TestFailures:

    def test_send_failure_is_reported_in_ack(self, processor, tenant, fake_messaging):
        fake_messaging.fail = True
        ack = processor.process(payload("halo"))
        assert ack.success is True
        assert ack.response == "KB: halo"
        assert "Fonnte API error" in ack.send_error

    def test_unexpected_error_is_acknowledged(self, processor, tenant, fake_knowledge):
        fake_knowledge.answer = MagicMock(side_effect=RuntimeError("boom"))
        ack = processor.process(payload("halo"))
        assert ack.success is False
        assert ack.message == "Internal error while processing message"
