"""
Tests for the HTTP endpoints: webhook, payment notification and health.
"""
import pytest

from conftest import BOT_NUMBER, CUSTOMER_NUMBER, TENANT_ID
from wa_order_bot.models import Order
from wa_order_bot.payments import notification_signature
from wa_order_bot.routes.webhook import decode_body
from wa_order_bot.schemas.webhook import WebhookPayload


class TestWebhookEndpoint:
    """POST /webhook always answers 200 with a JSON acknowledgement."""

    def test_empty_body_is_a_ping(self, client):
        response = client.post("/webhook", content=b"")
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Webhook endpoint is active"}

    @pytest.mark.parametrize("body", [b"not json at all", b"[1, 2, 3]"])
    def test_invalid_body_is_ignored(self, client, body):
        response = client.post("/webhook", content=body, headers={"content-type": "application/json"})
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Invalid payload format ignored"}

    def test_json_message_gets_reply(self, client, tenant, products, fake_messaging):
        response = client.post("/webhook", json={
            "message": "menu",
            "sender": CUSTOMER_NUMBER,
            "to": BOT_NUMBER,
            "timestamp": "1700000001",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["response"] == "KB: menu"
        assert data["ordering_intent_detected"] is True
        assert data["intent_result"]["intent"] == "menu"
        assert "processing_time_ms" in data
        assert "send_error" not in data

        texts = fake_messaging.texts_to(CUSTOMER_NUMBER)
        assert texts[0] == "KB: menu"
        assert "*MENU STREET SUSHI*" in texts[1]

    def test_form_body_with_indonesian_field_names(self, client, tenant):
        response = client.post("/webhook", data={
            "pesan": "halo",
            "pengirim": CUSTOMER_NUMBER,
            "receiver": BOT_NUMBER,
            "timestamp": "1700000002",
        })
        assert response.status_code == 200
        assert response.json()["response"] == "KB: halo"

    def test_alternate_json_field_names(self, client, tenant):
        response = client.post("/webhook", json={
            "message": "halo",
            "from": CUSTOMER_NUMBER,
            "device": BOT_NUMBER,
            "timestamp": "1700000003",
        })
        assert response.json()["response"] == "KB: halo"

    def test_ignored_delivery(self, client, tenant):
        response = client.post("/webhook", json={"message": "halo", "sender": CUSTOMER_NUMBER})
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Incomplete webhook payload ignored"}


class TestWebhookPayload:

    def test_missing_timestamp_stays_empty(self):
        payload = WebhookPayload.from_raw({"pesan": "halo", "pengirim": CUSTOMER_NUMBER, "receiver": BOT_NUMBER})
        assert payload.timestamp == ""
        assert payload.is_complete

    def test_numeric_timestamp_is_text(self):
        assert WebhookPayload.from_raw({"timestamp": 1700000000}).timestamp == "1700000000"


class TestDecodeBody:

    def test_form(self):
        assert decode_body("pesan=halo&pengirim=628", "application/x-www-form-urlencoded") == {
            "pesan": "halo",
            "pengirim": "628",
        }

    def test_json(self):
        assert decode_body('{"message": "halo"}', "application/json") == {"message": "halo"}

    def test_json_without_content_type(self):
        assert decode_body('{"message": "halo"}', "") == {"message": "halo"}

    def test_non_object_json(self):
        with pytest.raises(ValueError):
            decode_body('"halo"', "application/json")


class TestPaymentNotificationEndpoint:

    @pytest.fixture
    def order(self, db_session, customer):
        order = Order(user_id=TENANT_ID, whatsapp_user_id=customer.id, total_amount=100000, status="pending")
        db_session.add(order)
        db_session.commit()
        return order

    def body(self, settings, order_id, signature=None):
        return {
            "order_id": order_id,
            "transaction_status": "settlement",
            "status_code": "200",
            "gross_amount": "100000.00",
            "signature_key": signature or notification_signature(
                order_id, "200", "100000.00", settings.midtrans_server_key,
            ),
            "payment_type": "qris",
        }

    def test_settlement(self, client, settings, order, db_session, fake_messaging):
        response = client.post("/payments/notification", json=self.body(settings, order.id))

        assert response.status_code == 200
        assert response.json()["new_order_status"] == "paid"
        assert response.json()["thank_you_sent"] is True
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "paid"
        assert "PEMBAYARAN BERHASIL" in fake_messaging.texts_to(CUSTOMER_NUMBER)[0]

    def test_bad_signature(self, client, settings, order, db_session):
        response = client.post("/payments/notification", json=self.body(settings, order.id, signature="bad"))
        assert response.status_code == 403
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "pending"

    def test_unknown_order(self, client, settings, tenant):
        response = client.post("/payments/notification", json=self.body(settings, "no-such-order"))
        assert response.status_code == 404

    def test_missing_fields(self, client):
        response = client.post("/payments/notification", json={"order_id": "x"})
        assert response.status_code == 422


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
