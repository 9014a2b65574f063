"""
Payments through Midtrans QRIS (GoPay).

Creating a payment persists an Order with its items, asks Midtrans for a
QRIS charge and stores the QR code URL Midtrans returns. The gateway never
raises: every failure comes back as ``PaymentResult(success=False, error=...)``
so the order flow can reset the cart and apologise.

When MIDTRANS_SERVER_KEY is not set the gateway runs in mock mode: the order
is still persisted, the charge is only logged and no QR code is produced.

Midtrans later POSTs status changes to ``/payments/notification``;
``PaymentNotificationHandler`` verifies the signature, updates the order,
closes the customer's cart once paid and sends a thank-you message.

Environment variables (via Settings):
- MIDTRANS_SERVER_KEY: Server key used for Basic auth and signature checks
- MIDTRANS_API_URL: Charge endpoint (sandbox by default)
- PAYMENT_EXPIRY_MINUTES: QR code lifetime
"""

import hashlib
import hmac
import logging
from typing import Optional, Sequence

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings
from .errors import MessagingError, PaymentError
from .fonnte import FonnteClient
from .models import BusinessProfile, Order, OrderItem, WhatsAppUser
from .ordering import message_builder
from .schemas.ordering import CartItem
from .schemas.payments import MidtransNotification, PaymentResult
from .services.cart_store import CartStore

logger = logging.getLogger(__name__)

QR_ACTION_NAME = "generate-qr-code"
ITEM_CATEGORY = "Food & Beverage"


class MidtransPaymentGateway:
    """
    Usage:
        gateway = MidtransPaymentGateway(settings, db)
        result = gateway.create_payment(tenant_id, customer_id, cart.items, cart.total_amount, "Ria")
        if result.success:
            send_qr(result.qr_code_url)
    """

    def __init__(self, settings: Settings, db: Session, session: Optional[requests.Session] = None):
        self.settings = settings
        self.db = db
        self.http = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.midtrans_server_key)

    def create_payment(
        self,
        tenant_id: str,
        customer_id: str,
        items: Sequence[CartItem],
        total: float,
        customer_name: Optional[str] = None,
    ) -> PaymentResult:
        """Persist an order and request a QRIS charge for it."""
        order = None
        try:
            if not items:
                raise PaymentError("Order has no items")
            if total <= 0:
                raise PaymentError("Order total must be positive")

            order = self._persist_order(tenant_id, customer_id, items, total)

            if not self.is_configured:
                logger.info(
                    "MOCK PAYMENT for order %s: Rp %s (%d items)",
                    order.id, message_builder.format_number(total), len(items),
                )
                order.transaction_id = f"mock-{order.id}"
                self.db.commit()
                return PaymentResult(success=True, order_id=order.id, transaction_id=order.transaction_id)

            charge = self._build_charge(order, items, total, customer_name, customer_id)
            midtrans = self._post_charge(charge)
            qr_code_url = self._extract_qr_url(midtrans)

            order.qr_code_url = qr_code_url
            order.transaction_id = midtrans.get("transaction_id") or order.id
            self.db.commit()

            logger.info("Payment created for order %s", order.id)
            return PaymentResult(
                success=True,
                qr_code_url=qr_code_url,
                order_id=order.id,
                transaction_id=order.transaction_id,
            )
        except PaymentError as e:
            logger.error("Payment creation failed: %s", e)
            error = str(e)
        except (requests.RequestException, SQLAlchemyError, ValueError) as e:
            logger.error("Error creating order payment: %s", e, exc_info=True)
            self.db.rollback()
            error = str(e)

        if order is not None:
            self._mark_failed(order.id)
        return PaymentResult(success=False, order_id=order.id if order is not None else None, error=error)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _persist_order(self, tenant_id: str, customer_id: str, items: Sequence[CartItem], total: float) -> Order:
        order = Order(
            user_id=tenant_id,
            whatsapp_user_id=customer_id,
            total_amount=total,
            status="pending",
            payment_method="qris_gopay",
        )
        for item in items:
            order.items.append(OrderItem(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                price_at_order=item.unit_price,
            ))
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def _mark_failed(self, order_id: str) -> None:
        try:
            order = self.db.get(Order, order_id)
            if order is not None and order.status == "pending":
                order.status = "failed"
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Could not mark order %s failed: %s", order_id, e)

    def _build_charge(self, order: Order, items: Sequence[CartItem], total: float,
                      customer_name: Optional[str], customer_id: str) -> dict:
        buyer = self.db.get(WhatsAppUser, customer_id)
        profile = self.db.query(BusinessProfile).filter(BusinessProfile.user_id == order.user_id).first()

        phone = buyer.whatsapp_number if buyer else ""
        first_name = customer_name or (buyer.customer_name if buyer else None) or f"Pembeli {phone[-4:]}"
        last_name = profile.business_name if profile else "Customer"

        item_details = [
            {
                "id": item.product_id or f"item_{index}",
                "price": round(item.unit_price),
                "quantity": item.quantity,
                "name": item.product_name[:50],
                "category": ITEM_CATEGORY,
            }
            for index, item in enumerate(items, start=1)
        ]
        # Midtrans rejects a charge whose gross amount differs from the item sum
        gross_amount = sum(d["price"] * d["quantity"] for d in item_details)
        if gross_amount != round(total):
            logger.warning("Order %s: charging %d for items, cart total was %.2f", order.id, gross_amount, total)

        return {
            "payment_type": "qris",
            "transaction_details": {"order_id": order.id, "gross_amount": gross_amount},
            "qris": {"acquirer": "gopay"},
            "item_details": item_details,
            "customer_details": {
                "first_name": first_name,
                "last_name": last_name,
                "phone": phone,
            },
            "custom_expiry": {
                "expiry_duration": self.settings.payment_expiry_minutes,
                "unit": "minute",
            },
        }

    def _post_charge(self, charge: dict) -> dict:
        response = self.http.post(
            self.settings.midtrans_api_url,
            json=charge,
            headers={"Accept": "application/json"},
            auth=(self.settings.midtrans_server_key, ""),
            timeout=self.settings.http_timeout_seconds,
        )
        if not response.ok:
            raise PaymentError(f"Midtrans API error: {response.status_code} - {response.text}")
        body = response.json()
        if not isinstance(body, dict):
            raise PaymentError(f"Unexpected Midtrans response: {body!r}")
        return body

    @staticmethod
    def _extract_qr_url(midtrans: dict) -> str:
        if midtrans.get("transaction_status") != "pending" or not midtrans.get("actions"):
            raise PaymentError(
                f"Failed to get QR Code URL from Midtrans QRIS (status={midtrans.get('transaction_status')})"
            )
        for action in midtrans["actions"]:
            if action.get("name") == QR_ACTION_NAME and action.get("url"):
                return action["url"]
        raise PaymentError("QR code URL not found in Midtrans response")


# =============================================================================
# Payment Notifications
# =============================================================================

def notification_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    """SHA-512 hex digest Midtrans sends as ``signature_key``."""
    payload = f"{order_id}{status_code}{gross_amount}{server_key}".encode("utf-8")
    return hashlib.sha512(payload).hexdigest()


def map_transaction_status(transaction_status: str, fraud_status: Optional[str]) -> str:
    """Order status for a Midtrans transaction status."""
    if transaction_status in ("capture", "settlement"):
        if fraud_status in (None, "", "accept"):
            return "paid"
        if fraud_status == "challenge":
            return "pending"
        return "failed"
    if transaction_status in ("deny", "cancel", "expire", "failure"):
        return "failed"
    return "pending"


class PaymentNotificationHandler:
    """Applies a verified Midtrans notification to the matching order."""

    def __init__(self, settings: Settings, db: Session, messenger: FonnteClient):
        self.settings = settings
        self.db = db
        self.messenger = messenger

    def verify(self, notification: MidtransNotification) -> bool:
        if not self.settings.midtrans_server_key:
            logger.warning("Payment notification received but MIDTRANS_SERVER_KEY is not set")
            return False
        expected = notification_signature(
            notification.order_id,
            notification.status_code,
            notification.gross_amount,
            self.settings.midtrans_server_key,
        )
        return hmac.compare_digest(expected, notification.signature_key)

    def handle(self, notification: MidtransNotification) -> dict:
        """
        Update the order and, once paid, close the cart and thank the customer.

        Returns a small status dict for the HTTP response. Raises LookupError
        if the order is unknown.
        """
        order = self.db.get(Order, notification.order_id)
        if order is None:
            raise LookupError(f"Order {notification.order_id} not found")

        new_status = map_transaction_status(notification.transaction_status, notification.fraud_status)
        order.status = new_status
        order.transaction_id = notification.transaction_id or order.transaction_id or order.id
        self.db.commit()
        logger.info("Order %s -> %s (%s)", order.id, new_status, notification.transaction_status)

        thank_you_sent = False
        if new_status == "paid":
            CartStore(self.db).clear(order.user_id, order.whatsapp_user_id)
            thank_you_sent = self._send_thank_you(order)

        return {
            "success": True,
            "order_id": order.id,
            "transaction_status": notification.transaction_status,
            "new_order_status": new_status,
            "thank_you_sent": thank_you_sent,
        }

    def _send_thank_you(self, order: Order) -> bool:
        customer = self.db.get(WhatsAppUser, order.whatsapp_user_id)
        profile = self.db.query(BusinessProfile).filter(BusinessProfile.user_id == order.user_id).first()
        if customer is None or profile is None or not profile.fonnte_device_token:
            logger.warning("Cannot send thank-you for order %s: customer or device not configured", order.id)
            return False

        text = message_builder.build_payment_received(
            order.id, order.total_amount, customer.customer_name, profile.business_name,
        )
        try:
            self.messenger.send(
                customer.whatsapp_number, text,
                device_id=profile.fonnte_device_id, device_token=profile.fonnte_device_token,
            )
        except MessagingError as e:
            logger.error("Failed to send thank-you for order %s: %s", order.id, e)
            return False
        return True
