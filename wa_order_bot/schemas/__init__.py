"""
Schemas Package for WA Order Bot
================================

Pydantic models shared by the order core, the store, the adapters and the
webhook route.

Schema Organization:
--------------------
- **ordering.py**: Cart, cart items, catalog products, parser and validator results
- **payments.py**: Payment and QR storage results, Midtrans notifications
- **webhook.py**: Inbound webhook payload and the JSON acknowledgement
"""

from .ordering import (
    Cart,
    CartItem,
    CatalogProduct,
    CustomerDetails,
    IntentResult,
    ParsedOrderItem,
    ValidationResult,
)
from .payments import MidtransNotification, PaymentResult, StorageResult
from .webhook import WebhookAck, WebhookPayload

__all__ = [
    "Cart",
    "CartItem",
    "CatalogProduct",
    "CustomerDetails",
    "IntentResult",
    "ParsedOrderItem",
    "ValidationResult",
    "MidtransNotification",
    "PaymentResult",
    "StorageResult",
    "WebhookAck",
    "WebhookPayload",
]
