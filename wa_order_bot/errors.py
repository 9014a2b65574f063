"""
Exception types raised by the store and the external adapters.

The order state machine and the webhook pipeline catch these at well-defined
seams and turn them into Indonesian replies or a knowledge-base fallback, so
none of them ever reaches the webhook response.
"""


class OrderBotError(Exception):
    """Base class for all wa_order_bot errors."""


class CartStoreError(OrderBotError):
    """A cart could not be read or written."""


class CartConflictError(CartStoreError):
    """A cart changed underneath us between read and write."""

    def __init__(self, cart_id: str, expected_version: int):
        super().__init__(
            f"Cart {cart_id} was modified concurrently (expected version {expected_version})"
        )
        self.cart_id = cart_id
        self.expected_version = expected_version


class MessagingError(OrderBotError):
    """The WhatsApp gateway refused or failed to deliver a message."""


class PaymentError(OrderBotError):
    """The payment gateway could not create a charge."""


class KnowledgeBaseError(OrderBotError):
    """Embedding or document search failed."""
