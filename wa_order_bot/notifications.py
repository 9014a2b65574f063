"""
Business notifications.

Tells the business about a new order on its own WhatsApp number once the
customer has a payment QR. Best-effort: a tenant without a connected device
is skipped, and a gateway failure is logged and dropped so it never affects
the customer's reply.
"""

import logging

from .errors import MessagingError
from .logging_config import mask_phone
from .ordering import message_builder

logger = logging.getLogger(__name__)


class BusinessNotifier:
    def __init__(self, messaging):
        self.messaging = messaging

    def notify_business(self, order_id: str, cart, profile) -> bool:
        """
        Send the "new order" summary for ``cart`` to ``profile.whatsapp_number``.

        Returns True if the message went out.
        """
        if not profile.fonnte_device_token or not profile.whatsapp_number:
            logger.warning("Skipping business notification for order %s: device not configured", order_id)
            return False

        text = message_builder.build_business_notification(order_id, cart)
        try:
            self.messaging.send(
                profile.whatsapp_number,
                text,
                device_id=profile.fonnte_device_id,
                device_token=profile.fonnte_device_token,
            )
        except MessagingError as e:
            logger.error("Failed to notify business %s of order %s: %s",
                         mask_phone(profile.whatsapp_number), order_id, e)
            return False

        logger.info("Business notified of order %s", order_id)
        return True
