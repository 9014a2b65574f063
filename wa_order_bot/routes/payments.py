"""
Payment Routes for WA Order Bot
===============================

Midtrans calls this endpoint whenever a QRIS transaction changes status.

Endpoints:
----------
- POST /payments/notification: Apply a transaction status to its order

Responses:
----------
- 200: Notification applied (body reports the new order status)
- 403: Signature does not match (or no server key configured)
- 404: Unknown order id
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..config import get_settings
from ..db import get_db
from ..fonnte import FonnteClient
from ..payments import PaymentNotificationHandler
from ..schemas.payments import MidtransNotification

logger = logging.getLogger(__name__)

payments_router = APIRouter(prefix="/payments", tags=["Payments"])


def get_notification_handler(db: Session = Depends(get_db)) -> PaymentNotificationHandler:
    settings = get_settings()
    return PaymentNotificationHandler(settings, db, FonnteClient(settings))


@payments_router.post("/notification")
def payment_notification(
    notification: MidtransNotification,
    handler: PaymentNotificationHandler = Depends(get_notification_handler),
) -> dict:
    """Verify and apply a Midtrans transaction status notification."""
    if not handler.verify(notification):
        logger.warning("Rejected payment notification for order %s: bad signature", notification.order_id)
        raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        return handler.handle(notification)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
