"""
Routes Package for WA Order Bot
===============================

API route definitions, one APIRouter per concern.

Routers:
--------
- webhook.py: ``POST /webhook``, inbound WhatsApp messages from Fonnte
- payments.py: ``POST /payments/notification``, Midtrans status callbacks

Both endpoints answer the gateway with HTTP 200 for anything that is not a
caller error, so gateways do not retry deliveries we already handled.

Usage:
------
    from wa_order_bot.routes import webhook_router, payments_router

    app.include_router(webhook_router)
    app.include_router(payments_router)
"""

from .payments import payments_router
from .webhook import limiter, webhook_router

__all__ = ["limiter", "payments_router", "webhook_router"]
