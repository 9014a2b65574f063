"""
Webhook Routes for WA Order Bot
===============================

Fonnte posts every inbound WhatsApp message here. The body is either JSON
or form-encoded depending on how the device webhook was configured, so the
raw body is decoded here and handed to MessageProcessor as a
WebhookPayload.

Endpoints:
----------
- POST /webhook: Receive one message (always answered with HTTP 200)

Rate Limiting:
--------------
Limited per client IP (default: 120/minute, RATE_LIMIT_WEBHOOK).
"""

import json
import logging
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..config import RATE_LIMIT_ENABLED, get_rate_limit_webhook, get_settings
from ..db import get_db
from ..message_processor import MessageProcessor
from ..schemas.webhook import WebhookAck, WebhookPayload

logger = logging.getLogger(__name__)

webhook_router = APIRouter(tags=["Webhook"])

limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)


def get_message_processor(db: Session = Depends(get_db)) -> MessageProcessor:
    """Dependency building the processor with the real adapters."""
    return MessageProcessor(db, get_settings())


def decode_body(raw: str, content_type: str) -> dict:
    """Decode a JSON or form-encoded body. Raises ValueError if it is neither."""
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(raw, keep_blank_values=True))
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


@webhook_router.post("/webhook", response_model=WebhookAck, response_model_exclude_none=True)
@limiter.limit(get_rate_limit_webhook)
async def receive_webhook(
    request: Request,
    processor: MessageProcessor = Depends(get_message_processor),
) -> WebhookAck:
    """Receive one WhatsApp message and reply to it."""
    raw = (await request.body()).decode("utf-8", errors="replace")
    if not raw.strip():
        return WebhookAck(message="Webhook endpoint is active")

    content_type = request.headers.get("content-type", "")
    try:
        data = decode_body(raw, content_type)
    except ValueError as e:
        logger.warning("Unparseable webhook body (%s): %s", content_type or "no content type", e)
        return WebhookAck(message="Invalid payload format ignored")

    payload = WebhookPayload.from_raw(data)
    return await run_in_threadpool(processor.process, payload)
