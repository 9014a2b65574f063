"""
Webhook Schemas.

The gateway posts either JSON or form-encoded bodies and has used several
field names over time (``pesan``/``pengirim`` in Indonesian, ``from``,
``receiver``, ``device``). ``WebhookPayload.from_raw`` folds all of them into
one shape.

A payload without a timestamp cannot be told apart from a later message
with the same text, so it is never deduplicated.
"""

from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel


def _first(data: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value:
            return str(value)
    return ""


class WebhookPayload(BaseModel):
    message: str = ""
    sender: str = ""
    to: str = ""
    timestamp: str = ""
    type: str = "text"

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "WebhookPayload":
        """Normalize a decoded JSON object or form mapping."""
        return cls(
            message=_first(data, "message", "pesan"),
            sender=_first(data, "sender", "pengirim", "from"),
            to=_first(data, "to", "receiver", "device"),
            timestamp=_first(data, "timestamp"),
            type=_first(data, "type") or "text",
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.message and self.sender and self.to)


class WebhookAck(BaseModel):
    """
    JSON body returned to the gateway. Always sent with HTTP 200.

    Attributes:
        success: False only when the pipeline itself failed unexpectedly
        message: Why the delivery was ignored, when it was
        response: The reply text sent (or attempted) to the customer
        send_error: Gateway error when the reply could not be delivered
    """
    success: bool = True
    message: Optional[str] = None
    response: Optional[str] = None
    processing_time_ms: Optional[int] = None
    send_error: Optional[str] = None
    ordering_intent_detected: Optional[bool] = None
    intent_result: Optional[Dict[str, Any]] = None
