"""
WhatsApp messaging through the Fonnte gateway.

Each tenant pairs its own WhatsApp device with Fonnte, so the device id and
token come from the business profile on every call rather than from the
environment. A missing token or a non-2xx answer raises MessagingError;
callers decide whether that is fatal.
"""

import logging
from typing import Optional

import requests

from .config import Settings
from .errors import MessagingError
from .logging_config import mask_phone

logger = logging.getLogger(__name__)

QR_IMAGE_FILENAME = "qr-gopay.png"


class FonnteClient:
    """
    Thin client for ``POST https://api.fonnte.com/send``.

    Usage:
        client = FonnteClient(settings)
        client.send("6281234567890", "Halo!", device_token=profile.fonnte_device_token)
    """

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.api_url = settings.fonnte_api_url
        self.country_code = settings.fonnte_country_code
        self.timeout = settings.http_timeout_seconds
        self.http = session or requests.Session()

    def send(
        self,
        to: str,
        text: str,
        device_id: Optional[str] = None,
        device_token: Optional[str] = None,
    ) -> None:
        """Send a text message. Raises MessagingError on any failure."""
        body = {"target": to, "message": text, "countryCode": self.country_code}
        self._post(body, device_id, device_token)
        logger.info("WhatsApp message sent to %s", mask_phone(to))

    def send_with_image(
        self,
        to: str,
        text: str,
        image_url: str,
        device_id: Optional[str] = None,
        device_token: Optional[str] = None,
        filename: str = QR_IMAGE_FILENAME,
    ) -> None:
        """Send a message with an image attachment fetched by Fonnte from ``image_url``."""
        body = {
            "target": to,
            "message": text,
            "url": image_url,
            "filename": filename,
            "countryCode": self.country_code,
        }
        self._post(body, device_id, device_token)
        logger.info("WhatsApp image message sent to %s", mask_phone(to))

    def _post(self, body: dict, device_id: Optional[str], device_token: Optional[str]) -> None:
        if not device_token or not device_token.strip():
            logger.error("Device token not available - cannot send WhatsApp message")
            raise MessagingError(
                "Device token not available. WhatsApp device may not be connected or registered properly."
            )
        if device_id:
            body["device"] = device_id

        try:
            response = self.http.post(
                self.api_url,
                json=body,
                headers={"Authorization": device_token},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Error sending WhatsApp message: %s", e)
            raise MessagingError(f"Fonnte request failed: {e}") from e

        if not response.ok:
            logger.error("Fonnte API error %s: %s", response.status_code, response.text)
            raise MessagingError(f"Fonnte API error: {response.status_code} - {response.text}")

        logger.debug("Fonnte response: %s", response.text)
