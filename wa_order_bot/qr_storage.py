"""
QR code storage.

Midtrans hands back a short-lived URL that renders the QRIS code. WhatsApp
needs a stable, publicly reachable image, so the PNG is downloaded and
written under ``QR_STORAGE_DIR/qr-codes/``, which the app serves at
``/media``. Failures are reported in the result, never raised; the order
flow then falls back to sending the Midtrans link as text.
"""

import logging
import os
import time
from typing import Optional

import requests

from .config import Settings
from .schemas.payments import StorageResult

logger = logging.getLogger(__name__)

QR_SUBDIR = "qr-codes"
MEDIA_URL_PREFIX = "/media"


class QrCodeStorage:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.root = settings.qr_storage_dir
        self.public_base_url = settings.public_base_url.rstrip("/")
        self.timeout = settings.http_timeout_seconds
        self.http = session or requests.Session()

    def store_png(self, qr_url: str, order_id: str) -> StorageResult:
        """Download the QR image at ``qr_url`` and publish it under a stable URL."""
        try:
            response = self.http.get(qr_url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Error downloading QR code for order %s: %s", order_id, e)
            return StorageResult(success=False, error=f"Failed to download QR code: {e}")

        if not response.ok:
            logger.error("QR download for order %s failed with HTTP %s", order_id, response.status_code)
            return StorageResult(
                success=False,
                error=f"Failed to download QR code: {response.status_code} {response.reason}",
            )

        content_type = response.headers.get("content-type", "")
        if "image/png" not in content_type:
            logger.warning("Unexpected content type for QR code: %s", content_type or "(none)")

        filename = f"order-{order_id}-{int(time.time() * 1000)}.png"
        directory = os.path.join(self.root, QR_SUBDIR)
        path = os.path.join(directory, filename)
        try:
            os.makedirs(directory, exist_ok=True)
            with open(path, "wb") as f:
                f.write(response.content)
        except OSError as e:
            logger.error("Error saving QR code for order %s: %s", order_id, e)
            return StorageResult(success=False, error=f"Failed to store QR code: {e}")

        png_url = f"{self.public_base_url}{MEDIA_URL_PREFIX}/{QR_SUBDIR}/{filename}"
        logger.info("Stored QR code for order %s (%d bytes)", order_id, len(response.content))
        return StorageResult(
            success=True,
            png_url=png_url,
            storage_path=f"{QR_SUBDIR}/{filename}",
            file_size=len(response.content),
        )
