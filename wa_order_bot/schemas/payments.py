"""
Payment Schemas.

Results returned by the payment and QR storage adapters, plus the Midtrans
HTTP notification body. Adapters return ``success=False`` with an ``error``
string instead of raising.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class PaymentResult(BaseModel):
    success: bool
    qr_code_url: Optional[str] = None
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None


class StorageResult(BaseModel):
    success: bool
    png_url: Optional[str] = None
    storage_path: Optional[str] = None
    file_size: Optional[int] = None
    error: Optional[str] = None


class MidtransNotification(BaseModel):
    """
    Body Midtrans POSTs when a transaction changes status.

    Only the fields used for signature verification and status mapping are
    declared; anything else Midtrans sends is kept but ignored.
    """
    model_config = ConfigDict(extra="allow")

    order_id: str
    transaction_status: str
    status_code: str
    gross_amount: str
    signature_key: str
    fraud_status: Optional[str] = None
    payment_type: Optional[str] = None
    transaction_id: Optional[str] = None
