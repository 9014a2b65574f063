"""
Validation Functions.

Order completeness checking, plus Indonesian phone number clean-up and
validation used when talking to the WhatsApp gateway.
"""

import logging
import re
from typing import Any

import phonenumbers
from phonenumbers.phonenumberutil import NumberParseException

from ...schemas.ordering import ValidationResult

logger = logging.getLogger(__name__)

# Missing-field labels, in the order they are checked
FIELD_ITEMS = "menu items"
FIELD_NAME = "nama pelanggan"
FIELD_PHONE = "nomor telepon"
FIELD_OUTLET = "outlet pilihan"
FIELD_DELIVERY = "metode pengambilan (ambil/antar)"


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def validate_order(cart: Any) -> ValidationResult:
    """
    Report which required order fields are still missing.

    Required, in order: at least one item, customer name, phone number,
    outlet and delivery method. ``next_step`` is ``confirm_order`` when
    nothing is missing, ``collect_customer_details`` when only details are
    missing, and ``collect_menu_items`` when there are no items.

    Works on anything with the Cart attributes (a Cart model or a row).
    """
    items = getattr(cart, "items", None) or []
    missing = []

    if not items:
        missing.append(FIELD_ITEMS)
    if _blank(getattr(cart, "customer_name", None)):
        missing.append(FIELD_NAME)
    if _blank(getattr(cart, "phone_number", None)):
        missing.append(FIELD_PHONE)
    if _blank(getattr(cart, "outlet_preference", None)):
        missing.append(FIELD_OUTLET)
    if not getattr(cart, "delivery_method", None):
        missing.append(FIELD_DELIVERY)

    is_complete = not missing
    if is_complete:
        next_step = "confirm_order"
    elif items:
        next_step = "collect_customer_details"
    else:
        next_step = "collect_menu_items"

    logger.debug("Order validation: complete=%s missing=%s", is_complete, missing)
    return ValidationResult(is_complete=is_complete, missing_fields=missing, next_step=next_step)


def clean_phone_number(phone: str) -> str:
    """
    Convert a phone number to the 62xxx form the gateway expects.

    Examples:
        "0812-3456-7890"  -> "6281234567890"
        "+62 812 3456 7890" -> "6281234567890"
        "81234567890"     -> "6281234567890"
    """
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("0"):
        return "62" + digits[1:]
    if digits.startswith("62"):
        return digits
    if digits.startswith("8"):
        return "62" + digits
    return digits


def validate_phone_number(phone: str) -> tuple[str | None, str | None]:
    """
    Validate an Indonesian mobile number using Google's phonenumbers library.

    Returns:
        Tuple of (cleaned_phone, error_message). The cleaned phone is in
        62xxx form. On failure the first element is None and the second an
        Indonesian message suitable for the customer.
    """
    if not phone:
        return (None, "Nomor HP belum diisi.")

    cleaned = clean_phone_number(phone)
    if not re.fullmatch(r"628\d{8,11}", cleaned):
        return (None, "Nomor HP sepertinya kurang tepat. Contoh: 0812345678901")

    try:
        parsed = phonenumbers.parse("+" + cleaned, None)
    except NumberParseException as e:
        logger.warning("Phone validation failed: %s", e)
        return (None, "Nomor HP tidak dapat dibaca. Mohon kirim ulang.")

    if phonenumbers.region_code_for_number(parsed) != "ID":
        return (None, "Mohon gunakan nomor HP Indonesia.")
    if not phonenumbers.is_possible_number(parsed):
        return (None, "Nomor HP sepertinya kurang tepat. Contoh: 0812345678901")

    return (cleaned, None)
