"""
Customer Detail Parser.

Independent regex heuristics for name, phone, outlet and delivery method.
Any subset may match; fields not found are left as None so the caller can
merge onto what the cart already knows.
"""

from typing import Optional

from ...schemas.ordering import CustomerDetails
from .constants import (
    DELIVERY_KEYWORDS,
    NAME_PATTERN,
    OUTLET_PATTERNS,
    OUTLET_STOPWORDS,
    PHONE_PATTERN,
    PHONE_SEPARATORS,
    PICKUP_KEYWORDS,
)


def extract_phone(message: str) -> Optional[str]:
    match = PHONE_PATTERN.search(message)
    if not match:
        return None
    return PHONE_SEPARATORS.sub("", match.group(0))


def extract_name(message: str) -> Optional[str]:
    match = NAME_PATTERN.search(message)
    return match.group(1) if match else None


def extract_outlet(message: str) -> Optional[str]:
    # Only the first match of each pattern is considered
    for pattern in OUTLET_PATTERNS:
        match = pattern.search(message)
        if not match or not match.group(1):
            continue
        outlet = match.group(1).strip()
        if outlet and outlet.lower() not in OUTLET_STOPWORDS:
            return outlet
    return None


def extract_delivery_method(message: str) -> Optional[str]:
    lower = message.lower()
    if any(keyword in lower for keyword in DELIVERY_KEYWORDS):
        return "delivery"
    if any(keyword in lower for keyword in PICKUP_KEYWORDS):
        return "pickup"
    return None


def parse_details(message: str) -> CustomerDetails:
    """
    Extract whatever customer details ``message`` contains.

    Example:
        "Nama saya Ria, HP 081234567890, outlet Palagan, ambil sendiri"
        -> name "Ria", phone "081234567890", outlet "Palagan", pickup
    """
    return CustomerDetails(
        customer_name=extract_name(message),
        phone_number=extract_phone(message),
        outlet_preference=extract_outlet(message),
        delivery_method=extract_delivery_method(message),
    )
