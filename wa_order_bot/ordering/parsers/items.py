"""
Order Item Parser.

Extracts {product, quantity} pairs from free text by name containment and a
handful of quantity regex shapes. Pure function of (message, products).
"""

import logging
import re
from typing import Iterable, List, Optional

from ...schemas.ordering import CatalogProduct, ParsedOrderItem
from .constants import (
    MAX_QUANTITY,
    MIN_QUANTITY,
    ORDERING_PHRASE_PATTERNS,
    PRICE_PREFIX_PATTERN,
    QUANTITY_PATTERN_TEMPLATES,
)

logger = logging.getLogger(__name__)


def extract_ordering_text(message: str) -> str:
    """
    Strip a leading ordering phrase ("saya mau pesan ...", "pesan ...").

    Returns the item-bearing remainder, or the whole message when no
    phrase matches.
    """
    for pattern in ORDERING_PHRASE_PATTERNS:
        match = pattern.search(message)
        if match and match.group(1):
            return match.group(1).strip()
    return message


def name_variants(name: str) -> List[str]:
    """Lowercase name, without spaces, with underscores, and its first word."""
    lower = name.lower()
    words = lower.split(" ")
    variants = [
        lower,
        re.sub(r"\s+", "", lower),
        re.sub(r"\s+", "_", lower),
        words[0],
    ]
    return [v for v in variants if v]


def parse_price(raw: Optional[str]) -> float:
    """Leading decimal number of a price string; 0 when there is none or it is negative."""
    match = PRICE_PREFIX_PATTERN.match(raw or "")
    if not match:
        return 0.0
    try:
        return max(0.0, float(match.group(0)))
    except ValueError:
        return 0.0


def find_quantity(product_name: str, ordering_text: str, message: str) -> int:
    """
    Look for an explicit quantity next to a product name.

    Each pattern is tried on the isolated ordering text first and the full
    message only if that found nothing. The first value within 1..50 wins;
    out-of-range values move on to the next pattern. Defaults to 1.
    """
    escaped = re.escape(product_name.lower())
    for template in QUANTITY_PATTERN_TEMPLATES:
        pattern = re.compile(template.format(name=escaped), re.IGNORECASE)
        match = pattern.search(ordering_text) or pattern.search(message)
        if not match:
            continue
        quantity = int(match.group(1))
        if MIN_QUANTITY <= quantity <= MAX_QUANTITY:
            return quantity
    return 1


def parse_items(message: str, products: Iterable[CatalogProduct]) -> List[ParsedOrderItem]:
    """
    Find every catalog product mentioned in ``message``.

    Results follow catalog order, not message order, and a product appears
    at most once per call: a second mention of the same product is absorbed
    into the first.
    """
    lower_message = message.lower().strip()
    ordering_text = extract_ordering_text(message)
    lower_ordering = ordering_text.lower()

    found: List[ParsedOrderItem] = []
    for product in products:
        if not product.name or not product.name.strip():
            continue
        variants = name_variants(product.name)
        if not any(v in lower_ordering or v in lower_message for v in variants):
            continue

        quantity = find_quantity(product.name, ordering_text, message)
        found.append(ParsedOrderItem(
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            price=parse_price(product.price),
        ))
        logger.debug("Parsed item: %s x%d", product.name, quantity)

    return found
