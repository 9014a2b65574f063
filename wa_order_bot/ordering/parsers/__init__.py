"""
Deterministic Parsers.

Pure functions over a message (and the catalog). None of them touch the
store or the network, so each can be replaced by an NLU model without
changing the state machine.
"""

from .details import parse_details
from .intent import classify
from .items import parse_items
from .validators import (
    clean_phone_number,
    validate_order,
    validate_phone_number,
)

__all__ = [
    "classify",
    "parse_items",
    "parse_details",
    "validate_order",
    "clean_phone_number",
    "validate_phone_number",
]
