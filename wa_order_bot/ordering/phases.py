"""
Cart Step Definitions.

This module defines the CartStep enum representing the steps of the
conversational order flow, in the order the flow moves through them.
"""

from enum import Enum
from typing import Optional


class CartStep(str, Enum):
    """Steps of the order flow. COMPLETED is terminal."""
    BROWSING = "browsing"
    COLLECTING_ITEMS = "collecting_items"
    COLLECTING_DETAILS = "collecting_details"
    CONFIRMING_ORDER = "confirming_order"
    AWAITING_PAYMENT = "awaiting_payment"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["CartStep"]:
        """Return the step for a stored value, or None if it is not a known step."""
        try:
            return cls(value)
        except ValueError:
            return None


STEP_ORDER = {step: index for index, step in enumerate(CartStep)}


def is_forward(current: CartStep, new: CartStep) -> bool:
    """True if moving from ``current`` to ``new`` does not go backwards."""
    return STEP_ORDER[new] >= STEP_ORDER[current]
