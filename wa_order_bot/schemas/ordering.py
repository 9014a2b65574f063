"""
Order Core Schemas.

Typed records passed between the cart store, the parsers, the validator and
the order state machine. Carts are validated here when they leave the store,
so the state machine can assume well-formed items and a consistent total.
"""

import logging
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class CatalogProduct(BaseModel):
    """An active product as read from the tenant's catalog."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    price: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    is_active: bool = True


class ParsedOrderItem(BaseModel):
    """One product extracted from a customer message. Never persisted directly."""
    product_id: str
    product_name: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class CartItem(BaseModel):
    """A line in the cart, in the order it was added."""
    product_id: str
    product_name: str
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0, validation_alias=AliasChoices("unit_price", "price"))

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price

    @classmethod
    def from_parsed(cls, item: ParsedOrderItem) -> "CartItem":
        return cls(
            product_id=item.product_id,
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price=item.price,
        )


def compute_total(items: List[CartItem]) -> float:
    """Sum of quantity x unit price over all items."""
    return sum(item.line_total for item in items)


class Cart(BaseModel):
    """
    Read-only view of a cart row.

    ``step`` is kept as a plain string so a corrupt value survives loading
    and can be reset by the state machine instead of failing validation.
    ``total_amount`` is always recomputed from ``items``.
    """
    id: str
    tenant_id: str
    customer_id: str
    step: str = "browsing"
    items: List[CartItem] = Field(default_factory=list)
    total_amount: float = 0.0
    customer_name: Optional[str] = None
    phone_number: Optional[str] = None
    outlet_preference: Optional[str] = None
    delivery_method: Optional[Literal["pickup", "delivery"]] = None
    special_requests: Optional[str] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("step", mode="before")
    @classmethod
    def _default_step(cls, value: Any) -> str:
        return value or "browsing"

    @field_validator("items", mode="before")
    @classmethod
    def _drop_malformed_items(cls, value: Any) -> List[Any]:
        if not value:
            return []
        good = []
        for raw in value:
            try:
                good.append(CartItem.model_validate(raw))
            except (ValueError, TypeError) as e:
                logger.warning("Dropping malformed cart item %r: %s", raw, e)
        return good

    @field_validator("delivery_method", mode="before")
    @classmethod
    def _unknown_method_is_unset(cls, value: Any) -> Optional[str]:
        return value if value in ("pickup", "delivery") else None

    def model_post_init(self, __context: Any) -> None:
        self.total_amount = compute_total(self.items)


class CustomerDetails(BaseModel):
    """Fields found in one message. Anything not found stays None."""
    customer_name: Optional[str] = None
    phone_number: Optional[str] = None
    outlet_preference: Optional[str] = None
    delivery_method: Optional[Literal["pickup", "delivery"]] = None


IntentLabel = Literal[
    "menu", "order", "location", "reservation", "birthday",
    "event", "promo", "workshop", "general",
]


class IntentResult(BaseModel):
    is_ordering: bool
    intent: IntentLabel
    confidence: float


class ValidationResult(BaseModel):
    is_complete: bool
    missing_fields: List[str]
    next_step: Literal["confirm_order", "collect_customer_details", "collect_menu_items"]
