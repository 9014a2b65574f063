"""
Cart Store
==========

Durable per-(tenant, customer) cart records that survive across stateless
webhook deliveries.

Consistency Model:
------------------
Every step of the order flow is a separate read-modify-write against this
store; no transaction spans a whole step. Two guards keep concurrent
deliveries for the same customer from clobbering each other:

1. **Per-customer lock**: ``customer_lock()`` serializes mutations for one
   (tenant, customer) pair inside this process. The webhook pipeline holds
   it for the whole order step.

2. **Version compare-and-swap**: each row carries a ``version``. ``update()``
   only writes if the version is still the one the caller read, otherwise it
   raises ``CartConflictError``. This covers multiple workers, where the
   in-process lock does not reach.

Invariants:
-----------
- ``total_amount`` is recomputed from ``items`` on every write that touches
  items. Callers cannot set it directly.
- At most one non-completed cart per pair: ``create()`` is only called when
  ``find_active()`` found nothing, under the customer lock.
- Rows are never deleted. Finished carts are parked at step "completed".

Usage:
------
    store = CartStore(db)
    with customer_lock(tenant_id, customer_id):
        cart = store.get_or_create(tenant_id, customer_id)
        cart = store.update(cart.id, expected_version=cart.version, step="collecting_items")
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy import or_, update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import CartConflictError, CartStoreError
from ..models import CartOrder
from ..ordering.phases import CartStep
from ..schemas.ordering import Cart, CartItem, compute_total

logger = logging.getLogger(__name__)


# =============================================================================
# Per-Customer Locks
# =============================================================================

class _CustomerLock:
    """A lock plus the number of threads holding or waiting for it."""
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


# Entries live only while someone holds or waits on them
_customer_locks: Dict[Tuple[str, str], _CustomerLock] = {}
_locks_guard = threading.Lock()


@contextmanager
def customer_lock(tenant_id: str, customer_id: str) -> Iterator[None]:
    """Hold the in-process lock for one (tenant, customer) pair."""
    key = (tenant_id, customer_id)
    with _locks_guard:
        entry = _customer_locks.get(key)
        if entry is None:
            entry = _customer_locks[key] = _CustomerLock()
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _locks_guard:
            entry.users -= 1
            if entry.users == 0:
                del _customer_locks[key]


# =============================================================================
# Row Conversion
# =============================================================================

UPDATABLE_FIELDS = frozenset({
    "step",
    "items",
    "customer_name",
    "phone_number",
    "outlet_preference",
    "delivery_method",
    "special_requests",
})


def _to_cart(row: CartOrder) -> Cart:
    try:
        return Cart(
            id=row.id,
            tenant_id=row.user_id,
            customer_id=row.whatsapp_user_id,
            step=row.step,
            items=row.items or [],
            customer_name=row.customer_name,
            phone_number=row.phone_number,
            outlet_preference=row.outlet_preference,
            delivery_method=row.delivery_method,
            special_requests=row.special_requests,
            version=row.version or 1,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
    except ValidationError as e:
        raise CartStoreError(f"Cart {row.id} is malformed: {e}") from e


def _serialize_items(items: Sequence) -> List[dict]:
    serialized = []
    for item in items:
        if not isinstance(item, CartItem):
            item = CartItem.model_validate(item)
        serialized.append(item.model_dump())
    return serialized


# =============================================================================
# CartStore
# =============================================================================

class CartStore:
    """SQLAlchemy-backed cart persistence for one database session."""

    def __init__(self, db: Session):
        self.db = db

    def find_active(self, tenant_id: str, customer_id: str) -> Optional[Cart]:
        """Newest cart for the pair whose step is not "completed"."""
        try:
            rows = (
                self.db.query(CartOrder)
                .filter(CartOrder.user_id == tenant_id)
                .filter(CartOrder.whatsapp_user_id == customer_id)
                .filter(or_(CartOrder.step.is_(None), CartOrder.step != CartStep.COMPLETED.value))
                .order_by(CartOrder.updated_at.desc(), CartOrder.created_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            raise CartStoreError(f"Could not look up cart: {e}") from e

        if not rows:
            return None
        if len(rows) > 1:
            logger.warning(
                "Found %d open carts for tenant %s, using the newest (%s)",
                len(rows), tenant_id, rows[0].id,
            )
        return _to_cart(rows[0])

    def create(self, tenant_id: str, customer_id: str) -> Cart:
        """Insert an empty browsing cart."""
        row = CartOrder(
            user_id=tenant_id,
            whatsapp_user_id=customer_id,
            step=CartStep.BROWSING.value,
            items=[],
            total_amount=0.0,
            version=1,
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise CartStoreError(f"Could not create cart: {e}") from e
        logger.info("Created cart %s for tenant %s", row.id, tenant_id)
        return _to_cart(row)

    def get_or_create(self, tenant_id: str, customer_id: str) -> Cart:
        """Return the open cart, repairing a missing step, or create one."""
        cart = self.find_active(tenant_id, customer_id)
        if cart is None:
            return self.create(tenant_id, customer_id)

        row_step = self._raw_step(cart.id)
        if not row_step:
            logger.warning("Cart %s has no step, resetting to browsing", cart.id)
            cart = self.update(cart.id, expected_version=cart.version, step=CartStep.BROWSING.value)
        return cart

    def update(self, cart_id: str, expected_version: Optional[int] = None, **fields) -> Cart:
        """
        Write ``fields`` to a cart and return the fresh record.

        ``items`` may be CartItems or plain dicts; ``total_amount`` is derived
        from them. When ``expected_version`` is given the write only happens
        if the row still has that version.

        Raises:
            ValueError: unknown field name (including total_amount)
            CartConflictError: the row changed since it was read
            CartStoreError: any database failure, or the cart does not exist
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update cart fields: {sorted(unknown)}")

        values = dict(fields)
        if "step" in values and isinstance(values["step"], CartStep):
            values["step"] = values["step"].value
        if "items" in values:
            values["items"] = _serialize_items(values["items"] or [])
            values["total_amount"] = compute_total([CartItem.model_validate(i) for i in values["items"]])

        try:
            if expected_version is None:
                row = self.db.get(CartOrder, cart_id)
                if row is None:
                    raise CartStoreError(f"Cart {cart_id} not found")
                expected_version = row.version or 1

            values["version"] = expected_version + 1
            result = self.db.execute(
                sa_update(CartOrder)
                .where(CartOrder.id == cart_id)
                .where(CartOrder.version == expected_version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                if self.db.get(CartOrder, cart_id) is None:
                    raise CartStoreError(f"Cart {cart_id} not found")
                raise CartConflictError(cart_id, expected_version)
            self.db.commit()

            self.db.expire_all()
            row = self.db.get(CartOrder, cart_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise CartStoreError(f"Could not update cart {cart_id}: {e}") from e

        logger.debug("Updated cart %s -> version %d (%s)", cart_id, row.version, sorted(fields))
        return _to_cart(row)

    def clear(self, tenant_id: str, customer_id: str) -> None:
        """
        Park every open cart for the pair at "completed" with no items.

        Failures are logged and swallowed: a cart that could not be cleared
        is picked up again on the next message.
        """
        try:
            self.db.execute(
                sa_update(CartOrder)
                .where(CartOrder.user_id == tenant_id)
                .where(CartOrder.whatsapp_user_id == customer_id)
                .where(or_(CartOrder.step.is_(None), CartOrder.step != CartStep.COMPLETED.value))
                .values(
                    step=CartStep.COMPLETED.value,
                    items=[],
                    total_amount=0.0,
                    version=CartOrder.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            self.db.expire_all()
            logger.info("Cleared cart for tenant %s", tenant_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Error clearing cart for tenant %s: %s", tenant_id, e)

    def get(self, cart_id: str) -> Optional[Cart]:
        """Load a cart by id regardless of step."""
        try:
            row = self.db.get(CartOrder, cart_id)
        except SQLAlchemyError as e:
            raise CartStoreError(f"Could not load cart {cart_id}: {e}") from e
        return _to_cart(row) if row is not None else None

    def _raw_step(self, cart_id: str) -> Optional[str]:
        row = self.db.get(CartOrder, cart_id)
        return row.step if row is not None else None
