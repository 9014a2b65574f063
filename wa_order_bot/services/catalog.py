"""
Product catalog access.

Read-only view of a tenant's active products. There is deliberately no
cache: every order step reads the catalog fresh.
"""

import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Product
from ..schemas.ordering import CatalogProduct

logger = logging.getLogger(__name__)


class ProductCatalog:
    def __init__(self, db: Session):
        self.db = db

    def list_active_products(self, tenant_id: str) -> List[CatalogProduct]:
        """
        Active products for a tenant, sorted by name.

        A database failure is logged and treated as an empty catalog, which
        the order flow already handles (fallback menu / "menu not available").
        """
        try:
            rows = (
                self.db.query(Product)
                .filter(Product.user_id == tenant_id)
                .filter(Product.is_active.is_(True))
                .order_by(Product.name)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("Failed to load products for tenant %s: %s", tenant_id, e)
            self.db.rollback()
            return []
        return [CatalogProduct.model_validate(row) for row in rows]
