import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Boolean,
    JSON,
    DateTime,
    ForeignKey,
    Text,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


# --- Tenant ---

class BusinessProfile(Base):
    """
    A business using the platform. ``user_id`` is the tenant id every other
    table is keyed on; ``whatsapp_number`` is the bot number customers write to.
    """
    __tablename__ = "business_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, nullable=False, index=True)
    business_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    industry = Column(String, nullable=True)
    operating_hours = Column(String, nullable=True)
    whatsapp_number = Column(String, unique=True, nullable=True, index=True)

    selected_plan = Column(String, nullable=False, default="starter")
    ai_responses_count = Column(Integer, nullable=False, default=0)
    ai_responses_last_reset_month = Column(Integer, nullable=True)

    fonnte_device_id = Column(String, nullable=True)
    fonnte_device_token = Column(String, nullable=True)

    # Outlet names offered when collecting pickup/delivery details
    outlets = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class WhatsAppUser(Base):
    """A customer as seen by one tenant. The same number may exist per tenant."""
    __tablename__ = "whatsapp_users"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=False, index=True)
    whatsapp_number = Column(String, nullable=False)
    customer_name = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "whatsapp_number", name="uq_whatsapp_users_tenant_number"),
    )


# --- Catalog ---

class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    price = Column(String, nullable=True)  # decimal-as-string, as entered in the dashboard
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


# --- Cart ---

class CartOrder(Base):
    """
    In-progress order for one (tenant, customer) pair.

    ``version`` is bumped on every write and used as a compare-and-swap token
    by CartStore.update(). Rows are never deleted; finished carts sit at
    step "completed".
    """
    __tablename__ = "cart_orders"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=False)
    whatsapp_user_id = Column(String, nullable=False)
    step = Column(String, nullable=True, default="browsing")
    items = Column(JSON, nullable=True, default=list)
    total_amount = Column(Float, nullable=False, default=0.0)
    customer_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    outlet_preference = Column(String, nullable=True)
    delivery_method = Column(String, nullable=True)  # pickup / delivery
    special_requests = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_cart_orders_tenant_customer_step", "user_id", "whatsapp_user_id", "step"),
    )


# --- Orders ---

class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=False, index=True)
    whatsapp_user_id = Column(String, nullable=False, index=True)
    total_amount = Column(Float, nullable=False, default=0.0)
    status = Column(String, nullable=False, default="pending", index=True)  # pending / paid / failed
    payment_method = Column(String, nullable=False, default="qris_gopay")
    qr_code_url = Column(String, nullable=True)
    transaction_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String, nullable=True)
    product_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price_at_order = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")


# --- Conversation log ---

class Conversation(Base):
    """One inbound or outbound WhatsApp message, used for history and analytics."""
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False)
    whatsapp_number = Column(String, nullable=False)
    message_type = Column(String, nullable=False)  # incoming / outgoing
    message_content = Column(Text, nullable=False, default="")
    ai_response = Column(Text, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_conversations_tenant_number_created", "user_id", "whatsapp_number", "created_at"),
    )


# --- Knowledge base ---

class KnowledgeDocument(Base):
    """A chunk of tenant knowledge (FAQ, product sheet, policy) with its embedding."""
    __tablename__ = "knowledge_documents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    content_type = Column(String, nullable=False, default="faq")
    content_text = Column(Text, nullable=False)
    embedding = Column(JSON, nullable=True)  # list of floats


# --- Webhook idempotency ---

class ProcessedMessage(Base):
    """Delivery keys of webhooks already handled; a repeat insert means a duplicate."""
    __tablename__ = "processed_messages"

    id = Column(Integer, primary_key=True, index=True)
    message_key = Column(String(64), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
