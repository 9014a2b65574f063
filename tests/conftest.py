import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import wa_order_bot.db as db
from wa_order_bot.config import Settings
from wa_order_bot.errors import MessagingError
from wa_order_bot.models import Base, BusinessProfile, Product, WhatsAppUser
from wa_order_bot.schemas.payments import PaymentResult, StorageResult

TENANT_ID = "tenant-street-sushi"
BOT_NUMBER = "6285700000001"
CUSTOMER_NUMBER = "6281234567890"
QR_URL = "https://api.sandbox.midtrans.com/v2/qris/trx-1/qr-code"


# =============================================================================
# Fake Adapters
# =============================================================================

class FakeMessaging:
    """Records every message instead of calling Fonnte."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, text, device_id=None, device_token=None):
        if self.fail:
            raise MessagingError("Fonnte API error: 500 - down")
        self.sent.append({"to": to, "text": text, "image_url": None, "device_token": device_token})

    def send_with_image(self, to, text, image_url, device_id=None, device_token=None, filename="qr-gopay.png"):
        if self.fail:
            raise MessagingError("Fonnte API error: 500 - down")
        self.sent.append({"to": to, "text": text, "image_url": image_url, "device_token": device_token})

    def texts_to(self, number):
        return [m["text"] for m in self.sent if m["to"] == number]


class FakeKnowledge:
    """Answers every question with a predictable string."""

    def __init__(self):
        self.calls = []

    def answer(self, profile, message, customer_name=None, history=()):
        self.calls.append({"message": message, "customer_name": customer_name, "history": list(history)})
        return f"KB: {message}"


class FakePayments:
    def __init__(self, result=None):
        self.result = result or PaymentResult(
            success=True, qr_code_url=QR_URL, order_id="order-1234abcd", transaction_id="trx-1",
        )
        self.calls = []

    def create_payment(self, tenant_id, customer_id, items, total, customer_name=None):
        self.calls.append({
            "tenant_id": tenant_id,
            "customer_id": customer_id,
            "items": list(items),
            "total": total,
            "customer_name": customer_name,
        })
        return self.result


class FakeQrStorage:
    def __init__(self, success=True):
        self.success = success
        self.calls = []

    def store_png(self, qr_url, order_id):
        self.calls.append((qr_url, order_id))
        if not self.success:
            return StorageResult(success=False, error="Failed to download QR code: 404 Not Found")
        return StorageResult(
            success=True,
            png_url=f"https://bot.example.com/media/qr-codes/order-{order_id}.png",
            storage_path=f"qr-codes/order-{order_id}.png",
            file_size=128,
        )


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite shared across connections via StaticPool."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite:///:memory:",
        qr_storage_dir=str(tmp_path / "media"),
        public_base_url="https://bot.example.com",
        midtrans_server_key="SB-Mid-server-test",
    )


# =============================================================================
# Seed Data
# =============================================================================

@pytest.fixture
def tenant(db_session):
    profile = BusinessProfile(
        user_id=TENANT_ID,
        business_name="Street Sushi",
        description="Sushi dan ramen",
        industry="restaurant",
        operating_hours="10.00 - 22.00",
        whatsapp_number=BOT_NUMBER,
        selected_plan="starter",
        ai_responses_count=0,
        fonnte_device_id="device-1",
        fonnte_device_token="token-1",
        outlets=["Palagan", "Kaliurang"],
    )
    db_session.add(profile)
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture
def products(db_session, tenant):
    rows = [
        Product(user_id=TENANT_ID, name="Salmon Roll", price="50000", category="sushi",
                description="Fresh salmon dengan nori"),
        Product(user_id=TENANT_ID, name="Tuna Nigiri", price="30000", category="sushi"),
        Product(user_id=TENANT_ID, name="Ocha", price="10000", category="drink"),
        Product(user_id=TENANT_ID, name="Gyoza Lama", price="20000", is_active=False),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture
def customer(db_session, tenant):
    user = WhatsAppUser(user_id=TENANT_ID, whatsapp_number=CUSTOMER_NUMBER, customer_name="Ria")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


# =============================================================================
# Fakes
# =============================================================================

@pytest.fixture
def fake_messaging():
    return FakeMessaging()


@pytest.fixture
def fake_knowledge():
    return FakeKnowledge()


@pytest.fixture
def fake_payments():
    return FakePayments()


@pytest.fixture
def fake_qr_storage():
    return FakeQrStorage()


# =============================================================================
# App
# =============================================================================

@pytest.fixture
def client(engine, session_factory, settings, fake_messaging, fake_knowledge, fake_payments, fake_qr_storage):
    """FastAPI TestClient on the in-memory database with fake adapters."""
    from wa_order_bot.main import app
    from wa_order_bot.message_processor import MessageProcessor
    from wa_order_bot.payments import PaymentNotificationHandler
    from wa_order_bot.routes.payments import get_notification_handler
    from wa_order_bot.routes.webhook import get_message_processor

    original_engine, original_session_local = db.engine, db.SessionLocal
    db.engine = engine
    db.SessionLocal = session_factory

    def override_get_db():
        db_sess = session_factory()
        try:
            yield db_sess
        finally:
            db_sess.close()

    def override_processor(db_sess=Depends(db.get_db)):
        return MessageProcessor(
            db_sess,
            settings,
            messaging=fake_messaging,
            knowledge=fake_knowledge,
            payments=fake_payments,
            qr_storage=fake_qr_storage,
        )

    def override_notification_handler(db_sess=Depends(db.get_db)):
        return PaymentNotificationHandler(settings, db_sess, fake_messaging)

    app.dependency_overrides[db.get_db] = override_get_db
    app.dependency_overrides[get_message_processor] = override_processor
    app.dependency_overrides[get_notification_handler] = override_notification_handler

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    db.engine, db.SessionLocal = original_engine, original_session_local
