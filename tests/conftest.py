import hashlib
import hmac
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_app.db")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from shopsphere.auth import CurrentUser, get_current_user
from shopsphere.database import Base, init_db, make_engine
from shopsphere.main import app as fastapi_app
from shopsphere.models import Order, OrderItem, Payment, PaymentStatus, Product, Store

# Setup test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = make_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

BUYER = CurrentUser(id="user-1", email="buyer@example.com", role="user")
OTHER = CurrentUser(id="user-2", email="other@example.com", role="user")
ADMIN = CurrentUser(id="admin-1", email="admin@example.com", role="admin")

WEBHOOK_SECRET = "whsec_test"

SHIPPING = {
    "address": "12 Marina Road",
    "city": "Lagos",
    "state": "Lagos",
    "country": "NG",
    "postal_code": "100001",
    "phone": "+2348000000000",
}


@pytest.fixture(autouse=True)
def setup_db():
    init_db(engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def settings(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("PAYSTACK_SECRET_KEY", "sk_test_123")
    monkeypatch.setenv("PAYSTACK_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("APP_URL", "http://testserver")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.delenv("PAYSTACK_BASE_URL", raising=False)
    monkeypatch.delenv("PAYMENT_CALLBACK_URL", raising=False)
    monkeypatch.delenv("RESEND_API_KEY", raising=False)


@pytest.fixture
def no_sleep(mocker):
    return mocker.patch("shopsphere.paystack_service.time.sleep")


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def act_as():
    def _act_as(user):
        fastapi_app.dependency_overrides[get_current_user] = lambda: user
    return _act_as


@pytest.fixture
def client(monkeypatch, act_as):
    # Every route opens its session through shopsphere.database.SessionLocal
    monkeypatch.setattr("shopsphere.database.SessionLocal", TestingSessionLocal)
    act_as(BUYER)
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def store(db):
    store = Store(id="store-1", name="Corner Shop", owner_id="owner-1", owner_email="owner@example.com")
    db.add(store)
    db.commit()
    return store


@pytest.fixture
def make_product(db, store):
    def _make(product_id="prod-1", stock=10, price=1000.0, name="Blender"):
        product = Product(id=product_id, store_id=store.id, name=name, price=price,
                          image=f"/img/{product_id}.jpg", stock=stock)
        db.add(product)
        db.commit()
        return product
    return _make


@pytest.fixture
def make_order(db):
    def _make(lines, user_id=BUYER.id, order_id="order-1"):
        order = Order(id=order_id, user_id=user_id, shipping_info=SHIPPING)
        for position, (product, quantity) in enumerate(lines):
            order.items.append(OrderItem(
                product_id=product.id, position=position, name=product.name,
                quantity=quantity, price=product.price, image=product.image,
            ))
        order.items_price = sum(item.price * item.quantity for item in order.items)
        order.total_price = order.items_price
        db.add(order)
        db.commit()
        return order
    return _make


@pytest.fixture
def make_payment(db):
    def _make(order, reference="ref_abc123", status=PaymentStatus.PENDING, user_id=BUYER.id, **fields):
        payment = Payment(
            order_id=order.id,
            user_id=user_id,
            email="buyer@example.com",
            amount=order.total_price,
            status=status,
            transaction_reference=reference,
            details={},
            **fields,
        )
        db.add(payment)
        db.commit()
        return payment
    return _make


@pytest.fixture
def scenario(make_product, make_order, make_payment):
    """One line of 3 x product P at 1000, P.stock = 10, payment pending."""
    product = make_product(stock=10, price=1000.0)
    order = make_order([(product, 3)])
    payment = make_payment(order)
    return product, order, payment


def success_data(reference="ref_abc123", amount=300000, channel="card", code="AUTH_xyz"):
    return {
        "status": "success",
        "reference": reference[4:] if reference.startswith("ref_") else reference,
        "amount": amount,
        "channel": channel,
        "gateway_response": "Approved",
        "authorization": {"authorization_code": code},
    }


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def webhook_body(event="charge.success", **data) -> bytes:
    return json.dumps({"event": event, "data": data}).encode()


def stock_of(product_id):
    session = TestingSessionLocal()
    try:
        return session.get(Product, product_id).stock
    finally:
        session.close()


def fresh(model, key):
    session = TestingSessionLocal()
    try:
        obj = session.get(model, key)
        session.expunge(obj)
        return obj
    finally:
        session.close()
