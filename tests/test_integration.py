import pytest

from conftest import ADMIN, BUYER, SHIPPING, TestingSessionLocal, fresh, sign, stock_of, webhook_body
from shopsphere.models import Order, Payment, PaymentStatus


@pytest.fixture
def paystack(mocker):
    """Processor double answering like Paystack for a single transaction."""
    response = mocker.Mock(status_code=200, ok=True)
    response.json.return_value = {
        "status": True,
        "message": "Authorization URL created",
        "data": {
            "authorization_url": "https://checkout.paystack.com/int_001",
            "access_code": "int_001",
            "reference": "int_001",
        },
    }
    return mocker.patch("shopsphere.paystack_service.requests.post", return_value=response)


@pytest.fixture
def resend_send(mocker, monkeypatch):
    monkeypatch.setenv("RESEND_API_KEY", "re_test")
    return mocker.patch("shopsphere.notifications.resend.Emails.send", return_value={"id": "email_1"})


def test_full_payment_lifecycle_integration(client, act_as, paystack, resend_send, mocker):
    """
    Test the full lifecycle:
    1. Catalog and cart (API -> DB)
    2. Checkout and payment initialization (API -> DB + Paystack mocked)
    3. Webhook success (Paystack -> API -> DB), then a redelivery
    4. Manual verify afterwards is served from the recorded result
    """

    # --- 1. CATALOG AND CART ---
    act_as(ADMIN)
    store = client.post("/stores", json={"name": "Corner Shop", "owner_email": "owner@example.com"})
    assert store.status_code == 201
    store_id = store.json()["data"]["id"]
    product = client.post(f"/stores/{store_id}/products",
                          json={"name": "Kettle", "price": 1000, "stock": 3})
    assert product.status_code == 201
    product_id = product.json()["data"]["id"]

    act_as(BUYER)
    assert client.get(f"/products/{product_id}").json()["data"]["stock"] == 3
    assert client.post(f"/cart/{product_id}", json={"quantity": 3}).status_code == 200

    # --- 2. CHECKOUT AND PAYMENT ---
    checkout = client.post("/cart/checkout", json={"shipping_info": SHIPPING})
    assert checkout.status_code == 200
    order_id = checkout.json()["data"]["id"]

    init = client.post(f"/orders/{order_id}/payments")
    assert init.status_code == 200
    reference = init.json()["data"]["reference"]
    assert reference == "ref_int_001"
    assert paystack.call_args.kwargs["json"]["amount"] == 300000

    session = TestingSessionLocal()
    payment = session.query(Payment).filter_by(transaction_reference=reference).first()
    assert payment.status == PaymentStatus.PENDING
    session.close()

    # --- 3. WEBHOOK SUCCESS ---
    body = webhook_body(
        "charge.success",
        reference="int_001",
        amount=300000,
        channel="card",
        authorization={"authorization_code": "AUTH_int"},
    )
    headers = {"x-paystack-signature": sign(body)}
    first = client.post("/payments/webhook", content=body, headers=headers)
    second = client.post("/payments/webhook", content=body, headers=headers)

    assert first.json() == {"ok": True, "outcome": "applied"}
    assert second.json() == {"ok": True, "outcome": "duplicate"}
    assert stock_of(product_id) == 0
    assert fresh(Order, order_id).is_paid
    resend_send.assert_called_once()
    assert resend_send.call_args.args[0]["to"] == ["owner@example.com"]

    # --- 4. VERIFY AFTER WEBHOOK ---
    gateway_get = mocker.patch("shopsphere.paystack_service.requests.get")
    verify = client.get("/payments/verify", params={"reference": reference})

    assert verify.status_code == 200
    assert verify.json()["data"]["from_cache"] is True
    assert verify.json()["data"]["authorization_code"] == "AUTH_int"
    gateway_get.assert_not_called()
    assert stock_of(product_id) == 0

    history = client.get("/payments/history").json()["data"]
    assert [(p["reference"], p["status"]) for p in history] == [(reference, "success")]


def test_products_listing_by_store(client, act_as):
    act_as(ADMIN)
    first = client.post("/stores", json={"name": "A"}).json()["data"]["id"]
    second = client.post("/stores", json={"name": "B"}).json()["data"]["id"]
    client.post(f"/stores/{first}/products", json={"name": "Kettle", "price": 10, "stock": 1})
    client.post(f"/stores/{second}/products", json={"name": "Mug", "price": 5})

    everything = client.get("/products").json()
    only_first = client.get("/products", params={"store_id": first}).json()

    assert everything["count"] == 2
    assert [p["name"] for p in only_first["data"]] == ["Kettle"]


def test_only_store_owner_adds_products(client, act_as):
    store_id = client.post("/stores", json={"name": "Mine"}).json()["data"]["id"]
    act_as(ADMIN.model_copy(update={"id": "someone", "role": "user"}))

    response = client.post(f"/stores/{store_id}/products", json={"name": "Kettle", "price": 10})

    assert response.status_code == 403


def test_unknown_product(client):
    assert client.get("/products/ghost").status_code == 404
