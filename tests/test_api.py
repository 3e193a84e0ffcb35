import json
from types import SimpleNamespace

import stripe

ADMIN = ("admin", "pass123")
TRAINER = "Trainer free size"


def _wallet(**fields):
    body = {"amount": 8500, "description": TRAINER, "name": "Hanako", "address": "Osaka", "phone": "080"}
    body.update(fields)
    return json.dumps(body)


def test_root_and_health(client):
    assert client.get("/").json()["endpoints"]["webhook"] == "/webhook"
    health = client.get("/health").json()
    assert health["database"] == "connected"


def test_products_lists_seeded_catalog(client):
    response = client.get("/products")

    assert response.status_code == 200
    products = response.json()
    assert len(products) == 1
    assert products[0]["name"] == TRAINER
    assert products[0]["price"] == 8500
    assert products[0]["stock"] == 9


# -----------------------------
# Card webhook
# -----------------------------
def test_webhook_applies_payment(client, stripe_event, sign, notifier):
    payload = stripe_event(intent_id="pi_1")

    response = client.post("/webhook", content=payload, headers={"Stripe-Signature": sign(payload)})

    assert response.status_code == 200
    assert response.json() == {"received": True, "status": "success", "duplicate": False}
    assert client.get("/products").json()[0]["stock"] == 8
    assert len(notifier.sent) == 1


def test_webhook_retry_is_idempotent(client, stripe_event, sign):
    payload = stripe_event(intent_id="pi_1", event_id="evt_1")
    headers = {"Stripe-Signature": sign(payload)}

    first = client.post("/webhook", content=payload, headers=headers)
    second = client.post("/webhook", content=payload, headers=headers)

    assert first.json()["duplicate"] is False
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert client.get("/products").json()[0]["stock"] == 8
    assert len(client.get("/admin/orders", auth=ADMIN).json()) == 1


def test_webhook_rejects_bad_signature_without_side_effects(client, stripe_event, sign):
    payload = stripe_event()
    tampered = stripe_event(amount=1)

    missing = client.post("/webhook", content=payload)
    forged = client.post("/webhook", content=tampered, headers={"Stripe-Signature": sign(payload)})

    assert missing.status_code == 400
    assert forged.status_code == 400
    assert client.get("/products").json()[0]["stock"] == 9
    assert client.get("/admin/orders", auth=ADMIN).json() == []


def test_webhook_acknowledges_other_event_types(client, stripe_event, sign):
    payload = stripe_event(event_type="charge.refunded")

    response = client.post("/webhook", content=payload, headers={"Stripe-Signature": sign(payload)})

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_webhook_out_of_stock_is_acknowledged(client, stripe_event, sign, set_stock):
    set_stock(0)
    payload = stripe_event()

    response = client.post("/webhook", content=payload, headers={"Stripe-Signature": sign(payload)})

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert response.json()["reason"] == "out_of_stock"


# -----------------------------
# Wallet
# -----------------------------
def test_wallet_payment_success(client, notifier):
    response = client.post("/paypay-payment", content=_wallet(), headers={"Idempotency-Key": "tok-1"})

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert client.get("/products").json()[0]["stock"] == 8

    orders = client.get("/admin/orders", auth=ADMIN).json()
    assert orders[0]["method"] == "WALLET"
    assert orders[0]["dedup_key"] == "wallet:tok-1"
    assert orders[0]["address"] == "Osaka"


def test_wallet_duplicate_token(client):
    client.post("/paypay-payment", content=_wallet(idempotency_key="tok-1"))
    response = client.post("/paypay-payment", content=_wallet(idempotency_key="tok-1"))

    assert response.status_code == 200
    assert response.json() == {"status": "success", "duplicate": True}
    assert client.get("/products").json()[0]["stock"] == 8


def test_wallet_without_token_uses_derived_key(client):
    client.post("/paypay-payment", content=_wallet())
    response = client.post("/paypay-payment", content=_wallet())

    assert response.json()["duplicate"] is True
    assert client.get("/products").json()[0]["stock"] == 8


def test_wallet_price_mismatch(client):
    response = client.post("/paypay-payment", content=_wallet(amount=1, idempotency_key="tok-1"))

    assert response.status_code == 422
    assert response.json()["reason"] == "price_mismatch"
    assert client.get("/products").json()[0]["stock"] == 9


def test_wallet_out_of_stock(client, set_stock):
    set_stock(0)

    response = client.post("/paypay-payment", content=_wallet(idempotency_key="tok-1"))

    assert response.status_code == 409
    assert response.json() == {"status": "fail", "reason": "out_of_stock", "message": "Out of stock"}


def test_wallet_unknown_product(client):
    response = client.post("/paypay-payment", content=_wallet(description="Sandals", idempotency_key="tok-1"))

    assert response.status_code == 404
    assert response.json()["reason"] == "unknown_product"


def test_wallet_malformed(client):
    response = client.post("/paypay-payment", content=json.dumps({"amount": -1, "description": TRAINER}))

    assert response.status_code == 400


def test_wallet_oversized_idempotency_header(client):
    response = client.post("/paypay-payment", content=_wallet(), headers={"Idempotency-Key": "x" * 300})

    assert response.status_code == 400
    assert client.get("/products").json()[0]["stock"] == 9


# -----------------------------
# Admin report
# -----------------------------
def test_admin_requires_credentials(client):
    anonymous = client.get("/admin")
    wrong = client.get("/admin", auth=("admin", "nope"))

    assert anonymous.status_code == 401
    assert anonymous.headers["www-authenticate"] == 'Basic realm="Admin"'
    assert wrong.status_code == 401


def test_admin_report_lists_orders(client):
    client.post("/paypay-payment", content=_wallet(name="<b>Hanako</b>", idempotency_key="tok-1"))

    response = client.get("/admin", auth=ADMIN)

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert TRAINER in response.text
    assert "&lt;b&gt;Hanako&lt;/b&gt;" in response.text


def test_admin_without_configured_hash_is_closed(settings, notifier):
    from fastapi.testclient import TestClient
    from paystock.main import create_app

    settings.ADMIN_PASSWORD_HASH = None
    with TestClient(create_app(settings)) as client:
        assert client.get("/admin", auth=ADMIN).status_code == 401


# -----------------------------
# Payment intent
# -----------------------------
def test_create_payment_intent(client, monkeypatch):
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(client_secret="pi_1_secret_abc")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    response = client.post("/create-payment-intent", json={
        "amount": 8500, "description": TRAINER, "name": "Taro", "address": "Tokyo", "phone": "090",
    })

    assert response.status_code == 200
    assert response.json() == {"clientSecret": "pi_1_secret_abc"}
    assert calls[0]["currency"] == "jpy"
    assert calls[0]["metadata"] == {"name": "Taro", "address": "Tokyo", "phone": "090"}
    assert calls[0]["automatic_payment_methods"] == {"enabled": True}


def test_create_payment_intent_stripe_error(client, monkeypatch):
    def fake_create(**kwargs):
        raise stripe.StripeError("card processor unavailable")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    response = client.post("/create-payment-intent", json={"amount": 8500, "description": TRAINER})

    assert response.status_code == 500
    assert "card processor unavailable" in response.json()["error"]
