import hashlib
import hmac
import json
import time

import bcrypt
import pytest
from fastapi.testclient import TestClient

from paystock import models
from paystock.config import Settings
from paystock.crud.inventory import inventory_ledger
from paystock.database import create_db_engine, create_session_factory
from paystock.main import create_app
from paystock.payments.coordinator import PaymentConfirmationCoordinator

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_PASSWORD = "pass123"
TRAINER = "Trainer free size"


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, subject, body):
        self.sent.append((subject, body))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'paystock.db'}",
        DB_LOCK_TIMEOUT_SECONDS=30,
        WALLET_DEDUP_WINDOW_SECONDS=3600,
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        STRIPE_SECRET_KEY="sk_test_dummy",
        SMTP_HOST=None,
        ADMIN_USERNAME="admin",
        ADMIN_PASSWORD_HASH=bcrypt.hashpw(ADMIN_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode(),
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings)
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = create_session_factory(engine)
    db = factory()
    with db.begin():
        inventory_ledger.seed(db)
    db.close()
    return factory


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def coordinator(session_factory, notifier):
    return PaymentConfirmationCoordinator(session_factory, notifier=notifier)


@pytest.fixture
def stock_of(session_factory):
    def _stock_of(name=TRAINER):
        db = session_factory()
        try:
            return inventory_ledger.get_by_name(db, name).stock
        finally:
            db.close()
    return _stock_of


@pytest.fixture
def order_count(session_factory):
    def _order_count():
        db = session_factory()
        try:
            return len(db.query(models.Order).all())
        finally:
            db.close()
    return _order_count


@pytest.fixture
def set_stock(session_factory):
    def _set_stock(stock, name=TRAINER):
        db = session_factory()
        with db.begin():
            db.query(models.Product).filter(models.Product.name == name).update({"stock": stock})
        db.close()
    return _set_stock


@pytest.fixture
def stripe_event():
    def _stripe_event(intent_id="pi_123", amount=8500, description=TRAINER,
                      event_id="evt_123", event_type="payment_intent.succeeded", metadata=None):
        return json.dumps({
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {
                "object": {
                    "id": intent_id,
                    "object": "payment_intent",
                    "amount": amount,
                    "currency": "jpy",
                    "description": description,
                    "metadata": metadata if metadata is not None else {
                        "name": "Taro Yamada",
                        "address": "1-2-3 Shibuya, Tokyo",
                        "phone": "090-0000-0000",
                    },
                },
            },
        }).encode("utf-8")
    return _stripe_event


@pytest.fixture
def sign():
    """Build a Stripe-Signature header for a raw payload."""
    def _sign(payload: bytes, secret=WEBHOOK_SECRET, timestamp=None):
        timestamp = int(timestamp if timestamp is not None else time.time())
        signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
        digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"
    return _sign


@pytest.fixture
def app(settings, notifier):
    app = create_app(settings)
    app.state.coordinator.notifier = notifier
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client
