"""
Shared test fixtures: in-memory order store, fake payment gateway, test client,
signed webhook helper, sample configurations.
"""

import hashlib
import hmac
import json
import os
import time

import pytest
from fastapi.testclient import TestClient

WEBHOOK_SECRET = "whsec_test_secret"

# Set before importing app modules
os.environ["ORDER_STORE"] = "memory"
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["UPLOAD_DIR"] = "./test_uploads"
os.environ["STRIPE_WEBHOOK_SECRET"] = WEBHOOK_SECRET

from fabstore.config import Settings
from fabstore.dependencies import Services, get_services
from fabstore.exceptions import PaymentGatewayError
from fabstore.main import app
from fabstore.order_store import InMemoryOrderStore
from fabstore.payments import PaymentIntent, StripeGateway
from fabstore.schemas import Address, CartItem


class FakeGateway(StripeGateway):
    """Real webhook signature checks, canned payment intents."""

    def __init__(self):
        super().__init__(secret_key="", webhook_secret=WEBHOOK_SECRET, tolerance=300)
        self.intents = []
        self.fail_next = False

    def create_payment_intent(self, amount_cents, currency, job_id, idempotency_key=None, metadata=None):
        if self.fail_next:
            self.fail_next = False
            raise PaymentGatewayError("Payment gateway error: card network unavailable")
        n = len(self.intents) + 1
        intent = PaymentIntent(
            intent_id=f"pi_test_{n}",
            client_secret=f"pi_test_{n}_secret_abc",
            amount_cents=amount_cents,
            currency=currency,
        )
        self.intents.append({
            "intent": intent,
            "job_id": job_id,
            "idempotency_key": idempotency_key,
            "metadata": metadata,
        })
        return intent


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Stripe-Signature header value for a payload."""
    ts = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> str:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}})


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        ORDER_STORE="memory",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        UPLOAD_URL_PREFIX="/uploads",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        WEBHOOK_INLINE=True,
        WEBHOOK_RETRY_DELAY=0,
        AUTO_GENERATE_SHOP_PACKET=False,
        COMPANY_NAME="Test Fabrication",
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def services(test_settings, store, gateway):
    svc = Services(test_settings, store=store, gateway=gateway)
    yield svc
    svc.shutdown()


@pytest.fixture
def client(services):
    """FastAPI test client wired to the test services."""
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def send_webhook(client):
    """Post a signed gateway event to the webhook route."""
    def _send(event_type, obj, event_id="evt_test_1"):
        payload = stripe_event(event_type, obj, event_id)
        return client.post(
            "/api/stripe/webhook",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"},
        )
    return _send


# --- Sample configurations ---

@pytest.fixture
def embed_config():
    """12 x 8 x 1/2 A36 plate, 4 studs, no finish, 10 pieces."""
    return {
        "productType": "steel-plate-embeds",
        "plate": {"length": 12, "width": 8, "thickness": 0.5, "material": "A36"},
        "studs": {"positions": [
            {"x": -4, "y": -2, "diameter": 0.5, "length": 4},
            {"x": 4, "y": -2, "diameter": 0.5, "length": 4},
            {"x": -4, "y": 2, "diameter": 0.5, "length": 4},
            {"x": 4, "y": 2, "diameter": 0.5, "length": 4},
        ]},
        "finish": "none",
        "quantity": 10,
        "leadTime": "standard",
    }


@pytest.fixture
def gate_config():
    """12x6 double swing, black powder coat, with posts."""
    return {
        "productType": "dumpster-gate",
        "size": "12x6",
        "style": "double-swing",
        "finish": "powder-coat-black",
        "mounting": "with-posts",
        "quantity": 1,
    }


@pytest.fixture
def utah_address():
    return Address(street="100 Main St", city="Salt Lake City", state="UT", zip="84101")


def cart_item(config: dict, item_id: str = "item-1") -> CartItem:
    raw = dict(config)
    product_type = raw.pop("productType")
    return CartItem(id=item_id, product_type=product_type, configuration=raw)


@pytest.fixture
def embed_cart(embed_config):
    return [cart_item(embed_config)]


@pytest.fixture
def checkout_body(embed_config):
    config = dict(embed_config)
    product_type = config.pop("productType")
    return {
        "items": [{"id": "item-1", "productType": product_type, "configuration": config, "price": 1.00}],
        "address": {"street": "100 Main St", "city": "Salt Lake City", "state": "UT", "zip": "84101"},
        "customerInfo": {"name": "Dana Builder", "email": "dana@example.com", "company": "Builder Co"},
    }
