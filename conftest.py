from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from authentication.models import Role, User, UserRole
from notifications.dispatcher import OrderNotifier
from orders.services import OrderService
from payments.exceptions import ProviderError
from payments.models import Payment
from payments.orchestrator import PaymentOrchestrator
from payments.providers.base import (
    InitiationResult,
    PaymentProviderAdapter,
    VerificationResult,
    WebhookEvent,
)
from products.models import Product


@pytest.fixture(autouse=True)
def shop_settings(settings):
    settings.RATELIMIT_ENABLE = False
    settings.SMS_DRY_RUN = True
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.SHOP = {
        **settings.SHOP,
        "FREE_SHIPPING_THRESHOLD": 25000,
        "DELIVERY_FEE": 2000,
        "ORDER_NUMBER_PREFIX": "BC",
        "TRACKING_NUMBER_PREFIX": "BC",
        "PAYMENT_MAX_RETRIES": 3,
    }
    return settings


class RecordingSender:
    channel = "recording"

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def send_status_change(self, order, new_status, estimated_delivery=None):
        self.calls.append((order.order_number, new_status, estimated_delivery))
        if self.fail:
            raise RuntimeError("sender down")


class FakeAdapter(PaymentProviderAdapter):
    """In-memory provider: scripted initiate outcome, verify status and webhook shape."""

    STATUS_MAP = {
        "SUCCESS": Payment.Status.COMPLETED,
        "FAILED": Payment.Status.FAILED,
        "PENDING": Payment.Status.PENDING,
    }

    def __init__(self, name, fail=False, enabled=True, verify_status="SUCCESS"):
        super().__init__(base_url="http://fake.test", api_key="key", enabled=enabled)
        self.name = name
        self.fail = fail
        self.verify_status = verify_status
        self.initiated = []
        self.verified = []

    def auth_headers(self):
        return {}

    def initiate(self, request):
        self.initiated.append(request)
        if self.fail:
            raise ProviderError(f"{self.name}: request timed out", provider=self.name)
        return InitiationResult(
            transaction_id=f"{self.name}-{len(self.initiated)}",
            payment_url=f"http://fake.test/pay/{request.reference}",
            raw={"ok": True},
        )

    def verify(self, transaction_id):
        self.verified.append(transaction_id)
        return VerificationResult(
            native_status=self.verify_status,
            status=self.map_status(self.verify_status),
            raw={"status": self.verify_status},
        )

    def decode_webhook(self, payload):
        native = payload.get("status")
        return WebhookEvent(
            transaction_id=payload.get("id"),
            native_status=native,
            status=self.map_status(native),
            raw=dict(payload),
        )


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def failing_sender():
    return RecordingSender(fail=True)


@pytest.fixture
def notifier(sender):
    return OrderNotifier([sender])


@pytest.fixture
def order_service(notifier):
    return OrderService(notifier=notifier)


@pytest.fixture
def make_adapter():
    return FakeAdapter


@pytest.fixture
def primary():
    return FakeAdapter("primary")


@pytest.fixture
def fallback():
    return FakeAdapter("fallback")


@pytest.fixture
def orchestrator(primary, fallback, order_service):
    return PaymentOrchestrator([primary, fallback], order_service)


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(price="5000", stock=10, track_stock=True, **fields):
        counter["n"] += 1
        return Product.objects.create(
            name=fields.pop("name", f"Body bébé {counter['n']}"),
            sku=fields.pop("sku", f"SKU-{counter['n']:03d}"),
            price=Decimal(price),
            stock_quantity=stock,
            track_stock=track_stock,
            **fields,
        )

    return _make


@pytest.fixture
def customer():
    return {
        "first_name": "Awa",
        "last_name": "Nkongho",
        "email": "awa@example.cm",
        "phone": "677123456",
    }


@pytest.fixture
def delivery():
    return {"address": "Rue 1.234, Bonapriso", "city": "Douala"}


@pytest.fixture
def place_order(order_service, make_product, customer, delivery):
    """Two-line order: 2 x 5000 and 1 x 3000."""

    def _place(delivery_only=False, payment_method="mtn-momo"):
        first = make_product(price="5000")
        second = make_product(price="3000")
        return order_service.create_order(
            items=[
                {"product_id": first.pk, "quantity": 2},
                {"product_id": second.pk, "quantity": 1},
            ],
            customer=customer,
            delivery=delivery,
            payment_method=payment_method,
            delivery_only=delivery_only,
        )

    return _place


@pytest.fixture
def admin_account(db):
    user = User.objects.create_user(
        username="gestion", email="gestion@babychic.cm", password="s3cret-pass",
    )
    role = Role.objects.create(name="ADMIN", display_name="Administrateur")
    UserRole.objects.create(user=user, role=role)
    return user


@pytest.fixture
def customer_account(db):
    return User.objects.create_user(
        username="client", email="client@babychic.cm", password="s3cret-pass",
    )


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def admin_client(admin_account):
    client = APIClient()
    client.force_authenticate(user=admin_account)
    return client


@pytest.fixture
def use_services(monkeypatch, order_service, orchestrator):
    """Route the views' service factories to the fake-backed services."""
    monkeypatch.setattr("orders.views.create_order_service", lambda: order_service)
    monkeypatch.setattr("orders.views.create_payment_orchestrator", lambda: orchestrator)
    monkeypatch.setattr("payments.views.create_payment_orchestrator", lambda: orchestrator)
    return orchestrator
