from decimal import Decimal

import pytest

from orders.models import Order
from payments.exceptions import (
    AllProvidersFailed,
    InvalidWebhook,
    PaymentNotFound,
    PaymentNotRetryable,
    UnsupportedProvider,
)
from payments.models import Payment
from payments.orchestrator import PaymentOrchestrator

pytestmark = pytest.mark.django_db


@pytest.fixture
def initiated(place_order, orchestrator):
    """Full-payment order whose initial payment was started with the primary provider."""
    order, payment = place_order()
    payment, _ = orchestrator.initiate_payment(order, payment=payment)
    return order, payment


class TestInitiation:
    def test_primary_wins_and_fallback_is_not_called(self, place_order, orchestrator, primary, fallback):
        order, payment = place_order()
        payment, result = orchestrator.initiate_payment(order, payment=payment)

        assert payment.provider == "primary"
        assert payment.external_transaction_id == result.transaction_id == "primary-1"
        assert payment.amount == Decimal("15000")
        assert len(primary.initiated) == 1
        assert fallback.initiated == []
        assert order.payments.count() == 1

    def test_fallback_after_primary_failure(self, place_order, order_service, fallback, make_adapter):
        orchestrator = PaymentOrchestrator([make_adapter("primary", fail=True), fallback], order_service)
        order, _ = place_order()
        before = order.payments.count()

        payment, _ = orchestrator.initiate_payment(order, amount=Decimal("5000"), phone_number="690000000")

        assert payment.provider == "fallback"
        assert payment.amount == Decimal("5000")
        assert payment.customer_phone == "690000000"
        assert order.payments.count() == before + 1
        assert not order.payments.filter(provider="primary").exists()

    def test_provider_hint_goes_first(self, place_order, orchestrator, primary, fallback):
        order, payment = place_order()
        payment, _ = orchestrator.initiate_payment(order, payment=payment, provider_hint="fallback")
        assert payment.provider == "fallback"
        assert primary.initiated == []

    def test_disabled_providers_are_skipped(self, place_order, order_service, fallback, make_adapter):
        disabled = make_adapter("primary", enabled=False)
        orchestrator = PaymentOrchestrator([disabled, fallback], order_service)
        order, payment = place_order()

        payment, _ = orchestrator.initiate_payment(order, payment=payment)
        assert payment.provider == "fallback"
        assert disabled.initiated == []

    def test_all_providers_failing(self, place_order, order_service, make_adapter):
        orchestrator = PaymentOrchestrator(
            [make_adapter("primary", fail=True), make_adapter("fallback", fail=True)], order_service,
        )
        order, payment = place_order()

        with pytest.raises(AllProvidersFailed) as excinfo:
            orchestrator.initiate_payment(order, payment=payment)

        assert set(excinfo.value.errors) == {"primary", "fallback"}
        payment.refresh_from_db()
        assert payment.provider is None

    def test_no_enabled_provider(self, place_order, order_service):
        orchestrator = PaymentOrchestrator([], order_service)
        order, _ = place_order()
        with pytest.raises(AllProvidersFailed):
            orchestrator.initiate_payment(order)


class TestVerification:
    def test_completed_verification_confirms_order(
        self, initiated, orchestrator, primary, sender, django_capture_on_commit_callbacks
    ):
        order, payment = initiated

        with django_capture_on_commit_callbacks(execute=True):
            payment, result = orchestrator.verify_payment(payment.external_transaction_id, "primary")

        order.refresh_from_db()
        assert primary.verified == ["primary-1"]
        assert payment.status == Payment.Status.COMPLETED
        assert payment.verified_at is not None
        assert payment.provider_data["verification"] == {"status": "SUCCESS"}
        assert order.payment_status == Order.PaymentStatus.COMPLETED
        assert order.status == Order.Status.CONFIRMED
        assert sender.calls == [(order.order_number, "confirmed", None)]

    def test_verify_by_internal_reference(self, initiated, orchestrator, primary):
        _, payment = initiated
        orchestrator.verify_payment(payment.transaction_id, "primary")
        assert primary.verified == ["primary-1"]

    def test_pending_verification_does_not_touch_order(self, initiated, orchestrator, primary):
        order, payment = initiated
        primary.verify_status = "PENDING"

        payment, _ = orchestrator.verify_payment(payment.transaction_id, "primary")

        order.refresh_from_db()
        assert payment.status == Payment.Status.PENDING
        assert payment.verified_at is None
        assert order.status == Order.Status.PENDING
        assert order.payment_status == Order.PaymentStatus.PENDING

    def test_unknown_provider(self, initiated, orchestrator):
        _, payment = initiated
        with pytest.raises(UnsupportedProvider):
            orchestrator.verify_payment(payment.transaction_id, "paypal")

    def test_unknown_transaction(self, orchestrator, db):
        with pytest.raises(PaymentNotFound):
            orchestrator.verify_payment("NOPE", "primary")


class TestWebhooks:
    def test_replayed_completion_is_idempotent(
        self, initiated, orchestrator, sender, django_capture_on_commit_callbacks
    ):
        order, payment = initiated
        payload = {"id": payment.external_transaction_id, "status": "SUCCESS"}

        with django_capture_on_commit_callbacks(execute=True):
            orchestrator.handle_webhook("primary", payload)
        payment.refresh_from_db()
        order.refresh_from_db()
        first = (payment.completed_at, order.payment_status, order.status, order.confirmed_at)

        with django_capture_on_commit_callbacks(execute=True):
            orchestrator.handle_webhook("primary", payload)
        payment.refresh_from_db()
        order.refresh_from_db()

        assert (payment.completed_at, order.payment_status, order.status, order.confirmed_at) == first
        assert len(sender.calls) == 1
        assert payment.webhook_data == payload

    def test_replay_after_settlement_keeps_settling_payload(self, initiated, orchestrator):
        _, payment = initiated
        settled = {"id": payment.external_transaction_id, "status": "SUCCESS"}
        late = {"id": payment.external_transaction_id, "status": "FAILED"}
        orchestrator.handle_webhook("primary", settled)

        payment = orchestrator.handle_webhook("primary", late)

        payment.refresh_from_db()
        assert payment.status == Payment.Status.COMPLETED
        assert payment.webhook_data == settled
        assert payment.provider_data["webhook"] == settled
        assert payment.provider_data["webhook_replays"] == [late]

    def test_unknown_native_status_stays_pending(self, initiated, orchestrator):
        order, payment = initiated
        before = Order.objects.values().get(pk=order.pk)

        payment = orchestrator.handle_webhook(
            "primary", {"id": payment.external_transaction_id, "status": "ON_HOLD_42"},
        )

        assert payment.status == Payment.Status.PENDING
        after = Order.objects.values().get(pk=order.pk)
        assert after == before

    def test_failure_marks_order_failed(self, initiated, orchestrator):
        order, payment = initiated
        orchestrator.handle_webhook("primary", {"id": payment.external_transaction_id, "status": "FAILED"})

        payment.refresh_from_db()
        order.refresh_from_db()
        assert payment.status == Payment.Status.FAILED
        assert payment.failed_at is not None
        assert order.payment_status == Order.PaymentStatus.FAILED
        assert order.status == Order.Status.PENDING

    def test_late_failure_cannot_regress_completed_payment(self, initiated, orchestrator):
        order, payment = initiated
        orchestrator.handle_webhook("primary", {"id": payment.external_transaction_id, "status": "SUCCESS"})
        orchestrator.handle_webhook("primary", {"id": payment.external_transaction_id, "status": "FAILED"})

        payment.refresh_from_db()
        order.refresh_from_db()
        assert payment.status == Payment.Status.COMPLETED
        assert order.payment_status == Order.PaymentStatus.COMPLETED

    def test_missing_identifier(self, orchestrator):
        with pytest.raises(InvalidWebhook):
            orchestrator.handle_webhook("primary", {"status": "SUCCESS"})

    def test_unknown_payment(self, orchestrator):
        with pytest.raises(PaymentNotFound):
            orchestrator.handle_webhook("primary", {"id": "ghost", "status": "SUCCESS"})

    def test_unknown_provider(self, orchestrator):
        with pytest.raises(UnsupportedProvider):
            orchestrator.handle_webhook("paypal", {"id": "x", "status": "SUCCESS"})


class TestPayOnDelivery:
    def test_delivery_fee_then_balance(self, place_order, orchestrator):
        order, fee_payment = place_order(delivery_only=True)
        fee_payment, _ = orchestrator.initiate_payment(order, payment=fee_payment)
        orchestrator.handle_webhook("primary", {"id": fee_payment.external_transaction_id, "status": "SUCCESS"})

        order.refresh_from_db()
        assert order.payment_status == Order.PaymentStatus.PARTIAL
        assert order.status == Order.Status.CONFIRMED
        assert order.remaining_balance == Decimal("13000")

        balance, _ = orchestrator.initiate_payment(
            order, amount=order.remaining_balance, kind=Payment.Kind.BALANCE,
        )
        orchestrator.handle_webhook("primary", {"id": balance.external_transaction_id, "status": "SUCCESS"})

        order.refresh_from_db()
        assert order.remaining_balance == Decimal("0")
        assert order.payment_status == Order.PaymentStatus.COMPLETED

    def test_failed_balance_keeps_partial(self, place_order, orchestrator):
        order, fee_payment = place_order(delivery_only=True)
        fee_payment, _ = orchestrator.initiate_payment(order, payment=fee_payment)
        orchestrator.handle_webhook("primary", {"id": fee_payment.external_transaction_id, "status": "SUCCESS"})

        balance, _ = orchestrator.initiate_payment(
            order, amount=Decimal("13000"), kind=Payment.Kind.BALANCE,
        )
        orchestrator.handle_webhook("primary", {"id": balance.external_transaction_id, "status": "FAILED"})

        order.refresh_from_db()
        assert order.payment_status == Order.PaymentStatus.PARTIAL
        assert order.remaining_balance == Decimal("13000")


class TestManualValidation:
    def test_manual_proof_waits_for_admin(self, place_order, orchestrator):
        order, _ = place_order()
        payment = orchestrator.validate_manual_payment(order, {"amount": Decimal("15000"), "reference": "WA-77"})

        order.refresh_from_db()
        assert payment.provider == Payment.MANUAL_PROVIDER
        assert payment.status == Payment.Status.PENDING_VALIDATION
        assert payment.payment_method == Payment.Method.WHATSAPP
        assert payment.provider_data["proof"]["reference"] == "WA-77"
        assert order.payment_status == Order.PaymentStatus.PENDING

    def test_admin_rejection_leaves_order_status(self, place_order, orchestrator, admin_account):
        order, _ = place_order()
        payment = orchestrator.validate_manual_payment(order, {"amount": "15000"})

        payment = orchestrator.admin_validate_payment(
            payment.pk, approved=False, notes="Capture illisible", principal=admin_account,
        )

        order.refresh_from_db()
        assert payment.status == Payment.Status.FAILED
        assert order.payment_status == Order.PaymentStatus.FAILED
        assert order.status == Order.Status.PENDING
        audit = payment.provider_data["admin_validation"]
        assert audit["approved"] is False
        assert audit["notes"] == "Capture illisible"
        assert audit["validated_by"] == admin_account.email

    def test_admin_approval_confirms_and_notifies(
        self, place_order, orchestrator, admin_account, sender, django_capture_on_commit_callbacks
    ):
        order, _ = place_order()
        payment = orchestrator.validate_manual_payment(order, {"amount": "15000"})

        with django_capture_on_commit_callbacks(execute=True):
            payment = orchestrator.admin_validate_payment(payment.pk, approved=True, principal=admin_account)

        order.refresh_from_db()
        assert payment.status == Payment.Status.COMPLETED
        assert payment.verified_at is not None
        assert order.payment_status == Order.PaymentStatus.COMPLETED
        assert order.status == Order.Status.CONFIRMED
        assert [call[1] for call in sender.calls] == ["confirmed"]

    def test_admin_can_override_terminal_payment(self, initiated, orchestrator):
        order, payment = initiated
        orchestrator.handle_webhook("primary", {"id": payment.external_transaction_id, "status": "FAILED"})

        payment = orchestrator.admin_validate_payment(payment.pk, approved=True)

        order.refresh_from_db()
        assert payment.status == Payment.Status.COMPLETED
        assert order.payment_status == Order.PaymentStatus.COMPLETED

    def test_admin_rejection_of_completed_payment_fails_order_payment(self, initiated, orchestrator):
        order, payment = initiated
        orchestrator.handle_webhook("primary", {"id": payment.external_transaction_id, "status": "SUCCESS"})

        payment = orchestrator.admin_validate_payment(payment.pk, approved=False, notes="Fraude")

        order.refresh_from_db()
        assert payment.status == Payment.Status.FAILED
        assert order.payment_status == Order.PaymentStatus.FAILED
        assert order.status == Order.Status.CONFIRMED
        assert not order.can_be_shipped()

    def test_admin_rejection_of_collected_balance_restores_it(self, place_order, orchestrator):
        order, fee_payment = place_order(delivery_only=True)
        fee_payment, _ = orchestrator.initiate_payment(order, payment=fee_payment)
        orchestrator.handle_webhook("primary", {"id": fee_payment.external_transaction_id, "status": "SUCCESS"})
        balance, _ = orchestrator.initiate_payment(
            order, amount=Decimal("13000"), kind=Payment.Kind.BALANCE,
        )
        orchestrator.handle_webhook("primary", {"id": balance.external_transaction_id, "status": "SUCCESS"})

        orchestrator.admin_validate_payment(balance.pk, approved=False)

        order.refresh_from_db()
        assert order.remaining_balance == Decimal("13000")
        assert order.payment_status == Order.PaymentStatus.FAILED

    def test_order_level_validation_picks_waiting_payment(self, place_order, orchestrator):
        order, initial = place_order()
        manual = orchestrator.validate_manual_payment(order, {"amount": "15000"})

        payment = orchestrator.validate_order_payment(order, approved=True)

        assert payment.pk == manual.pk
        initial.refresh_from_db()
        assert initial.status == Payment.Status.PENDING

    def test_unknown_payment_id(self, orchestrator, db):
        import uuid

        with pytest.raises(PaymentNotFound):
            orchestrator.admin_validate_payment(uuid.uuid4(), approved=True)


class TestRetry:
    def fail(self, orchestrator, payment):
        orchestrator.handle_webhook("primary", {"id": payment.external_transaction_id, "status": "FAILED"})
        payment.refresh_from_db()
        return payment

    def test_retry_creates_new_attempt(self, initiated, orchestrator):
        order, payment = initiated
        payment = self.fail(orchestrator, payment)

        new_payment, result = orchestrator.retry_payment(payment.pk)

        payment.refresh_from_db()
        assert payment.retry_count == 1
        assert new_payment.pk != payment.pk
        assert new_payment.retry_count == 1
        assert new_payment.amount == payment.amount
        assert new_payment.status == Payment.Status.PENDING
        assert result.payment_url

    def test_retry_only_for_failed_payments(self, initiated, orchestrator):
        _, payment = initiated
        with pytest.raises(PaymentNotRetryable):
            orchestrator.retry_payment(payment.pk)

    def test_retries_are_bounded(self, initiated, orchestrator):
        _, payment = initiated
        payment = self.fail(orchestrator, payment)
        Payment.objects.filter(pk=payment.pk).update(retry_count=3)

        with pytest.raises(PaymentNotRetryable):
            orchestrator.retry_payment(payment.pk)
