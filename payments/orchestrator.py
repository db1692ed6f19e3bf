"""
Payment orchestration across mobile-money providers.

``PaymentOrchestrator`` owns every write to ``Payment`` rows after order
creation:
- Initiation over an ordered list of adapters, falling back to the next
  provider whenever one fails
- Verification and webhook reconciliation into the canonical status
- Manual (out-of-band) payment submission and admin validation
- Retry of failed attempts

Reconciliation locks the payment row, then its order, in one transaction and
is idempotent: a payment already in a terminal status is never moved again by
a provider result, so a replayed webhook changes nothing and notifies nobody.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from orders.models import Order

from .exceptions import (
    AllProvidersFailed,
    InvalidWebhook,
    PaymentNotFound,
    PaymentNotRetryable,
    ProviderError,
    UnsupportedProvider,
)
from .models import Payment
from .providers.base import PaymentProviderAdapter, PaymentRequest

logger = logging.getLogger(__name__)


class PaymentOrchestrator:
    def __init__(self, adapters: Iterable[PaymentProviderAdapter], order_service):
        self.adapters = list(adapters)
        self.order_service = order_service

    @property
    def notifier(self):
        return self.order_service.notifier

    def get_adapter(self, name: str) -> PaymentProviderAdapter:
        for adapter in self.adapters:
            if adapter.name == name:
                return adapter
        raise UnsupportedProvider(f"Fournisseur de paiement non supporté: {name}")

    def _candidates(self, provider_hint=None):
        enabled = [adapter for adapter in self.adapters if adapter.is_enabled]
        if provider_hint:
            enabled.sort(key=lambda adapter: adapter.name != provider_hint)
        return enabled

    # Initiation

    def initiate_payment(self, order: Order, amount=None, phone_number=None,
                         payment_method=None, provider_hint=None, customer_info=None,
                         payment: Optional[Payment] = None, kind=None, **payment_fields):
        """
        Start a mobile-money collection for ``order``.

        Providers are tried in priority order (``provider_hint`` first when
        given); the first success wins and later providers are not called.
        The winning attempt is written to ``payment`` when one is passed (the
        unassigned row created with the order) or to a new row. Nothing is
        persisted for failed attempts.

        Returns ``(payment, initiation_result)``; raises ``AllProvidersFailed``
        when every enabled provider failed or none is enabled.
        """
        customer_info = customer_info or {}
        if payment is not None:
            amount = payment.amount if amount is None else Decimal(amount)
            kind = kind or payment.kind
            payment_method = payment_method or payment.payment_method
            reference = payment.transaction_id
        else:
            amount = order.total_amount if amount is None else Decimal(amount)
            kind = kind or Payment.Kind.FULL
            payment_method = payment_method or order.payment_method or Payment.Method.MTN_MOMO
            reference = Payment.new_transaction_id()
        phone_number = phone_number or order.customer_phone

        request = PaymentRequest(
            reference=reference,
            order_number=order.order_number,
            amount=amount,
            currency=order.currency,
            phone_number=phone_number,
            payment_method=payment_method,
            customer_name=customer_info.get('name') or order.customer_full_name,
            customer_email=customer_info.get('email') or order.customer_email,
            description=f"Commande #{order.order_number}",
        )

        errors: Dict[str, str] = {}
        for adapter in self._candidates(provider_hint):
            try:
                result = adapter.initiate(request)
            except ProviderError as e:
                logger.warning("Payment initiation with %s failed: %s", adapter.name, e)
                errors[adapter.name] = str(e.detail)
                continue
            except Exception as e:
                logger.warning(
                    "Payment initiation with %s failed unexpectedly", adapter.name, exc_info=True,
                )
                errors[adapter.name] = str(e)
                continue

            with transaction.atomic():
                if payment is None:
                    payment = Payment.build(
                        order,
                        amount=amount,
                        payment_method=payment_method,
                        transaction_id=reference,
                        kind=kind,
                        **payment_fields,
                    )
                else:
                    payment.initiated_at = timezone.now()
                    payment.payment_method = payment_method
                payment.provider = adapter.name
                payment.external_transaction_id = result.transaction_id
                payment.customer_phone = phone_number
                payment.customer_name = request.customer_name
                payment.apply_status(Payment.Status.PENDING)
                payment.provider_data = {**payment.provider_data, 'initiation': result.raw}
                payment.save()

            logger.info(
                "Payment %s for order %s initiated with %s (%s)",
                payment.transaction_id, order.order_number, adapter.name, result.transaction_id,
            )
            return payment, result

        logger.error(
            "No payment provider could initiate payment for order %s: %s",
            order.order_number, errors or "no provider enabled",
        )
        raise AllProvidersFailed(errors=errors)

    # Reconciliation

    def _locked_payment(self, transaction_id: str) -> Payment:
        payment = (
            Payment.objects.select_for_update()
            .filter(Q(transaction_id=transaction_id) | Q(external_transaction_id=transaction_id))
            .first()
        )
        if payment is None:
            raise PaymentNotFound(f"Paiement {transaction_id} non trouvé")
        return payment

    def _reconcile(self, payment: Payment, new_status: str, now=None) -> bool:
        """
        Apply a provider-reported canonical status to a locked ``payment``.

        Terminal payments are left alone. The caller saves ``payment``.
        Returns True when the payment status changed.
        """
        if payment.is_terminal():
            logger.info(
                "Payment %s already %s, ignoring provider status %s",
                payment.transaction_id, payment.status, new_status,
            )
            return False

        now = now or timezone.now()
        changed = payment.apply_status(new_status, now)
        if new_status == Payment.Status.COMPLETED and payment.verified_at is None:
            payment.verified_at = now

        if changed and new_status in (Payment.Status.COMPLETED, Payment.Status.FAILED):
            order = Order.objects.select_for_update().get(pk=payment.order_id)
            self.order_service.apply_payment_result(order, payment, now)
        return changed

    def verify_payment(self, transaction_id: str, provider: str):
        """
        Ask ``provider`` for the current status of a transaction and reconcile it.

        Returns ``(payment, verification_result)``.
        """
        adapter = self.get_adapter(provider)
        known = Payment.objects.filter(
            Q(transaction_id=transaction_id) | Q(external_transaction_id=transaction_id)
        ).first()
        if known is None:
            raise PaymentNotFound(f"Paiement {transaction_id} non trouvé")

        result = adapter.verify(known.external_transaction_id or transaction_id)

        with transaction.atomic():
            payment = self._locked_payment(transaction_id)
            payment.provider_data = {**payment.provider_data, 'verification': result.raw}
            self._reconcile(payment, result.status)
            payment.save()
        return payment, result

    def handle_webhook(self, provider: str, payload) -> Payment:
        """
        Reconcile a provider callback.

        Unknown native statuses resolve to pending and leave the order as is.
        """
        adapter = self.get_adapter(provider)
        if not isinstance(payload, dict):
            raise InvalidWebhook()
        event = adapter.decode_webhook(payload)
        if not event.transaction_id:
            raise InvalidWebhook("Identifiant de transaction manquant")

        with transaction.atomic():
            payment = self._locked_payment(event.transaction_id)
            if payment.is_terminal():
                # Keep the payload that settled the payment; replays are appended
                replays = payment.provider_data.get('webhook_replays', [])
                payment.provider_data = {
                    **payment.provider_data,
                    'webhook_replays': [*replays, payload],
                }
            else:
                payment.webhook_data = payload
                payment.provider_data = {**payment.provider_data, 'webhook': payload}
            self._reconcile(payment, event.status)
            payment.save()

        logger.info(
            "Webhook from %s for payment %s: %s -> %s",
            provider, payment.transaction_id, event.native_status, payment.status,
        )
        return payment

    # Manual payments

    def validate_manual_payment(self, order: Order, proof) -> Payment:
        """
        Record an out-of-band payment proof awaiting admin validation.

        The order is not touched until an admin decides.
        """
        proof = dict(proof)
        amount = proof.get('amount')
        payment = Payment.build(
            order,
            amount=Decimal(str(amount)) if amount is not None else order.total_amount,
            payment_method=Payment.Method.WHATSAPP,
            provider=Payment.MANUAL_PROVIDER,
            status=Payment.Status.PENDING_VALIDATION,
            kind=proof.pop('kind', None) or Payment.Kind.FULL,
            currency=proof.get('currency') or order.currency,
            customer_phone=order.customer_phone,
            customer_name=order.customer_full_name,
            provider_data={'proof': {k: str(v) for k, v in proof.items()}},
        )
        payment.save()
        logger.info(
            "Manual payment %s submitted for order %s", payment.transaction_id, order.order_number,
        )
        return payment

    def admin_validate_payment(self, payment_id, approved: bool, notes: str = '',
                               principal=None) -> Payment:
        """
        Approve or reject a payment by admin decision.

        Overrides any current status. The decision, its author and notes are
        kept under ``provider_data['admin_validation']``; the order's payment
        state follows the payment and the customer is notified on approval.
        """
        now = timezone.now()
        with transaction.atomic():
            payment = Payment.objects.select_for_update().filter(pk=payment_id).first()
            if payment is None:
                raise PaymentNotFound()

            new_status = Payment.Status.COMPLETED if approved else Payment.Status.FAILED
            changed = payment.apply_status(new_status, now)
            if approved and payment.verified_at is None:
                payment.verified_at = now
            payment.provider_data = {
                **payment.provider_data,
                'admin_validation': {
                    'approved': approved,
                    'notes': notes or '',
                    'validated_by': getattr(principal, 'email', None) or str(principal or ''),
                    'validated_at': now.isoformat(),
                },
            }
            if notes:
                payment.notes = notes
            payment.save()

            if changed:
                order = Order.objects.select_for_update().get(pk=payment.order_id)
                status_changed = self.order_service.apply_payment_result(
                    order, payment, now, override=True,
                )
                if approved and not status_changed:
                    self.notifier.notify_on_commit(order, order.status)

        logger.info(
            "Payment %s %s by %s",
            payment.transaction_id, 'approved' if approved else 'rejected',
            getattr(principal, 'email', principal),
        )
        return payment

    def validate_order_payment(self, order: Order, approved: bool, notes: str = '',
                               principal=None) -> Payment:
        """Admin decision on the order's most recent payment still awaiting one."""
        payment = (
            order.payments.filter(status=Payment.Status.PENDING_VALIDATION).first()
            or order.payments.filter(
                status__in=[Payment.Status.PENDING, Payment.Status.PROCESSING]
            ).first()
        )
        if payment is None:
            raise PaymentNotFound("Aucun paiement en attente pour cette commande")
        return self.admin_validate_payment(payment.pk, approved, notes, principal)

    # Retry

    def retry_payment(self, payment_id):
        """
        Start a fresh provider attempt for a failed payment.

        Allowed while ``retry_count < max_retries``; the new attempt inherits
        the consumed retry count. Returns ``(payment, initiation_result)``.
        """
        with transaction.atomic():
            failed = Payment.objects.select_for_update().filter(pk=payment_id).first()
            if failed is None:
                raise PaymentNotFound()
            if not failed.can_be_retried():
                raise PaymentNotRetryable()
            if failed.payment_method not in Payment.MOBILE_MONEY_METHODS:
                raise PaymentNotRetryable(
                    "Seuls les paiements mobile money peuvent être relancés"
                )
            failed.retry_count += 1
            failed.save(update_fields=['retry_count', 'updated_at'])

        logger.info(
            "Retrying payment %s (attempt %s/%s)",
            failed.transaction_id, failed.retry_count, failed.max_retries,
        )
        return self.initiate_payment(
            failed.order,
            amount=failed.amount,
            phone_number=failed.customer_phone or None,
            payment_method=failed.payment_method,
            provider_hint=failed.provider,
            kind=failed.kind,
            retry_count=failed.retry_count,
            description=failed.description,
        )
