"""
Payment model for the shop back-office.

A Payment is one attempt to move money against an Order through a specific
method and provider. An order may accumulate several payments (retries, or a
delivery fee followed by the balance). Payments are never deleted.
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from orders.exceptions import UnsupportedStatus
from shop_backoffice.utils import timestamped_reference


def default_max_retries():
    return settings.SHOP['PAYMENT_MAX_RETRIES']


class Payment(models.Model):
    """
    One payment attempt, carrying the canonical status the orchestrator
    reconciles provider results into.

    Entering completed / failed / cancelled stamps the matching timestamp
    once; re-entering the same state never overwrites it.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', _('Pending')
        PROCESSING = 'processing', _('Processing')
        COMPLETED = 'completed', _('Completed')
        FAILED = 'failed', _('Failed')
        CANCELLED = 'cancelled', _('Cancelled')
        REFUNDED = 'refunded', _('Refunded')
        # Out-of-band proof waiting for an admin decision
        PENDING_VALIDATION = 'pending_validation', _('Pending validation')

    class Method(models.TextChoices):
        ORANGE_MONEY = 'orange-money', _('Orange Money')
        MTN_MOMO = 'mtn-momo', _('MTN Mobile Money')
        CASH = 'cash', _('Cash')
        BANK_TRANSFER = 'bank-transfer', _('Bank transfer')
        WHATSAPP = 'whatsapp', _('WhatsApp proof')

    class Kind(models.TextChoices):
        FULL = 'full', _('Full order amount')
        DELIVERY_FEE = 'delivery_fee', _('Delivery fee only')
        BALANCE = 'balance', _('Balance collected on delivery')

    TERMINAL_STATUSES = {Status.COMPLETED, Status.FAILED, Status.CANCELLED, Status.REFUNDED}
    MOBILE_MONEY_METHODS = {Method.ORANGE_MONEY, Method.MTN_MOMO}

    STATUS_TIMESTAMPS = {
        Status.COMPLETED: 'completed_at',
        Status.FAILED: 'failed_at',
        Status.CANCELLED: 'cancelled_at',
    }

    MANUAL_PROVIDER = 'manual'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey('orders.Order', on_delete=models.PROTECT, related_name='payments')

    transaction_id = models.CharField(max_length=100, unique=True)
    external_transaction_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text=_("Transaction identifier returned by the provider"),
    )
    payment_method = models.CharField(max_length=20, choices=Method.choices)
    provider = models.CharField(max_length=50, null=True, blank=True)
    kind = models.CharField(max_length=20, choices=Kind.choices, default=Kind.FULL)

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
    )
    currency = models.CharField(max_length=3, default='XAF')
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )

    customer_phone = models.CharField(max_length=20, blank=True, default='')
    customer_name = models.CharField(max_length=200, blank=True, default='')

    # Opaque provider payloads
    provider_data = models.JSONField(default=dict, blank=True)
    webhook_data = models.JSONField(default=dict, blank=True)

    initiated_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    verified_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.CharField(max_length=255, blank=True, default='')
    error_code = models.CharField(max_length=50, blank=True, default='')
    error_message = models.TextField(blank=True, default='')

    description = models.TextField(blank=True, default='')
    notes = models.TextField(blank=True, default='')

    retry_count = models.PositiveIntegerField(default=0)
    max_retries = models.PositiveIntegerField(default=default_max_retries)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['order', 'created_at']),
            models.Index(fields=['status', 'created_at']),
        ]
        verbose_name = _("Payment")
        verbose_name_plural = _("Payments")

    def __str__(self):
        return f"Payment {self.transaction_id} ({self.status}) - {self.amount} {self.currency}"

    @staticmethod
    def new_transaction_id() -> str:
        return timestamped_reference('PAY', random_bytes=4)

    @classmethod
    def build(cls, order, amount, payment_method, **fields):
        """
        Unsaved Payment for ``order`` with a generated transaction id and
        ``initiated_at`` set, unless supplied.
        """
        fields.setdefault('transaction_id', cls.new_transaction_id())
        fields.setdefault('initiated_at', timezone.now())
        fields.setdefault('currency', order.currency)
        return cls(order=order, amount=amount, payment_method=payment_method, **fields)

    def is_completed(self) -> bool:
        return self.status == self.Status.COMPLETED

    def is_failed(self) -> bool:
        return self.status == self.Status.FAILED

    def is_pending(self) -> bool:
        return self.status in (self.Status.PENDING, self.Status.PROCESSING)

    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    def can_be_retried(self) -> bool:
        return self.status == self.Status.FAILED and self.retry_count < self.max_retries

    def apply_status(self, new_status: str, now=None) -> bool:
        """
        Set the canonical status and stamp its timestamp if not already set.

        Returns True when the status value actually changed.
        """
        if new_status not in self.Status.values:
            raise UnsupportedStatus(f"Unknown payment status: {new_status}")
        now = now or timezone.now()
        changed = self.status != new_status
        self.status = new_status

        timestamp_field = self.STATUS_TIMESTAMPS.get(new_status)
        if timestamp_field and getattr(self, timestamp_field) is None:
            setattr(self, timestamp_field, now)
        return changed
