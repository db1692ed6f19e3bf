"""
Order models for the shop back-office.

This module defines the Order aggregate root and its OrderItem lines:
- Closed status vocabularies for the order lifecycle and its payment state
- The order status transition table
- Explicit derived-field computation (totals, line totals) called by the
  service layer before each save, never implicitly on persist
- Factory helpers for order and tracking numbers
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models
from django.db.models.functions import Length
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from shop_backoffice.utils import timestamped_reference

CAMEROON_PHONE_REGEX = r'^(\+237|237)?[6-9][0-9]{8}$'

cameroon_phone_validator = RegexValidator(
    regex=CAMEROON_PHONE_REGEX,
    message=_("Numéro de téléphone camerounais invalide"),
)


class Order(models.Model):
    """
    A customer purchase with its lines, addresses, totals and payment state.

    ``total_amount`` always equals ``subtotal + shipping_cost``;
    ``remaining_balance`` is non-zero only for pay-on-delivery orders whose
    balance has not been collected yet.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', _('Pending')
        CONFIRMED = 'confirmed', _('Confirmed')
        PROCESSING = 'processing', _('Processing')
        SHIPPED = 'shipped', _('Shipped')
        DELIVERED = 'delivered', _('Delivered')
        CANCELLED = 'cancelled', _('Cancelled')
        REFUNDED = 'refunded', _('Refunded')

    class PaymentStatus(models.TextChoices):
        PENDING = 'pending', _('Pending')
        PROCESSING = 'processing', _('Processing')
        COMPLETED = 'completed', _('Completed')
        PARTIAL = 'partial', _('Partial')
        FAILED = 'failed', _('Failed')
        CANCELLED = 'cancelled', _('Cancelled')
        REFUNDED = 'refunded', _('Refunded')

    class PaymentMethod(models.TextChoices):
        ORANGE_MONEY = 'orange-money', _('Orange Money')
        MTN_MOMO = 'mtn-momo', _('MTN Mobile Money')
        CASH = 'cash', _('Cash')
        BANK_TRANSFER = 'bank-transfer', _('Bank transfer')

    class DeliveryOption(models.TextChoices):
        FULL_PAYMENT = 'full_payment', _('Full payment')
        PAY_ON_DELIVERY = 'pay_on_delivery', _('Pay on delivery')

    # Allowed moves of the order lifecycle; states absent as keys are terminal
    TRANSITIONS = {
        Status.PENDING: {Status.CONFIRMED, Status.CANCELLED},
        Status.CONFIRMED: {Status.PROCESSING, Status.CANCELLED},
        Status.PROCESSING: {Status.SHIPPED, Status.CANCELLED},
        Status.SHIPPED: {Status.DELIVERED, Status.CANCELLED},
    }
    TERMINAL_STATUSES = {Status.DELIVERED, Status.CANCELLED, Status.REFUNDED}

    # Timestamp field set on the first entry into each status
    STATUS_TIMESTAMPS = {
        Status.CONFIRMED: 'confirmed_at',
        Status.SHIPPED: 'shipped_at',
        Status.DELIVERED: 'delivered_at',
        Status.CANCELLED: 'cancelled_at',
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=50, unique=True, db_index=True)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        null=True,
        blank=True,
    )
    delivery_option = models.CharField(
        max_length=20,
        choices=DeliveryOption.choices,
        default=DeliveryOption.FULL_PAYMENT,
    )

    # Customer snapshot
    customer_first_name = models.CharField(max_length=100)
    customer_last_name = models.CharField(max_length=100)
    customer_email = models.EmailField(db_index=True)
    customer_phone = models.CharField(
        max_length=20,
        validators=[cameroon_phone_validator],
        db_index=True,
    )

    # Address blobs; the core only reads ``address`` and ``city``
    billing_address = models.JSONField(default=dict)
    shipping_address = models.JSONField(default=dict)

    # Totals
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    remaining_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text=_("Amount still to be collected on delivery"),
    )
    currency = models.CharField(max_length=3, default='XAF')

    # Shipping
    shipping_method = models.CharField(max_length=50, default='standard')
    tracking_number = models.CharField(max_length=64, null=True, blank=True)
    estimated_delivery = models.DateTimeField(null=True, blank=True)

    # Lifecycle timestamps
    confirmed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True, default='')
    admin_notes = models.TextField(blank=True, default='')
    cancellation_reason = models.CharField(max_length=255, blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at']),
            models.Index(fields=['payment_status', 'created_at']),
        ]
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")

    def __str__(self):
        return f"Order {self.order_number} - {self.customer_email} - {self.total_amount}"

    @property
    def customer_full_name(self) -> str:
        return f"{self.customer_first_name} {self.customer_last_name}".strip()

    def recompute_derived_fields(self) -> None:
        """Recompute ``total_amount`` from its components."""
        self.total_amount = (self.subtotal or Decimal('0')) + (self.shipping_cost or Decimal('0'))

    def can_be_cancelled(self) -> bool:
        return self.status in (self.Status.PENDING, self.Status.CONFIRMED)

    def can_be_shipped(self) -> bool:
        return (
            self.status == self.Status.PROCESSING
            and self.payment_status == self.PaymentStatus.COMPLETED
        )

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in self.TRANSITIONS.get(self.status, set())

    def enter_status(self, new_status: str, now=None) -> None:
        """
        Move to ``new_status`` and stamp the lifecycle fields it owns.

        Timestamps are first-write-wins. The tracking number is generated on
        the first transition to shipped. Legality of the move is checked by
        the caller.
        """
        now = now or timezone.now()
        self.status = new_status

        timestamp_field = self.STATUS_TIMESTAMPS.get(new_status)
        if timestamp_field and getattr(self, timestamp_field) is None:
            setattr(self, timestamp_field, now)

        if new_status == self.Status.SHIPPED and not self.tracking_number:
            self.tracking_number = self.generate_tracking_number()
        if new_status == self.Status.DELIVERED and self.completed_at is None:
            self.completed_at = now

    @staticmethod
    def generate_tracking_number() -> str:
        return timestamped_reference(settings.SHOP['TRACKING_NUMBER_PREFIX'])

    @classmethod
    def build_order_number(cls, on_date=None) -> str:
        """
        Next human-readable order number for ``on_date``: prefix, date and a
        four-digit daily counter, e.g. ``BC202610190007``.

        Suffixes widen past 9999, so the latest number is the longest one,
        then the highest. The unique constraint on ``order_number`` rejects a
        concurrent duplicate; callers retry with a fresh number.
        """
        on_date = on_date or timezone.localdate()
        base = f"{settings.SHOP['ORDER_NUMBER_PREFIX']}{on_date:%Y%m%d}"
        last = (
            cls.objects.filter(order_number__startswith=base)
            .order_by(Length('order_number').desc(), '-order_number')
            .values_list('order_number', flat=True)
            .first()
        )
        counter = 1
        if last:
            suffix = last[len(base):]
            counter = int(suffix) + 1 if suffix.isdigit() else 1
        return f"{base}{counter:04d}"


class OrderItem(models.Model):
    """
    A single order line. Product identity and price are snapshotted at order
    time and never follow later product edits.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', _('Pending')
        CONFIRMED = 'confirmed', _('Confirmed')
        SHIPPED = 'shipped', _('Shipped')
        DELIVERED = 'delivered', _('Delivered')
        CANCELLED = 'cancelled', _('Cancelled')
        RETURNED = 'returned', _('Returned')

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(
        'products.Product',
        on_delete=models.PROTECT,
        related_name='order_items',
    )

    # Snapshot
    product_name = models.CharField(max_length=200)
    product_sku = models.CharField(max_length=100)
    product_image = models.CharField(max_length=500, blank=True, default='')

    # Variant selection
    variant_size = models.CharField(max_length=50, blank=True, default='')
    variant_color = models.CharField(max_length=50, blank=True, default='')
    variant_material = models.CharField(max_length=50, blank=True, default='')
    variant_extra = models.JSONField(default=dict, blank=True)

    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['order', 'product']),
        ]
        verbose_name = _("Order Item")
        verbose_name_plural = _("Order Items")

    def __str__(self):
        return f"{self.quantity}x {self.product_name} in Order {self.order.order_number}"

    def calculate_total(self) -> Decimal:
        return self.unit_price * Decimal(self.quantity) - (self.discount_amount or Decimal('0'))

    def recompute_derived_fields(self) -> None:
        self.total_price = self.calculate_total()

    def variant_display(self) -> str:
        parts = []
        if self.variant_size:
            parts.append(f"Taille: {self.variant_size}")
        if self.variant_color:
            parts.append(f"Couleur: {self.variant_color}")
        if self.variant_material:
            parts.append(f"Matière: {self.variant_material}")
        return ', '.join(parts)
