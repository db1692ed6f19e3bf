"""
Order aggregate service layer.

The write paths of the order lifecycle live here rather than in model hooks:
- Order creation: product resolution, stock reservation, totals and the
  payment split, all inside one transaction
- Status transitions checked against ``Order.TRANSITIONS``, with their side
  effects (timestamps, line statuses, stock restoration, notifications)
- Reconciliation of a payment result into the order's payment state
- Back-office statistics
"""

import logging
from collections import defaultdict
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from payments.models import Payment
from products.models import Product

from .exceptions import (
    InvalidTransition,
    OrderNotFound,
    OutOfStock,
    ProductNotFound,
    UnsupportedStatus,
)
from .models import Order, OrderItem

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5

# Order status -> (line status, line statuses it replaces)
LINE_STATUS_FOR_ORDER = {
    Order.Status.CONFIRMED: (
        OrderItem.Status.CONFIRMED,
        [OrderItem.Status.PENDING],
    ),
    Order.Status.SHIPPED: (
        OrderItem.Status.SHIPPED,
        [OrderItem.Status.PENDING, OrderItem.Status.CONFIRMED],
    ),
    Order.Status.DELIVERED: (
        OrderItem.Status.DELIVERED,
        [OrderItem.Status.PENDING, OrderItem.Status.CONFIRMED, OrderItem.Status.SHIPPED],
    ),
    Order.Status.CANCELLED: (
        OrderItem.Status.CANCELLED,
        [OrderItem.Status.PENDING, OrderItem.Status.CONFIRMED, OrderItem.Status.SHIPPED],
    ),
}


def delivery_fee() -> Decimal:
    return Decimal(settings.SHOP['DELIVERY_FEE'])


def shipping_cost_for(subtotal: Decimal) -> Decimal:
    """Free shipping from the configured threshold, the flat delivery fee below it."""
    if subtotal >= Decimal(settings.SHOP['FREE_SHIPPING_THRESHOLD']):
        return Decimal('0')
    return delivery_fee()


def get_order(order_id) -> Order:
    try:
        return Order.objects.get(pk=order_id)
    except (Order.DoesNotExist, ValueError):
        raise OrderNotFound()


class OrderService:
    """
    Order lifecycle operations.

    ``notifier`` is the status-change collaborator (see
    ``notifications.dispatcher.OrderNotifier``); it is only ever called
    through ``notify_on_commit``.
    """

    def __init__(self, notifier):
        self.notifier = notifier

    # Creation

    def create_order(self, items, customer, delivery, payment_method=None,
                     delivery_only=False, notes=''):
        """
        Create an order, its lines and its initial payment atomically.

        ``items`` is a list of dicts with ``product_id``, ``quantity`` and the
        optional ``size``, ``color``, ``material`` and ``extra`` variant keys.
        ``customer`` holds ``first_name``, ``last_name``, ``email`` and
        ``phone``; ``delivery`` is stored as the shipping and billing address.

        Raises ``ProductNotFound`` or ``OutOfStock`` before anything is
        persisted.
        """
        with transaction.atomic():
            product_ids = [item['product_id'] for item in items]
            products = (
                Product.objects.select_for_update()
                .filter(is_active=True)
                .in_bulk(product_ids)
            )

            reserved = defaultdict(int)
            lines = []
            subtotal = Decimal('0')
            for item in items:
                product = products.get(item['product_id'])
                if product is None:
                    raise ProductNotFound(f"Produit {item['product_id']} non trouvé")

                quantity = int(item['quantity'])
                reserved[product.pk] += quantity
                if not product.has_stock_for(reserved[product.pk]):
                    raise OutOfStock(f"Produit {product.name} en rupture de stock")

                line = OrderItem(
                    product=product,
                    product_name=product.name,
                    product_sku=product.sku,
                    product_image=product.featured_image or '',
                    unit_price=product.price,
                    quantity=quantity,
                    variant_size=item.get('size') or '',
                    variant_color=item.get('color') or '',
                    variant_material=item.get('material') or '',
                    variant_extra=item.get('extra') or {},
                )
                line.recompute_derived_fields()
                lines.append(line)
                subtotal += line.unit_price * quantity

            shipping_cost = shipping_cost_for(subtotal)
            if delivery_only:
                payment_amount = delivery_fee()
                remaining_balance = subtotal
                payment_kind = Payment.Kind.DELIVERY_FEE
            else:
                payment_amount = subtotal + shipping_cost
                remaining_balance = Decimal('0')
                payment_kind = Payment.Kind.FULL

            order = Order(
                status=Order.Status.PENDING,
                payment_status=Order.PaymentStatus.PENDING,
                payment_method=payment_method,
                delivery_option=(
                    Order.DeliveryOption.PAY_ON_DELIVERY if delivery_only
                    else Order.DeliveryOption.FULL_PAYMENT
                ),
                customer_first_name=customer['first_name'],
                customer_last_name=customer['last_name'],
                customer_email=customer['email'],
                customer_phone=customer['phone'],
                shipping_address=dict(delivery),
                billing_address=dict(delivery),
                subtotal=subtotal,
                shipping_cost=shipping_cost,
                remaining_balance=remaining_balance,
                currency=settings.SHOP['CURRENCY'],
                notes=notes or '',
            )
            order.recompute_derived_fields()
            self._save_with_order_number(order)

            for line in lines:
                line.order = order
            OrderItem.objects.bulk_create(lines)

            for product_id, quantity in reserved.items():
                products[product_id].reduce_stock(quantity)

            label = 'frais de livraison' if delivery_only else 'commande complète'
            payment = Payment.build(
                order,
                amount=payment_amount,
                payment_method=payment_method or Payment.Method.CASH,
                kind=payment_kind,
                customer_phone=order.customer_phone,
                customer_name=order.customer_full_name,
                description=f"Paiement {label} #{order.order_number}",
            )
            payment.save()

        logger.info(
            "Order %s created: total=%s payment=%s (%s)",
            order.order_number, order.total_amount, payment.amount, payment.kind,
        )
        return order, payment

    def _save_with_order_number(self, order):
        """
        Insert ``order`` under the next free daily order number.

        A concurrent request may take the same number first; each attempt
        runs in a savepoint so the enclosing transaction survives the clash.
        """
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order.order_number = Order.build_order_number()
            try:
                with transaction.atomic():
                    order.save(force_insert=True)
                return
            except IntegrityError:
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    raise
                logger.warning(
                    "Order number %s already taken, retrying (%s/%s)",
                    order.order_number, attempt, ORDER_NUMBER_ATTEMPTS,
                )

    # Status lifecycle

    def update_status(self, order, new_status, notes=None, estimated_delivery=None,
                      cancellation_reason=None, now=None):
        """
        Move ``order`` to ``new_status`` following the transition table.

        Submitting the current status again only saves ``notes`` and
        ``estimated_delivery``. Raises ``InvalidTransition`` for any other
        move absent from ``Order.TRANSITIONS``.
        """
        if new_status not in Order.Status.values:
            raise UnsupportedStatus(f"Statut de commande inconnu: {new_status}")

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order.pk)
            previous_status = order.status

            if new_status != previous_status:
                if not order.can_transition_to(new_status):
                    raise InvalidTransition(
                        f"Transition {previous_status} -> {new_status} non autorisée"
                    )
                if new_status == Order.Status.CANCELLED:
                    self._restore_stock(order)
                    order.cancellation_reason = cancellation_reason or ''
                self._enter_status(order, new_status, now)

            if notes:
                order.admin_notes = notes
            if estimated_delivery:
                order.estimated_delivery = estimated_delivery
            order.save()

            if new_status != previous_status:
                self.notifier.notify_on_commit(order, new_status, estimated_delivery)
                logger.info(
                    "Order %s moved %s -> %s", order.order_number, previous_status, new_status,
                )
        return order

    def _enter_status(self, order, new_status, now=None):
        order.enter_status(new_status, now)
        line_status, replaced = LINE_STATUS_FOR_ORDER.get(new_status, (None, None))
        if line_status:
            order.items.filter(status__in=replaced).update(status=line_status)

    def _restore_stock(self, order):
        open_lines = list(
            order.items.exclude(
                status__in=[OrderItem.Status.CANCELLED, OrderItem.Status.RETURNED]
            )
        )
        products = Product.objects.select_for_update().in_bulk(
            [line.product_id for line in open_lines]
        )
        for line in open_lines:
            products[line.product_id].increase_stock(line.quantity)

    # Payment reconciliation

    def apply_payment_result(self, order, payment, now=None, override=False) -> bool:
        """
        Fold a payment that reached ``completed`` or ``failed`` into ``order``.

        A failed provider result never downgrades an order already paid in
        full or in part. ``override`` marks an admin decision: a rejection
        then always sets ``failed`` and gives back a collected balance.

        Must run inside the caller's transaction with both rows locked.
        Returns True when the order status changed (a notification is then
        scheduled).
        """
        now = now or timezone.now()
        status_changed = False

        if payment.status == Payment.Status.COMPLETED:
            if payment.kind == Payment.Kind.DELIVERY_FEE:
                if order.payment_status != Order.PaymentStatus.COMPLETED:
                    order.payment_status = Order.PaymentStatus.PARTIAL
            elif payment.kind == Payment.Kind.BALANCE:
                order.remaining_balance = max(
                    Decimal('0'), order.remaining_balance - payment.amount
                )
                if order.remaining_balance == 0:
                    order.payment_status = Order.PaymentStatus.COMPLETED
                else:
                    order.payment_status = Order.PaymentStatus.PARTIAL
            else:
                order.payment_status = Order.PaymentStatus.COMPLETED

            if order.status == Order.Status.PENDING:
                self._enter_status(order, Order.Status.CONFIRMED, now)
                status_changed = True

        elif payment.status == Payment.Status.FAILED:
            if override:
                if payment.kind == Payment.Kind.BALANCE and payment.completed_at is not None:
                    order.remaining_balance += payment.amount
                order.payment_status = Order.PaymentStatus.FAILED
            elif order.payment_status not in (
                Order.PaymentStatus.COMPLETED,
                Order.PaymentStatus.PARTIAL,
            ):
                order.payment_status = Order.PaymentStatus.FAILED

        else:
            return False

        order.save()
        if status_changed:
            self.notifier.notify_on_commit(order, order.status)
            logger.info(
                "Order %s confirmed by payment %s", order.order_number, payment.transaction_id,
            )
        return status_changed

    # Statistics

    def stats(self, now=None):
        """Order counts per status and revenue of fully paid orders."""
        now = timezone.localtime(now or timezone.now())
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = today_start.replace(day=1)

        counts = Order.objects.aggregate(
            total=Count('id'),
            **{
                value: Count('id', filter=Q(status=value))
                for value in Order.Status.values
            },
        )

        paid = Order.objects.filter(payment_status=Order.PaymentStatus.COMPLETED)
        revenue = paid.aggregate(
            total=Sum('total_amount'),
            month=Sum('total_amount', filter=Q(created_at__gte=month_start)),
            today=Sum('total_amount', filter=Q(created_at__gte=today_start)),
        )

        return {
            'orders': counts,
            'revenue': {
                key: value or Decimal('0') for key, value in revenue.items()
            },
        }
