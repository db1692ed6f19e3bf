from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import IntegrityError
from django.utils import timezone

from notifications.dispatcher import OrderNotifier
from orders.exceptions import InvalidTransition, OutOfStock, ProductNotFound, UnsupportedStatus
from orders.models import Order, OrderItem
from orders.services import OrderService, shipping_cost_for
from payments.models import Payment
from products.models import Product

pytestmark = pytest.mark.django_db


def test_two_line_order_totals_and_initial_payment(place_order):
    order, payment = place_order()

    assert order.subtotal == Decimal("13000")
    assert order.shipping_cost == Decimal("2000")
    assert order.total_amount == Decimal("15000")
    assert order.remaining_balance == Decimal("0")
    assert order.status == Order.Status.PENDING
    assert order.payment_status == Order.PaymentStatus.PENDING
    assert order.delivery_option == Order.DeliveryOption.FULL_PAYMENT

    assert payment.amount == order.total_amount
    assert payment.kind == Payment.Kind.FULL
    assert payment.status == Payment.Status.PENDING
    assert payment.provider is None
    assert order.payments.count() == 1


def test_lines_snapshot_product_data(place_order):
    order, _ = place_order()
    lines = list(order.items.order_by("unit_price"))
    assert [(line.unit_price, line.quantity, line.total_price) for line in lines] == [
        (Decimal("3000"), 1, Decimal("3000")),
        (Decimal("5000"), 2, Decimal("10000")),
    ]

    product = lines[1].product
    product.price = Decimal("9999")
    product.name = "Renamed"
    product.save()
    lines[1].refresh_from_db()
    assert lines[1].unit_price == Decimal("5000")
    assert lines[1].product_name != "Renamed"


def test_delivery_only_splits_payment(place_order):
    order, payment = place_order(delivery_only=True)

    assert order.delivery_option == Order.DeliveryOption.PAY_ON_DELIVERY
    assert order.remaining_balance == order.subtotal == Decimal("13000")
    assert order.total_amount == order.subtotal + order.shipping_cost
    assert payment.amount == Decimal("2000")
    assert payment.kind == Payment.Kind.DELIVERY_FEE


def test_free_shipping_from_threshold(order_service, make_product, customer, delivery):
    product = make_product(price="12500")
    order, payment = order_service.create_order(
        items=[{"product_id": product.pk, "quantity": 2}],
        customer=customer,
        delivery=delivery,
        payment_method="orange-money",
    )
    assert order.subtotal == Decimal("25000")
    assert order.shipping_cost == Decimal("0")
    assert payment.amount == order.total_amount == Decimal("25000")


@pytest.mark.parametrize(
    "subtotal, expected",
    [("24999", "2000"), ("25000", "0"), ("100", "2000"), ("40000", "0")],
)
def test_shipping_cost_rule(subtotal, expected):
    assert shipping_cost_for(Decimal(subtotal)) == Decimal(expected)


def test_shipping_cost_follows_configured_fee(settings):
    settings.SHOP = {**settings.SHOP, "DELIVERY_FEE": 2500}
    assert shipping_cost_for(Decimal("1000")) == Decimal("2500")


def test_create_order_reserves_stock(order_service, make_product, customer, delivery):
    product = make_product(stock=5)
    order_service.create_order(
        items=[{"product_id": product.pk, "quantity": 3, "size": "0-3 mois", "color": "Blanc"}],
        customer=customer,
        delivery=delivery,
    )
    product.refresh_from_db()
    assert product.stock_quantity == 2
    line = OrderItem.objects.get(product=product)
    assert (line.variant_size, line.variant_color) == ("0-3 mois", "Blanc")


def test_untracked_stock_is_always_available(order_service, make_product, customer, delivery):
    product = make_product(stock=0, track_stock=False)
    order, _ = order_service.create_order(
        items=[{"product_id": product.pk, "quantity": 4}],
        customer=customer,
        delivery=delivery,
    )
    assert order.items.get().quantity == 4


def test_out_of_stock_rolls_back_everything(order_service, make_product, customer, delivery):
    available = make_product(stock=10)
    scarce = make_product(stock=1)

    with pytest.raises(OutOfStock):
        order_service.create_order(
            items=[
                {"product_id": available.pk, "quantity": 2},
                {"product_id": scarce.pk, "quantity": 2},
            ],
            customer=customer,
            delivery=delivery,
        )

    assert Order.objects.count() == 0
    assert OrderItem.objects.count() == 0
    assert Payment.objects.count() == 0
    available.refresh_from_db()
    assert available.stock_quantity == 10


def test_repeated_product_counts_towards_stock(order_service, make_product, customer, delivery):
    product = make_product(stock=3)
    with pytest.raises(OutOfStock):
        order_service.create_order(
            items=[
                {"product_id": product.pk, "quantity": 2},
                {"product_id": product.pk, "quantity": 2},
            ],
            customer=customer,
            delivery=delivery,
        )


def test_unknown_product_aborts_order(order_service, make_product, customer, delivery):
    product = make_product()
    with pytest.raises(ProductNotFound):
        order_service.create_order(
            items=[
                {"product_id": product.pk, "quantity": 1},
                {"product_id": product.pk + 1000, "quantity": 1},
            ],
            customer=customer,
            delivery=delivery,
        )
    assert Order.objects.count() == 0


def test_inactive_product_is_not_orderable(order_service, make_product, customer, delivery):
    product = make_product(is_active=False)
    with pytest.raises(ProductNotFound):
        order_service.create_order(
            items=[{"product_id": product.pk, "quantity": 1}],
            customer=customer,
            delivery=delivery,
        )


def test_status_walk_sets_timestamps_and_lines(
    place_order, order_service, sender, django_capture_on_commit_callbacks
):
    order, _ = place_order()

    with django_capture_on_commit_callbacks(execute=True):
        order = order_service.update_status(order, Order.Status.CONFIRMED)
        order = order_service.update_status(order, Order.Status.PROCESSING)
        order = order_service.update_status(order, Order.Status.SHIPPED)

    assert order.confirmed_at is not None
    assert order.shipped_at is not None
    assert order.tracking_number
    assert set(order.items.values_list("status", flat=True)) == {OrderItem.Status.SHIPPED}
    assert [call[1] for call in sender.calls] == ["confirmed", "processing", "shipped"]

    with django_capture_on_commit_callbacks(execute=True):
        order = order_service.update_status(order, Order.Status.DELIVERED)
    assert order.delivered_at is not None
    assert order.completed_at == order.delivered_at
    assert set(order.items.values_list("status", flat=True)) == {OrderItem.Status.DELIVERED}


def test_disallowed_transition_is_rejected(place_order, order_service):
    order, _ = place_order()
    with pytest.raises(InvalidTransition):
        order_service.update_status(order, Order.Status.SHIPPED)
    order.refresh_from_db()
    assert order.status == Order.Status.PENDING
    assert order.shipped_at is None


def test_terminal_status_cannot_be_left(place_order, order_service):
    order, _ = place_order()
    order = order_service.update_status(order, Order.Status.CANCELLED)
    with pytest.raises(InvalidTransition):
        order_service.update_status(order, Order.Status.CONFIRMED)


def test_unknown_status_value(place_order, order_service):
    order, _ = place_order()
    with pytest.raises(UnsupportedStatus):
        order_service.update_status(order, "lost")


def test_same_status_saves_notes_without_notifying(
    place_order, order_service, sender, django_capture_on_commit_callbacks
):
    order, _ = place_order()
    with django_capture_on_commit_callbacks(execute=True):
        order = order_service.update_status(order, Order.Status.CONFIRMED)
    confirmed_at = order.confirmed_at
    estimated = timezone.now() + timedelta(days=2)

    with django_capture_on_commit_callbacks(execute=True):
        order = order_service.update_status(
            order, Order.Status.CONFIRMED, notes="Client rappelé", estimated_delivery=estimated,
        )

    assert order.confirmed_at == confirmed_at
    assert order.admin_notes == "Client rappelé"
    assert order.estimated_delivery == estimated
    assert len(sender.calls) == 1


def test_cancel_restores_stock_and_records_reason(order_service, make_product, customer, delivery):
    product = make_product(stock=5)
    order, _ = order_service.create_order(
        items=[{"product_id": product.pk, "quantity": 2}],
        customer=customer,
        delivery=delivery,
    )
    order = order_service.update_status(
        order, Order.Status.CANCELLED, cancellation_reason="Rupture fournisseur",
    )

    product.refresh_from_db()
    assert product.stock_quantity == 5
    assert order.cancelled_at is not None
    assert order.cancellation_reason == "Rupture fournisseur"
    assert order.items.get().status == OrderItem.Status.CANCELLED


def test_shipped_order_can_still_be_cancelled(
    order_service, make_product, customer, delivery, sender, django_capture_on_commit_callbacks
):
    product = make_product(stock=5)
    order, _ = order_service.create_order(
        items=[{"product_id": product.pk, "quantity": 3}],
        customer=customer,
        delivery=delivery,
    )
    for status in (Order.Status.CONFIRMED, Order.Status.PROCESSING, Order.Status.SHIPPED):
        order = order_service.update_status(order, status)

    with django_capture_on_commit_callbacks(execute=True):
        order = order_service.update_status(
            order, Order.Status.CANCELLED, cancellation_reason="Colis refusé",
        )

    product.refresh_from_db()
    assert product.stock_quantity == 5
    assert order.status == Order.Status.CANCELLED
    assert order.cancelled_at is not None
    assert order.shipped_at is not None
    assert order.cancellation_reason == "Colis refusé"
    assert order.items.get().status == OrderItem.Status.CANCELLED
    assert sender.calls[-1][1] == "cancelled"


def test_rolled_back_transition_does_not_notify(
    place_order, order_service, sender, django_capture_on_commit_callbacks
):
    order, _ = place_order()
    with django_capture_on_commit_callbacks(execute=True):
        with pytest.raises(InvalidTransition):
            order_service.update_status(order, Order.Status.DELIVERED)
    assert sender.calls == []


def test_failing_sender_never_breaks_transition(
    place_order, sender, failing_sender, django_capture_on_commit_callbacks
):
    service = OrderService(notifier=OrderNotifier([failing_sender, sender]))
    order, _ = place_order()

    with django_capture_on_commit_callbacks(execute=True):
        order = service.update_status(order, Order.Status.CONFIRMED)

    assert order.status == Order.Status.CONFIRMED
    assert len(failing_sender.calls) == 1
    assert len(sender.calls) == 1


def test_stats_counts_and_revenue(place_order, order_service):
    paid, _ = place_order()
    Order.objects.filter(pk=paid.pk).update(payment_status=Order.PaymentStatus.COMPLETED)
    pending, _ = place_order()
    order_service.update_status(pending, Order.Status.CANCELLED)

    stats = order_service.stats()

    assert stats["orders"]["total"] == 2
    assert stats["orders"]["pending"] == 1
    assert stats["orders"]["cancelled"] == 1
    assert stats["revenue"]["total"] == Decimal("15000")
    assert stats["revenue"]["today"] == Decimal("15000")
    assert stats["revenue"]["month"] == Decimal("15000")


def test_product_stock_helpers(make_product):
    product = make_product(stock=3)
    product.reduce_stock(2)
    assert product.stock_quantity == 1
    assert product.is_low_stock()
    product.increase_stock(4)
    assert Product.objects.get(pk=product.pk).stock_quantity == 5


def test_taken_order_number_is_retried(
    place_order, order_service, make_product, customer, delivery, monkeypatch
):
    existing, _ = place_order()
    numbers = iter([existing.order_number, "BC209901010001"])
    monkeypatch.setattr(Order, "build_order_number", lambda *args, **kwargs: next(numbers))
    product = make_product(stock=5)

    order, payment = order_service.create_order(
        items=[{"product_id": product.pk, "quantity": 1}],
        customer=customer,
        delivery=delivery,
    )

    assert order.order_number == "BC209901010001"
    assert Order.objects.count() == 2
    assert payment.description.endswith("#BC209901010001")
    product.refresh_from_db()
    assert product.stock_quantity == 4


def test_order_number_clash_gives_up_after_bounded_attempts(
    place_order, order_service, make_product, customer, delivery, monkeypatch
):
    existing, _ = place_order()
    monkeypatch.setattr(Order, "build_order_number", lambda *args, **kwargs: existing.order_number)
    product = make_product(stock=5)

    with pytest.raises(IntegrityError):
        order_service.create_order(
            items=[{"product_id": product.pk, "quantity": 1}],
            customer=customer,
            delivery=delivery,
        )

    assert Order.objects.count() == 1
    product.refresh_from_db()
    assert product.stock_quantity == 5
