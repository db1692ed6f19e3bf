"""
Service factories

Factory functions wiring the order and payment services with their real
collaborators (settings-configured provider adapters, SMS/e-mail senders).
Views obtain their services here; tests construct the services directly
with fakes instead.

Usage:
    from payments.factory import create_payment_orchestrator
    orchestrator = create_payment_orchestrator()
"""

from notifications.dispatcher import build_default_notifier
from orders.services import OrderService

from .orchestrator import PaymentOrchestrator
from .providers import build_adapters


def create_order_service(notifier=None) -> OrderService:
    return OrderService(notifier=notifier or build_default_notifier())


def create_payment_orchestrator(adapters=None, order_service=None) -> PaymentOrchestrator:
    """
    Create a PaymentOrchestrator with adapters built from
    ``settings.PAYMENT_PROVIDERS`` unless ``adapters`` is given.
    """
    return PaymentOrchestrator(
        adapters=build_adapters() if adapters is None else adapters,
        order_service=order_service or create_order_service(),
    )
