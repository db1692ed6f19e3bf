"""
Fan-out of order status notifications to the configured senders.

Notifications run after the surrounding transaction commits, so a rolled-back
transition never notifies. A failing sender is logged and never propagates.
"""

import logging
from typing import Iterable, Optional

from django.db import transaction

from .base import NotificationSender

logger = logging.getLogger(__name__)


class OrderNotifier:
    def __init__(self, senders: Optional[Iterable[NotificationSender]] = None):
        self.senders = list(senders or [])

    def order_status_changed(self, order, new_status, estimated_delivery=None) -> None:
        """Invoke every sender now, swallowing (and logging) their failures."""
        for sender in self.senders:
            try:
                sender.send_status_change(order, new_status, estimated_delivery)
            except Exception:
                logger.exception(
                    "%s notification failed for order %s (%s)",
                    getattr(sender, 'channel', type(sender).__name__),
                    order.order_number,
                    new_status,
                )

    def notify_on_commit(self, order, new_status, estimated_delivery=None) -> None:
        """Schedule ``order_status_changed`` for when the current transaction commits."""
        transaction.on_commit(
            lambda: self.order_status_changed(order, new_status, estimated_delivery)
        )


def build_default_notifier() -> OrderNotifier:
    from .mail import EmailNotificationSender
    from .sms import SmsNotificationSender

    return OrderNotifier([SmsNotificationSender(), EmailNotificationSender()])
