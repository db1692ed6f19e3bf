"""
E-mail notification sender using Django's mail framework.
"""

import logging

from django.conf import settings
from django.core.mail import send_mail

from .sms import STATUS_MESSAGES

logger = logging.getLogger(__name__)


class EmailNotificationSender:
    channel = 'email'

    def __init__(self, from_email=None):
        self.from_email = from_email or settings.DEFAULT_FROM_EMAIL

    def send_status_change(self, order, new_status, estimated_delivery=None):
        template = STATUS_MESSAGES.get(new_status)
        if template is None or not order.customer_email:
            return
        body = template.format(number=order.order_number)
        if estimated_delivery:
            body += f"\nLivraison estimée : {estimated_delivery}"
        send_mail(
            subject=f"{settings.SHOP['NAME']} - Commande #{order.order_number}",
            message=body,
            from_email=self.from_email,
            recipient_list=[order.customer_email],
            fail_silently=False,
        )
        logger.info("Status e-mail (%s) sent for order %s", new_status, order.order_number)
