"""
SMS notification sender backed by a generic HTTP SMS gateway.
"""

import logging
import re
from typing import Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    'confirmed': "Votre commande #{number} a été confirmée et est en préparation.",
    'processing': "Votre commande #{number} est en cours de préparation.",
    'shipped': "Votre commande #{number} a été expédiée.",
    'delivered': "Votre commande #{number} a été livrée avec succès. Merci pour votre achat !",
    'cancelled': "Votre commande #{number} a été annulée.",
}


class SmsDeliveryError(Exception):
    pass


def format_cameroon_phone(phone: Optional[str]) -> Optional[str]:
    """Normalise a Cameroon number to its ``237XXXXXXXXX`` international form."""
    if not phone:
        return None
    cleaned = re.sub(r'\D', '', phone)
    if not cleaned:
        return None
    if cleaned.startswith('237'):
        return cleaned
    if cleaned.startswith('0'):
        return '237' + cleaned[1:]
    if len(cleaned) == 9 or cleaned[0] in '67':
        return '237' + cleaned
    return cleaned


class SmsNotificationSender:
    channel = 'sms'

    def __init__(self, api_url=None, api_key=None, sender_name=None, timeout=None,
                 dry_run=None, client: Optional[httpx.Client] = None):
        self.api_url = api_url or settings.SMS_API_URL
        self.api_key = api_key if api_key is not None else settings.SMS_API_KEY
        self.sender_name = sender_name or settings.SMS_SENDER_NAME
        self.timeout = timeout or settings.SMS_TIMEOUT
        self.dry_run = settings.SMS_DRY_RUN if dry_run is None else dry_run
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def send_sms(self, to: str, message: str) -> Optional[str]:
        """Send one SMS; returns the gateway message id (None in dry-run)."""
        phone = format_cameroon_phone(to)
        if not phone:
            raise SmsDeliveryError(f"Invalid phone number: {to!r}")

        if self.dry_run:
            logger.info("SMS (dry run) to +%s from %s: %s", phone, self.sender_name, message)
            return None

        try:
            response = self.client.post(
                self.api_url,
                json={
                    'to': phone,
                    'message': message,
                    'from': self.sender_name,
                    'apiKey': self.api_key,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SmsDeliveryError(f"SMS gateway call failed: {e}") from e

        data = response.json()
        if not data.get('success'):
            raise SmsDeliveryError(data.get('message') or 'SMS gateway rejected the message')
        logger.info("SMS sent to +%s (id=%s)", phone, data.get('messageId'))
        return data.get('messageId')

    def send_status_change(self, order, new_status, estimated_delivery=None):
        template = STATUS_MESSAGES.get(new_status)
        if template is None:
            return
        shop = settings.SHOP['NAME']
        self.send_sms(order.customer_phone, f"{shop}: {template.format(number=order.order_number)}")

        if new_status == 'shipped' and estimated_delivery:
            self.send_sms(
                order.customer_phone,
                f"{shop}: Votre commande #{order.order_number} est en cours de livraison. "
                f"Temps estimé: {estimated_delivery}. Préparez {order.remaining_balance or order.total_amount} "
                f"{order.currency} si paiement à la livraison.",
            )
