"""
Campay mobile-money adapter (fallback provider).
"""

from ..exceptions import ProviderError
from ..models import Payment
from .base import (
    InitiationResult,
    PaymentProviderAdapter,
    PaymentRequest,
    VerificationResult,
    WebhookEvent,
    decimal_or_none,
    json_amount,
)


class CampayAdapter(PaymentProviderAdapter):
    name = 'campay'
    STATUS_MAP = {
        'PENDING': Payment.Status.PENDING,
        'SUCCESSFUL': Payment.Status.COMPLETED,
        'FAILED': Payment.Status.FAILED,
        'CANCELLED': Payment.Status.FAILED,
    }

    def auth_headers(self):
        return {'Authorization': f'Token {self.api_key}'}

    def initiate(self, request: PaymentRequest) -> InitiationResult:
        payload = {
            # Campay expects the amount as a string
            'amount': str(json_amount(request.amount)),
            'currency': request.currency,
            'from': request.phone_number,
            'description': request.description or f"Order #{request.order_number}",
            'external_reference': request.reference,
            'redirect_url': f"{self.return_base_url}/payment/success",
            'webhook_url': self.webhook_url,
        }
        data = self._request('POST', '/collect', self.initiate_timeout, json=payload)

        reference = data.get('reference')
        if not reference:
            raise ProviderError(
                data.get('detail') or 'Campay payment initialization failed',
                provider=self.name,
            )
        return InitiationResult(
            transaction_id=str(reference),
            # USSD push collections have no hosted payment page
            payment_url=None if data.get('ussd_code') else data.get('link'),
            raw=data,
        )

    def verify(self, transaction_id: str) -> VerificationResult:
        data = self._request('GET', f'/transaction/{transaction_id}/', self.verify_timeout)
        native = data.get('status')
        return VerificationResult(
            native_status=native,
            status=self.map_status(native),
            amount=decimal_or_none(data.get('amount')),
            currency=data.get('currency'),
            raw=data,
        )

    def decode_webhook(self, payload) -> WebhookEvent:
        native = payload.get('status')
        reference = payload.get('reference')
        return WebhookEvent(
            transaction_id=str(reference) if reference else None,
            native_status=native,
            status=self.map_status(native),
            raw=dict(payload),
        )
