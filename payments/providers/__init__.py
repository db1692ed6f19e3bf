"""
Mobile-money provider adapters and their settings-driven construction.
"""

from typing import List

from django.conf import settings

from .base import (
    InitiationResult,
    PaymentProviderAdapter,
    PaymentRequest,
    VerificationResult,
    WebhookEvent,
)
from .campay import CampayAdapter
from .noupai import NoupaiAdapter

ADAPTER_CLASSES = {
    NoupaiAdapter.name: NoupaiAdapter,
    CampayAdapter.name: CampayAdapter,
}


def build_adapters(provider_settings=None) -> List[PaymentProviderAdapter]:
    """
    Adapters in fallback priority order, built from
    ``settings.PAYMENT_PROVIDERS``. Disabled providers are kept so that
    verify and webhook calls for their past transactions still resolve.
    """
    provider_settings = settings.PAYMENT_PROVIDERS if provider_settings is None else provider_settings
    adapters = []
    for conf in provider_settings:
        adapter_class = ADAPTER_CLASSES.get(conf['NAME'])
        if adapter_class is None:
            raise ValueError(f"No adapter registered for payment provider {conf['NAME']!r}")
        adapters.append(
            adapter_class(
                base_url=conf['BASE_URL'],
                api_key=conf.get('API_KEY', ''),
                enabled=conf.get('ENABLED', False),
                initiate_timeout=conf.get('INITIATE_TIMEOUT', 30.0),
                verify_timeout=conf.get('VERIFY_TIMEOUT', 15.0),
                callback_base_url=settings.API_URL,
                return_base_url=settings.FRONTEND_URL,
            )
        )
    return adapters


__all__ = [
    'ADAPTER_CLASSES',
    'CampayAdapter',
    'InitiationResult',
    'NoupaiAdapter',
    'PaymentProviderAdapter',
    'PaymentRequest',
    'VerificationResult',
    'WebhookEvent',
    'build_adapters',
]
