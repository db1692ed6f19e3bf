"""
Mobile-money provider adapter base class.

Every provider exposes the same three capabilities to the orchestrator:
initiate a collection, verify a transaction, and decode a webhook body.
Provider vocabularies are mapped into the canonical ``Payment.Status`` by a
pure lookup; unknown native statuses map to ``pending``.

To add a provider:
1. Subclass ``PaymentProviderAdapter`` and set ``name`` and ``STATUS_MAP``
2. Implement ``initiate``, ``verify`` and ``decode_webhook``
3. Add its configuration to ``settings.PAYMENT_PROVIDERS`` and to
   ``payments.providers.ADAPTER_CLASSES``
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import httpx

from ..exceptions import ProviderError
from ..models import Payment


@dataclass
class PaymentRequest:
    """Provider-neutral description of a collection to start."""
    reference: str
    order_number: str
    amount: Decimal
    currency: str
    phone_number: str
    payment_method: str = Payment.Method.MTN_MOMO
    customer_name: str = ''
    customer_email: str = ''
    description: str = ''


@dataclass
class InitiationResult:
    transaction_id: str
    payment_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VerificationResult:
    native_status: Optional[str]
    status: str
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookEvent:
    transaction_id: Optional[str]
    native_status: Optional[str]
    status: str
    raw: Dict[str, Any] = field(default_factory=dict)


def json_amount(amount) -> Any:
    """JSON-friendly amount: integral values as int, others as float."""
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def decimal_or_none(value) -> Optional[Decimal]:
    if value in (None, ''):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class PaymentProviderAdapter(ABC):
    name: str = ''
    STATUS_MAP: Dict[str, str] = {}

    def __init__(
        self,
        base_url: str,
        api_key: str = '',
        enabled: bool = True,
        initiate_timeout: float = 30.0,
        verify_timeout: float = 15.0,
        callback_base_url: str = '',
        return_base_url: str = '',
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.enabled = enabled
        self.initiate_timeout = initiate_timeout
        self.verify_timeout = verify_timeout
        self.callback_base_url = callback_base_url.rstrip('/')
        self.return_base_url = return_base_url.rstrip('/')
        self._client = client

    def __repr__(self):
        return f"<{type(self).__name__} name={self.name!r} enabled={self.is_enabled}>"

    @property
    def is_enabled(self) -> bool:
        """Feature flag on and credentials present."""
        return bool(self.enabled and self.api_key)

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(base_url=self.base_url)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def webhook_url(self) -> str:
        return f"{self.callback_base_url}/api/payments/webhook/{self.name}/"

    @abstractmethod
    def auth_headers(self) -> Dict[str, str]:
        ...

    @classmethod
    def map_status(cls, native_status: Optional[str]) -> str:
        if native_status is None:
            return Payment.Status.PENDING
        return cls.STATUS_MAP.get(str(native_status), Payment.Status.PENDING)

    def _request(self, method: str, path: str, timeout: float, **kwargs) -> Dict[str, Any]:
        """
        Perform one HTTP call and return the decoded JSON body.

        Timeouts, transport errors, non-2xx responses and non-JSON bodies all
        become ``ProviderError``.
        """
        headers = {'Content-Type': 'application/json', **self.auth_headers()}
        try:
            response = self.client.request(method, path, headers=headers, timeout=timeout, **kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.name}: request timed out", provider=self.name) from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{self.name}: HTTP {e.response.status_code} from provider",
                provider=self.name,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name}: {e}", provider=self.name) from e
        except ValueError as e:
            raise ProviderError(f"{self.name}: invalid JSON response", provider=self.name) from e

        if not isinstance(data, dict):
            raise ProviderError(f"{self.name}: unexpected response shape", provider=self.name)
        return data

    @abstractmethod
    def initiate(self, request: PaymentRequest) -> InitiationResult:
        ...

    @abstractmethod
    def verify(self, transaction_id: str) -> VerificationResult:
        ...

    @abstractmethod
    def decode_webhook(self, payload: Dict[str, Any]) -> WebhookEvent:
        ...
