"""Payment provider registry"""

from typing import Optional

from ....config import PAYMENT_PROVIDER
from .base import ParsedWebhookEvent, PaymentIntent, PaymentProvider, PaymentProviderError, RefundResult
from .mock_provider import MockPaymentProvider
from .square_provider import SquarePaymentProvider
from .stripe_provider import StripePaymentProvider

PROVIDERS: dict[str, type[PaymentProvider]] = {
    "stripe": StripePaymentProvider,
    "square": SquarePaymentProvider,
    "mock": MockPaymentProvider,
}


def get_payment_provider(name: Optional[str] = None) -> PaymentProvider:
    provider_name = (name or PAYMENT_PROVIDER).lower()
    provider_class = PROVIDERS.get(provider_name)
    if provider_class is None:
        raise PaymentProviderError(f"Unknown payment provider: {provider_name}")
    return provider_class()


__all__ = [
    "MockPaymentProvider",
    "ParsedWebhookEvent",
    "PaymentIntent",
    "PaymentProvider",
    "PaymentProviderError",
    "RefundResult",
    "SquarePaymentProvider",
    "StripePaymentProvider",
    "get_payment_provider",
]
