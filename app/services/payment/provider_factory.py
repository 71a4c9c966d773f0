# app/services/payment/provider_factory.py
from typing import Dict, Optional

from app.core.config import settings
from app.services.payment.provider_interface import PaymentProviderInterface
from app.services.payment.providers.stripe_provider import StripeConfig, StripeProvider

_providers: Dict[str, PaymentProviderInterface] = {}


def get_payment_provider(code: Optional[str] = None) -> PaymentProviderInterface:
    """
    Get a payment provider instance by code.

    Providers are cached per process. Only Stripe is configured today.
    """
    code = code or "stripe"
    if code in _providers:
        return _providers[code]

    if code == "stripe":
        provider = StripeProvider(
            StripeConfig(
                secret_key=settings.STRIPE_SECRET_KEY,
                publishable_key=settings.STRIPE_PUBLISHABLE_KEY,
                webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            )
        )
    else:
        raise ValueError(f"Unknown payment provider: {code}")

    _providers[code] = provider
    return provider


def clear_provider_cache() -> None:
    """Drop cached providers (tests, key rotation)."""
    _providers.clear()
