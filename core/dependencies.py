from fastapi import Depends

from core.settings import Settings
from payments.paypal_client import PayPalClient
from payments.verification import WebhookSignatureVerifier

# Settings singleton
_settings = None


def get_settings() -> Settings:
    """Dependency that provides application settings."""
    assert (
        _settings is not None
    ), "Settings not initialized. Make sure startup() was called."
    return _settings


def init_settings():
    """Initialize settings singleton."""
    global _settings
    _settings = Settings()


def clear_settings():
    """Clear settings singleton."""
    global _settings
    _settings = None


def get_paypal_client(settings: Settings = Depends(get_settings)) -> PayPalClient:
    """Dependency that provides a PayPal REST client for the current settings."""
    return PayPalClient(settings)


def get_signature_verifier(
    settings: Settings = Depends(get_settings),
    client: PayPalClient = Depends(get_paypal_client),
) -> WebhookSignatureVerifier:
    """Dependency that provides the webhook signature verifier."""
    return WebhookSignatureVerifier(client, settings.PAYPAL_WEBHOOK_ID)
