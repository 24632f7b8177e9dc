from .base import (
    CheckoutMode,
    CheckoutResult,
    PaymentError,
    PaymentProvider,
    ProviderConfigError,
    ProviderHTTPError,
    WebhookResult,
    WebhookSignatureError,
)
from .plans import CREDIT_PACKAGES, PLANS, get_credit_package, get_plan
from .stripe_provider import StripeProvider
from .checkout import CheckoutService
from .webhooks import StripeWebhookHandler

__all__ = [
    "CheckoutMode",
    "CheckoutResult",
    "PaymentError",
    "PaymentProvider",
    "ProviderConfigError",
    "ProviderHTTPError",
    "WebhookResult",
    "WebhookSignatureError",
    "CREDIT_PACKAGES",
    "PLANS",
    "get_credit_package",
    "get_plan",
    "StripeProvider",
    "CheckoutService",
    "StripeWebhookHandler",
]
