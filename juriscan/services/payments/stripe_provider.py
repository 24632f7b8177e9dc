# juriscan/services/payments/stripe_provider.py
from __future__ import annotations
import json
import logging
import os
from typing import Dict, Any, Optional

import requests
import stripe
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import (
    CheckoutMode,
    CheckoutResult,
    PaymentProvider,
    ProviderConfigError,
    ProviderHTTPError,
    WebhookSignatureError,
    flatten_metadata,
)

logger = logging.getLogger(__name__)


class StripeProvider(PaymentProvider):
    """
    Stripe: Customers, Checkout Sessions (assinatura ou pagamento avulso) e Billing Portal.
    Requer:
      - STRIPE_API_KEY (chamadas REST)
      - STRIPE_WEBHOOK_SECRET (validação do webhook)
    Opcionais:
      - HTTP_TIMEOUT_SECONDS (default 15)
      - STRIPE_PAYMENT_METHOD_TYPES  (ex.: "card")
      - STRIPE_ALLOW_PROMO_CODES     ("1"/"0"; default 0)
      - STRIPE_WEBHOOK_TOLERANCE     (segundos; default 300)
    """

    API_BASE = "https://api.stripe.com"

    def __init__(self, api_key: Optional[str] = None, *, webhook_secret: Optional[str] = None):
        self.api_key = api_key or os.getenv("STRIPE_API_KEY") or os.getenv("STRIPE_SECRET_KEY")
        self.webhook_secret = webhook_secret or os.getenv("STRIPE_WEBHOOK_SECRET")
        self.timeout = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))

        # sessão com retry básico
        self.session = requests.Session()
        retries = Retry(
            total=3,
            backoff_factor=0.3,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "POST", "DELETE"]),
        )
        self.session.mount("https://", HTTPAdapter(max_retries=retries))
        self.session.mount("http://", HTTPAdapter(max_retries=retries))

    # ------------------------------ utils ---------------------------------

    def _auth(self):
        # Basic Auth: chave como usuário, senha vazia
        if not self.api_key:
            raise ProviderConfigError("STRIPE_API_KEY não configurada")
        return (self.api_key, "")

    def _post(self, path: str, data: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.API_BASE}{path}"
        resp = self.session.post(url, data=data, auth=self._auth(), timeout=self.timeout)
        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = {"raw": resp.text[:500]}
            message = ((payload.get("error") or {}).get("message")) or resp.reason or "erro"
            logger.warning("Stripe %s -> %s: %s", path, resp.status_code, message)
            raise ProviderHTTPError(resp.status_code, message, payload)
        return resp.json()

    # ------------------------------- API ----------------------------------

    def create_customer(self, *, email: Optional[str], user_id: str) -> str:
        """POST /v1/customers; devolve o id cus_..."""
        data: Dict[str, Any] = {"metadata[user_id]": user_id}
        if email:
            data["email"] = email
        js = self._post("/v1/customers", data)
        return js["id"]

    def create_checkout(
        self,
        *,
        price_id: str,
        mode: CheckoutMode,
        success_url: str,
        cancel_url: str,
        customer_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CheckoutResult:
        """
        Cria uma Checkout Session e retorna a URL.
        - A Stripe exige form-urlencoded para /v1/checkout/sessions.
        - Em modo assinatura a metadata também vai para subscription_data,
          para chegar nos eventos customer.subscription.*.
        """
        mode = CheckoutMode(mode)
        pm_types = [s.strip() for s in os.getenv("STRIPE_PAYMENT_METHOD_TYPES", "card").split(",") if s.strip()]
        allow_promo = os.getenv("STRIPE_ALLOW_PROMO_CODES", "0") in {"1", "true", "True"}

        data: Dict[str, Any] = {
            "mode": mode.value,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "locale": "pt-BR",
            "line_items[0][price]": price_id,
            "line_items[0][quantity]": 1,
            "allow_promotion_codes": "true" if allow_promo else "false",
        }
        for i, pm in enumerate(pm_types):
            data[f"payment_method_types[{i}]"] = pm
        if customer_id:
            data["customer"] = customer_id

        data.update(flatten_metadata("metadata", metadata or {}))
        if mode is CheckoutMode.SUBSCRIPTION:
            data.update(flatten_metadata("subscription_data[metadata]", metadata or {}))

        js = self._post("/v1/checkout/sessions", data)
        return CheckoutResult(checkout_url=js.get("url"), session_id=js.get("id"), raw=js)

    def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        """POST /v1/billing_portal/sessions; devolve a URL do portal."""
        js = self._post(
            "/v1/billing_portal/sessions",
            {"customer": customer_id, "return_url": return_url},
        )
        return js.get("url")

    # ----------------------------- webhook ---------------------------------

    def verify_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Valida o header Stripe-Signature (HMAC com o segredo do endpoint)
        e devolve o evento como dict.
        """
        if not signature:
            raise WebhookSignatureError("Assinatura ausente")
        if not self.webhook_secret:
            raise ProviderConfigError("STRIPE_WEBHOOK_SECRET não configurada")

        body = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else str(payload)
        tolerance = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))
        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, tolerance)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e)) from e

        try:
            event = json.loads(body)
        except ValueError as e:
            raise WebhookSignatureError("Payload inválido") from e
        if not isinstance(event, dict):
            raise WebhookSignatureError("Payload inválido")
        return event
