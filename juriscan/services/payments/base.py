# juriscan/services/payments/base.py
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any

JSONDict = Dict[str, Any]


# ----------------------------- Tipos & Enums -----------------------------

class CheckoutMode(str, Enum):
    """Modo da sessão de checkout."""
    SUBSCRIPTION = "subscription"
    PAYMENT = "payment"


@dataclass
class CheckoutResult:
    """
    Resultado de criação de checkout.
    - checkout_url: URL para o cliente concluir o pagamento
    - session_id: identificador da sessão no provider (cs_... no Stripe)
    - raw: payload bruto retornado pelo provider (útil para auditoria/debug)
    """
    checkout_url: str
    session_id: Optional[str] = None
    raw: Optional[JSONDict] = None

    def to_dict(self) -> JSONDict:
        return {"url": self.checkout_url, "session_id": self.session_id}


@dataclass
class WebhookResult:
    """Resultado do processamento de um evento de webhook."""
    event_type: Optional[str] = None
    handled: bool = False
    duplicate: bool = False

    def to_dict(self) -> JSONDict:
        return {
            "received": True,
            "type": self.event_type,
            "handled": self.handled,
            "duplicate": self.duplicate,
        }


# ----------------------------- Exceptions -----------------------------

class PaymentError(Exception):
    """Erro genérico no fluxo de pagamento."""


class ProviderConfigError(PaymentError):
    """Configuração ausente/inválida do provider (ex.: credenciais)."""


class ProviderHTTPError(PaymentError):
    """Erro HTTP ao chamar o provider (status >= 400)."""
    def __init__(self, status_code: int, message: str, payload: Optional[JSONDict] = None):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.payload = payload or {}


class WebhookSignatureError(PaymentError):
    """Assinatura do webhook ausente ou inválida."""


# ----------------------------- Helpers comuns -----------------------------

def flatten_metadata(prefix: str, metadata: Dict[str, Any]) -> Dict[str, str]:
    """{"a": 1} -> {"prefix[a]": "1"} (form-urlencoded da Stripe); ignora None."""
    return {f"{prefix}[{k}]": str(v) for k, v in (metadata or {}).items() if v is not None}


# ----------------------------- Interface Base -----------------------------

class PaymentProvider(ABC):
    """Interface base para providers de pagamento (implementação: StripeProvider)."""

    @abstractmethod
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
        """Cria uma sessão de checkout no provider."""
        raise NotImplementedError

    @abstractmethod
    def verify_event(self, payload: bytes, signature: Optional[str]) -> JSONDict:
        """
        Valida a assinatura do webhook e devolve o evento como dict.
        Levanta WebhookSignatureError se inválido.
        """
        raise NotImplementedError
