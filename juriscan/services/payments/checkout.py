from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from ...errors import ValidationError
from ...persistence.repositories import ProfileRepository
from .base import CheckoutMode, CheckoutResult
from .plans import get_credit_package, get_plan
from .stripe_provider import StripeProvider

logger = logging.getLogger(__name__)


class CheckoutService:
    """
    Monta o checkout da Stripe para um usuário:
      - obtém/cria o customer na Stripe e salva no perfil
      - resolve o price a partir de plan_id / credit_package_id / price_id
      - metadata user_id + plan_id ou credit_package_id/credits (usada no webhook)
    """

    def __init__(
        self,
        provider: Optional[StripeProvider] = None,
        profiles: Optional[ProfileRepository] = None,
    ) -> None:
        self.provider = provider or StripeProvider()
        self.profiles = profiles or ProfileRepository()

    def _ensure_customer(self, user_id: str, email: Optional[str]) -> str:
        profile = self.profiles.ensure(user_id, email=email)
        customer_id = profile.get("stripe_customer_id")
        if customer_id:
            return customer_id
        customer_id = self.provider.create_customer(email=email or profile.get("email"), user_id=user_id)
        self.profiles.set_stripe_customer(user_id, customer_id)
        logger.info("Customer Stripe criado user=%s customer=%s", user_id, customer_id)
        return customer_id

    def start_checkout(
        self,
        user_id: str,
        *,
        email: Optional[str] = None,
        plan_id: Optional[str] = None,
        credit_package_id: Optional[str] = None,
        price_id: Optional[str] = None,
        mode: Optional[str] = None,
        origin: str = "",
    ) -> CheckoutResult:
        if not (plan_id or credit_package_id or price_id):
            raise ValidationError("Informe priceId, planId ou creditPackageId")

        final_price = price_id
        extra: Dict[str, Any] = {}
        plan = get_plan(plan_id)
        pkg = get_credit_package(credit_package_id)
        if plan is not None:
            final_price = plan.price_id
            extra = {"plan_id": plan.id}
        elif pkg is not None:
            final_price = pkg.price_id
            extra = {"credit_package_id": pkg.id, "credits": pkg.credits}

        if not final_price:
            raise ValidationError("Plano ou pacote inválido")

        if mode:
            try:
                checkout_mode = CheckoutMode(mode)
            except ValueError:
                raise ValidationError("Modo de checkout inválido", details={"mode": mode})
        else:
            checkout_mode = CheckoutMode.PAYMENT if pkg is not None else CheckoutMode.SUBSCRIPTION

        customer_id = self._ensure_customer(user_id, email)
        base = (origin or "").rstrip("/")
        return self.provider.create_checkout(
            price_id=final_price,
            mode=checkout_mode,
            success_url=f"{base}/configuracoes?tab=plano&success=true",
            cancel_url=f"{base}/configuracoes?tab=plano&canceled=true",
            customer_id=customer_id,
            metadata={"user_id": user_id, **extra},
        )

    def portal_url(self, user_id: str, *, origin: str = "") -> str:
        profile = self.profiles.get(user_id) or {}
        customer_id = profile.get("stripe_customer_id")
        if not customer_id:
            raise ValidationError("Nenhuma assinatura encontrada")
        return self.provider.create_portal_session(
            customer_id=customer_id,
            return_url=f"{(origin or '').rstrip('/')}/configuracoes?tab=plano",
        )
