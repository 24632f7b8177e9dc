from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    price_brl: float
    credits: int
    price_env: Optional[str] = None
    features: List[str] = field(default_factory=list)

    @property
    def price_id(self) -> Optional[str]:
        """Price ID da Stripe (lido do ambiente na hora do uso)."""
        return os.getenv(self.price_env) if self.price_env else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price_brl,
            "credits": self.credits,
            "features": list(self.features),
        }


@dataclass(frozen=True)
class CreditPackage:
    id: str
    name: str
    credits: int
    price_brl: float
    price_env: str
    popular: bool = False

    @property
    def price_id(self) -> Optional[str]:
        return os.getenv(self.price_env)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "credits": self.credits,
            "price": self.price_brl,
            "popular": self.popular,
        }


PLANS: Dict[str, Plan] = {
    "free": Plan(
        id="free",
        name="Gratuito",
        price_brl=0,
        credits=50,
        features=["50 créditos por mês", "Chat jurídico básico", "1 análise por dia", "Suporte por email"],
    ),
    "professional": Plan(
        id="professional",
        name="Profissional",
        price_brl=97,
        credits=500,
        price_env="STRIPE_PRICE_PROFESSIONAL",
        features=["500 créditos por mês", "Chat jurídico avançado", "Análises ilimitadas", "Relatórios PDF", "Suporte prioritário"],
    ),
    "enterprise": Plan(
        id="enterprise",
        name="Escritório",
        price_brl=297,
        credits=2000,
        price_env="STRIPE_PRICE_ENTERPRISE",
        features=["2.000 créditos por mês", "Tudo do Profissional", "Multi-usuários", "API de integração"],
    ),
}

CREDIT_PACKAGES: Dict[str, CreditPackage] = {
    "credits_100": CreditPackage("credits_100", "100 Créditos", 100, 29, "STRIPE_PRICE_CREDITS_100"),
    "credits_500": CreditPackage("credits_500", "500 Créditos", 500, 119, "STRIPE_PRICE_CREDITS_500", popular=True),
    "credits_1000": CreditPackage("credits_1000", "1000 Créditos", 1000, 199, "STRIPE_PRICE_CREDITS_1000"),
}


def get_plan(plan_id: Optional[str]) -> Optional[Plan]:
    return PLANS.get(plan_id or "")


def get_credit_package(package_id: Optional[str]) -> Optional[CreditPackage]:
    return CREDIT_PACKAGES.get(package_id or "")
