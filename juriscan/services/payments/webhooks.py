from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from ...persistence.repositories import (
    ProfileRepository,
    StripeEventRepository,
    SubscriptionRepository,
)
from ..costs import TransactionType
from ..credits import CreditService
from .base import JSONDict, PaymentError, WebhookResult
from .plans import get_plan

logger = logging.getLogger(__name__)


def _from_epoch(value: Any) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError):
        return None


class StripeWebhookHandler:
    """
    Reconciliação de créditos a partir de eventos da Stripe.

    Eventos tratados:
      - checkout.session.completed (mode=payment): compra avulsa de créditos
      - customer.subscription.created/updated: upsert da assinatura + créditos mensais
      - customer.subscription.deleted: cancela e volta o perfil para "free"
      - invoice.payment_succeeded/failed: apenas log

    O id do evento é reivindicado antes do processamento; entregas repetidas
    são ignoradas e a reivindicação é desfeita se o processamento falhar.
    """

    def __init__(
        self,
        credits: Optional[CreditService] = None,
        profiles: Optional[ProfileRepository] = None,
        subscriptions: Optional[SubscriptionRepository] = None,
        events: Optional[StripeEventRepository] = None,
    ) -> None:
        self.credits = credits or CreditService()
        self.profiles = profiles or ProfileRepository()
        self.subscriptions = subscriptions or SubscriptionRepository()
        self.events = events or StripeEventRepository()

    def handle(self, event: JSONDict) -> WebhookResult:
        event_id = event.get("id")
        event_type = event.get("type") or ""
        obj = (event.get("data") or {}).get("object") or {}

        # entregas simultâneas do mesmo id disputam a mesma chave primária
        if event_id and not self.events.claim(event_id, event_type):
            logger.info("Evento Stripe repetido ignorado: %s (%s)", event_id, event_type)
            return WebhookResult(event_type=event_type, duplicate=True)

        handlers = {
            "checkout.session.completed": self._on_checkout_completed,
            "customer.subscription.created": self._on_subscription_change,
            "customer.subscription.updated": self._on_subscription_change,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_invoice_paid,
            "invoice.payment_failed": self._on_invoice_failed,
        }
        fn = handlers.get(event_type)
        if fn is None:
            logger.debug("Evento Stripe não tratado: %s", event_type)
            return WebhookResult(event_type=event_type, handled=False)

        try:
            handled = bool(fn(obj))
        except Exception:
            if event_id:
                self.events.release(event_id)
            raise
        return WebhookResult(event_type=event_type, handled=handled)

    # ------------------------------ handlers --------------------------------

    def _on_checkout_completed(self, session: JSONDict) -> bool:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id")
        if not user_id or session.get("mode") != "payment":
            return False

        package_id = metadata.get("credit_package_id")
        raw_credits = metadata.get("credits")
        if not package_id or not raw_credits:
            return False
        try:
            credits = int(raw_credits)
        except (TypeError, ValueError):
            logger.warning("Metadata 'credits' inválida no checkout %s: %r", session.get("id"), raw_credits)
            return False

        res = self.credits.add_credits(
            user_id,
            credits,
            f"Compra de {credits} créditos",
            type=TransactionType.PURCHASE,
            stripe_payment_id=session.get("payment_intent"),
        )
        if not res.success:
            raise PaymentError(res.error or "Erro ao adicionar créditos")
        return True

    def _on_subscription_change(self, sub: JSONDict) -> bool:
        metadata = sub.get("metadata") or {}
        user_id = metadata.get("user_id")
        if not user_id:
            return False

        plan_id = metadata.get("plan_id") or None
        plan = get_plan(plan_id)

        item = ((sub.get("items") or {}).get("data") or [{}])[0] or {}
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        period_start = _from_epoch(item.get("current_period_start") or sub.get("current_period_start")) or now
        period_end = (
            _from_epoch(item.get("current_period_end") or sub.get("current_period_end"))
            or now + timedelta(days=30)
        )
        status = sub.get("status") or "incomplete"

        self.subscriptions.upsert(
            user_id=user_id,
            stripe_subscription_id=sub.get("id"),
            stripe_customer_id=sub.get("customer"),
            plan_id=plan_id or "free",
            status=status,
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=bool(sub.get("cancel_at_period_end")),
        )
        self.profiles.set_plan(user_id, plan_id or "free")

        if status == "active" and plan is not None:
            if not self.subscriptions.claim_period_credits(sub.get("id"), period_start):
                logger.info("Créditos do período já concedidos sub=%s", sub.get("id"))
                return True
            res = self.credits.add_credits(
                user_id,
                plan.credits,
                f"Créditos mensais - Plano {plan.name}",
                type=TransactionType.SUBSCRIPTION,
                stripe_subscription_id=sub.get("id"),
            )
            if not res.success:
                self.subscriptions.release_period_credits(sub.get("id"))
                raise PaymentError(res.error or "Erro ao adicionar créditos")
        return True

    def _on_subscription_deleted(self, sub: JSONDict) -> bool:
        user_id = (sub.get("metadata") or {}).get("user_id")
        if not user_id:
            return False
        self.subscriptions.cancel(sub.get("id"))
        self.profiles.set_plan(user_id, "free")
        logger.info("Assinatura cancelada user=%s sub=%s", user_id, sub.get("id"))
        return True

    def _on_invoice_paid(self, invoice: JSONDict) -> bool:
        logger.info("Fatura paga: %s", invoice.get("id"))
        return True

    def _on_invoice_failed(self, invoice: JSONDict) -> bool:
        logger.warning("Falha no pagamento da fatura: %s", invoice.get("id"))
        return True
