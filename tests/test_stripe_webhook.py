import hashlib
import hmac
import json
import time

import pytest

from juriscan.persistence.repositories import ProfileRepository, SubscriptionRepository
from juriscan.services.credits import CreditService
from juriscan.services.payments import StripeProvider, StripeWebhookHandler, WebhookSignatureError
from juriscan.services.payments.base import PaymentError, ProviderConfigError

SECRET = "whsec_test"


def sign(payload: str, secret: str = SECRET, ts=None) -> str:
    ts = int(time.time()) if ts is None else ts
    mac = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={mac}"


def checkout_event(event_id="evt_1", credits="100", mode="payment"):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_1",
            "mode": mode,
            "payment_intent": "pi_1",
            "metadata": {"user_id": "u1", "credit_package_id": "credits_100", "credits": credits},
        }},
    }


def subscription_event(event_id, *, status="active", period_start=1_700_000_000, plan_id="professional",
                       event_type="customer.subscription.updated"):
    return {
        "id": event_id,
        "type": event_type,
        "data": {"object": {
            "id": "sub_1",
            "customer": "cus_1",
            "status": status,
            "metadata": {"user_id": "u1", "plan_id": plan_id},
            "items": {"data": [{
                "current_period_start": period_start,
                "current_period_end": period_start + 30 * 86400,
            }]},
        }},
    }


# ------------------------------ assinatura do webhook ------------------------------

def test_verify_event_accepts_valid_signature():
    payload = json.dumps(checkout_event())
    event = StripeProvider(webhook_secret=SECRET).verify_event(payload.encode(), sign(payload))
    assert event["id"] == "evt_1"


def test_verify_event_rejects_bad_signature():
    payload = json.dumps(checkout_event())
    provider = StripeProvider(webhook_secret=SECRET)
    with pytest.raises(WebhookSignatureError):
        provider.verify_event(payload.encode(), sign(payload, secret="outro"))
    with pytest.raises(WebhookSignatureError):
        provider.verify_event(payload.encode(), sign(payload, ts=int(time.time()) - 3600))
    with pytest.raises(WebhookSignatureError):
        provider.verify_event(payload.encode(), None)


def test_verify_event_without_secret_is_config_error(monkeypatch):
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
    payload = json.dumps(checkout_event())
    with pytest.raises(ProviderConfigError):
        StripeProvider().verify_event(payload.encode(), sign(payload))


# ------------------------------ reconciliação ------------------------------

def test_checkout_completed_adds_purchased_credits():
    handler = StripeWebhookHandler()
    res = handler.handle(checkout_event())
    assert res.handled and not res.duplicate
    svc = CreditService()
    assert svc.get_balance("u1") == 100
    tx = svc.list_transactions("u1")[0]
    assert tx["type"] == "purchase"
    assert tx["stripe_payment_id"] == "pi_1"


def test_replayed_event_is_ignored():
    handler = StripeWebhookHandler()
    handler.handle(checkout_event())
    res = handler.handle(checkout_event())
    assert res.duplicate is True
    assert CreditService().get_balance("u1") == 100


def test_checkout_in_subscription_mode_or_bad_metadata_adds_nothing():
    handler = StripeWebhookHandler()
    assert handler.handle(checkout_event("evt_a", mode="subscription")).handled is False
    assert handler.handle(checkout_event("evt_b", credits="muitos")).handled is False
    assert CreditService().get_balance("u1") == 0


def test_subscription_grants_plan_credits_once_per_period():
    handler = StripeWebhookHandler()
    handler.handle(subscription_event("evt_1", event_type="customer.subscription.created"))
    handler.handle(subscription_event("evt_2"))
    svc = CreditService()
    assert svc.get_balance("u1") == 500
    assert ProfileRepository().get("u1")["current_plan"] == "professional"
    assert SubscriptionRepository().get_active("u1")["stripe_subscription_id"] == "sub_1"

    # renovação: novo período credita de novo
    handler.handle(subscription_event("evt_3", period_start=1_700_000_000 + 30 * 86400))
    assert svc.get_balance("u1") == 1000
    assert svc.list_transactions("u1")[0]["type"] == "subscription"


def test_inactive_subscription_grants_nothing():
    handler = StripeWebhookHandler()
    assert handler.handle(subscription_event("evt_1", status="incomplete")).handled is True
    assert CreditService().get_balance("u1") == 0


def test_subscription_deleted_returns_profile_to_free():
    handler = StripeWebhookHandler()
    handler.handle(subscription_event("evt_1"))
    handler.handle(subscription_event("evt_2", event_type="customer.subscription.deleted"))
    assert ProfileRepository().get("u1")["current_plan"] == "free"
    assert SubscriptionRepository().get_active("u1") is None
    assert SubscriptionRepository().get_by_stripe_id("sub_1")["status"] == "canceled"


def test_credit_failure_releases_period_and_raises():
    class FailingCredits(CreditService):
        def add_credits(self, *a, **kw):
            from juriscan.services.credits import CreditResult
            return CreditResult(False, error="Erro ao adicionar créditos", error_code="ADDITION_FAILED")

    with pytest.raises(PaymentError):
        StripeWebhookHandler(credits=FailingCredits()).handle(subscription_event("evt_1"))
    # retentativa da Stripe (mesmo evento) ainda credita
    StripeWebhookHandler().handle(subscription_event("evt_1"))
    assert CreditService().get_balance("u1") == 500


def test_unknown_event_is_acknowledged():
    res = StripeWebhookHandler().handle({"id": "evt_x", "type": "charge.refunded", "data": {"object": {}}})
    assert res.to_dict() == {"received": True, "type": "charge.refunded", "handled": False, "duplicate": False}


def test_redelivery_during_processing_is_duplicate():
    redelivered = []

    class RedeliveringCredits(CreditService):
        def add_credits(self, *a, **kw):
            # a Stripe reenvia o mesmo evento antes da primeira entrega terminar
            if not redelivered:
                redelivered.append(handler.handle(checkout_event()))
            return super().add_credits(*a, **kw)

    handler = StripeWebhookHandler(credits=RedeliveringCredits())
    res = handler.handle(checkout_event())

    assert res.handled and not res.duplicate
    assert redelivered[0].duplicate is True
    assert CreditService().get_balance("u1") == 100


def test_failed_purchase_is_released_for_retry():
    class FailingCredits(CreditService):
        def add_credits(self, *a, **kw):
            from juriscan.services.credits import CreditResult
            return CreditResult(False, error="Erro ao adicionar créditos", error_code="ADDITION_FAILED")

    with pytest.raises(PaymentError):
        StripeWebhookHandler(credits=FailingCredits()).handle(checkout_event())
    res = StripeWebhookHandler().handle(checkout_event())
    assert res.handled and not res.duplicate
    assert CreditService().get_balance("u1") == 100
