# -*- coding: utf-8 -*-
from __future__ import annotations
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from .db import (
    init_db,
    get_session,
    utcnow,
    Profile,
    CreditBalance,
    CreditTransaction,
    Subscription,
    StripeEvent,
    Report,
)


def _gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _to_dict(row: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for col in row.__table__.columns:
        v = getattr(row, col.name)
        out[col.name] = v.isoformat() if isinstance(v, datetime) else v
    return out


# ========= Perfis =========
class ProfileRepository:
    """
    Perfis de usuário (plano atual e cliente Stripe).
      - get(user_id) -> dict|None
      - ensure(user_id, email=None) -> dict   (cria se não existir)
      - set_plan(user_id, plan_id)
      - set_stripe_customer(user_id, customer_id)
    """

    def __init__(self) -> None:
        init_db()

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        with get_session() as s:
            row = s.get(Profile, user_id)
            return _to_dict(row) if row else None

    def ensure(self, user_id: str, email: Optional[str] = None) -> Dict[str, Any]:
        with get_session() as s:
            row = s.get(Profile, user_id)
            if row is None:
                row = Profile(id=user_id, email=email, current_plan="free")
                s.add(row)
            elif email and not row.email:
                row.email = email
            s.flush()
            return _to_dict(row)

    def set_plan(self, user_id: str, plan_id: str) -> None:
        with get_session() as s:
            row = s.get(Profile, user_id)
            if row is None:
                s.add(Profile(id=user_id, current_plan=plan_id))
            else:
                row.current_plan = plan_id

    def set_stripe_customer(self, user_id: str, customer_id: str) -> None:
        with get_session() as s:
            row = s.get(Profile, user_id)
            if row is None:
                s.add(Profile(id=user_id, stripe_customer_id=customer_id))
            else:
                row.stripe_customer_id = customer_id


# ========= Créditos =========
class CreditRepository:
    """
    Saldo e extrato de créditos.
      - get_balance(user_id) -> int|None   (None = usuário sem linha de saldo)
      - debit_if_unchanged(...) -> int|None  (UPDATE condicional + lançamento)
      - credit(...) -> int  (upsert do saldo + lançamento)
      - list_transactions(user_id, limit=20) -> List[dict]
    """

    def __init__(self) -> None:
        init_db()

    def get_balance(self, user_id: str) -> Optional[int]:
        with get_session() as s:
            value = s.execute(
                select(CreditBalance.balance).where(CreditBalance.user_id == user_id)
            ).scalar_one_or_none()
            return int(value) if value is not None else None

    def debit_if_unchanged(
        self,
        user_id: str,
        expected_balance: int,
        amount: int,
        *,
        description: str,
        reference_id: Optional[str] = None,
    ) -> Optional[int]:
        """
        Debita `amount` apenas se o saldo ainda for `expected_balance`.
        Retorna o novo saldo, ou None quando nenhuma linha foi alterada.
        Atualização e lançamento ficam na mesma transação.
        """
        new_balance = expected_balance - amount
        with get_session() as s:
            result = s.execute(
                update(CreditBalance)
                .where(CreditBalance.user_id == user_id)
                .where(CreditBalance.balance == expected_balance)
                .values(balance=new_balance, updated_at=utcnow())
            )
            if result.rowcount != 1:
                return None
            s.add(
                CreditTransaction(
                    id=_gen_id("ctx"),
                    user_id=user_id,
                    type="usage",
                    amount=-amount,
                    balance_after=new_balance,
                    description=description,
                    reference_id=reference_id,
                )
            )
        return new_balance

    def credit(
        self,
        user_id: str,
        amount: int,
        *,
        type: str,
        description: str,
        stripe_payment_id: Optional[str] = None,
        stripe_subscription_id: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> int:
        with get_session() as s:
            row = s.get(CreditBalance, user_id)
            if row is None:
                s.add(CreditBalance(user_id=user_id, balance=amount))
                s.flush()
            else:
                s.execute(
                    update(CreditBalance)
                    .where(CreditBalance.user_id == user_id)
                    .values(balance=CreditBalance.balance + amount, updated_at=utcnow())
                )
            new_balance = s.execute(
                select(CreditBalance.balance).where(CreditBalance.user_id == user_id)
            ).scalar_one()
            s.add(
                CreditTransaction(
                    id=_gen_id("ctx"),
                    user_id=user_id,
                    type=type,
                    amount=amount,
                    balance_after=new_balance,
                    description=description,
                    stripe_payment_id=stripe_payment_id,
                    stripe_subscription_id=stripe_subscription_id,
                    reference_id=reference_id,
                )
            )
            return int(new_balance)

    def list_transactions(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        with get_session() as s:
            rows = s.execute(
                select(CreditTransaction)
                .where(CreditTransaction.user_id == user_id)
                .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
                .limit(limit)
            ).scalars().all()
            return [_to_dict(r) for r in rows]


# ========= Assinaturas =========
class SubscriptionRepository:
    def __init__(self) -> None:
        init_db()

    def upsert(
        self,
        *,
        user_id: str,
        stripe_subscription_id: str,
        stripe_customer_id: Optional[str],
        plan_id: str,
        status: str,
        current_period_start: datetime,
        current_period_end: datetime,
        cancel_at_period_end: bool = False,
    ) -> Dict[str, Any]:
        with get_session() as s:
            row = s.execute(
                select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
            ).scalar_one_or_none()
            if row is None:
                row = Subscription(id=_gen_id("sub"), stripe_subscription_id=stripe_subscription_id)
                s.add(row)
            row.user_id = user_id
            row.stripe_customer_id = stripe_customer_id
            row.plan_id = plan_id
            row.status = status
            row.current_period_start = current_period_start
            row.current_period_end = current_period_end
            row.cancel_at_period_end = bool(cancel_at_period_end)
            row.updated_at = utcnow()
            s.flush()
            return _to_dict(row)

    def claim_period_credits(self, stripe_subscription_id: str, period_start: datetime) -> bool:
        """
        Marca o período como creditado. Retorna False se já estava marcado
        (evita creditar duas vezes o mesmo ciclo).
        """
        with get_session() as s:
            result = s.execute(
                update(Subscription)
                .where(Subscription.stripe_subscription_id == stripe_subscription_id)
                .where(
                    (Subscription.credits_granted_for.is_(None))
                    | (Subscription.credits_granted_for != period_start)
                )
                .values(credits_granted_for=period_start)
            )
            return result.rowcount == 1

    def release_period_credits(self, stripe_subscription_id: str) -> None:
        with get_session() as s:
            s.execute(
                update(Subscription)
                .where(Subscription.stripe_subscription_id == stripe_subscription_id)
                .values(credits_granted_for=None)
            )

    def cancel(self, stripe_subscription_id: str) -> None:
        with get_session() as s:
            s.execute(
                update(Subscription)
                .where(Subscription.stripe_subscription_id == stripe_subscription_id)
                .values(status="canceled", updated_at=utcnow())
            )

    def get_active(self, user_id: str) -> Optional[Dict[str, Any]]:
        with get_session() as s:
            row = s.execute(
                select(Subscription)
                .where(Subscription.user_id == user_id)
                .where(Subscription.status == "active")
                .order_by(Subscription.updated_at.desc())
                .limit(1)
            ).scalar_one_or_none()
            return _to_dict(row) if row else None

    def get_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Dict[str, Any]]:
        with get_session() as s:
            row = s.execute(
                select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
            ).scalar_one_or_none()
            return _to_dict(row) if row else None


# ========= Eventos Stripe (idempotência) =========
class StripeEventRepository:
    """
    Idempotência dos webhooks: o id do evento é reivindicado ANTES do processamento.
      - claim(event_id, event_type) -> bool   (False = já reivindicado por outra entrega)
      - release(event_id)                     (libera para a retentativa da Stripe)
    """

    def __init__(self) -> None:
        init_db()

    def claim(self, event_id: str, event_type: str) -> bool:
        try:
            with get_session() as s:
                s.add(StripeEvent(id=event_id, type=event_type))
            return True
        except IntegrityError:
            return False

    def release(self, event_id: str) -> None:
        with get_session() as s:
            s.execute(delete(StripeEvent).where(StripeEvent.id == event_id))


# ========= Relatórios =========
class ReportRepository:
    """
    Relatórios do usuário.
      - create(user_id, type, title, parameters) -> dict
      - get(report_id, user_id=None) -> dict|None
      - list_by_user(user_id, type=None, status=None, limit=20, offset=0) -> List[dict]
      - delete(report_id, user_id) -> bool
      - update(report_id, **campos) -> dict|None
      - claim_for_generation(report_id, user_id) -> bool  (DRAFT -> GENERATING condicional)
    """

    def __init__(self) -> None:
        init_db()

    def create(self, user_id: str, type: str, title: str, parameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        with get_session() as s:
            row = Report(
                id=_gen_id("rep"),
                user_id=user_id,
                type=type,
                title=title,
                status="DRAFT",
                parameters=parameters or {},
            )
            s.add(row)
            s.flush()
            return _to_dict(row)

    def get(self, report_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        with get_session() as s:
            row = s.get(Report, report_id)
            if row is None or (user_id is not None and row.user_id != user_id):
                return None
            return _to_dict(row)

    def list_by_user(
        self,
        user_id: str,
        *,
        type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        q = select(Report).where(Report.user_id == user_id)
        if type:
            q = q.where(Report.type == type)
        if status:
            q = q.where(Report.status == status)
        q = q.order_by(Report.created_at.desc()).limit(limit).offset(offset)
        with get_session() as s:
            return [_to_dict(r) for r in s.execute(q).scalars().all()]

    def delete(self, report_id: str, user_id: str) -> bool:
        with get_session() as s:
            row = s.get(Report, report_id)
            if row is None or row.user_id != user_id:
                return False
            s.delete(row)
            return True

    def update(self, report_id: str, **fields: Any) -> Optional[Dict[str, Any]]:
        with get_session() as s:
            row = s.get(Report, report_id)
            if row is None:
                return None
            for k, v in fields.items():
                setattr(row, k, v)
            s.flush()
            return _to_dict(row)

    def claim_for_generation(self, report_id: str, user_id: str) -> bool:
        """
        Passa o relatório de DRAFT para GENERATING numa única instrução.
        False quando outro pedido já o reivindicou (ou ele não é do usuário).
        """
        with get_session() as s:
            result = s.execute(
                update(Report)
                .where(Report.id == report_id)
                .where(Report.user_id == user_id)
                .where(Report.status == "DRAFT")
                .values(status="GENERATING", error=None)
            )
            return result.rowcount == 1
