from __future__ import annotations
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import AppError, InsufficientCreditsError, ValidationError
from ..persistence.repositories import CreditRepository, SubscriptionRepository
from .costs import TransactionType

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LEN = 500

# códigos de falha do ledger
BALANCE_CHECK_FAILED = "BALANCE_CHECK_FAILED"
INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
DEDUCTION_FAILED = "DEDUCTION_FAILED"
ADDITION_FAILED = "ADDITION_FAILED"


@dataclass
class CreditResult:
    """
    Resultado de uma operação no saldo.
    - success: operação aplicada
    - new_balance: saldo após a operação (quando success)
    - error / error_code: mensagem PT-BR e código estável (quando falha)
    - required / available: preenchidos em INSUFFICIENT_CREDITS
    """
    success: bool
    new_balance: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    required: Optional[int] = None
    available: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _validate_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Quantidade de créditos deve ser um número inteiro", details={"amount": amount})
    if amount <= 0:
        raise ValidationError("Quantidade de créditos deve ser positiva", details={"amount": amount})
    return amount


def _validate_description(description: Optional[str]) -> str:
    if description is not None and not isinstance(description, str):
        raise ValidationError("Descrição deve ser texto")
    d = (description or "").strip()
    if len(d) > MAX_DESCRIPTION_LEN:
        raise ValidationError(f"Descrição deve ter no máximo {MAX_DESCRIPTION_LEN} caracteres")
    return d


class CreditService:
    """
    Ledger de créditos por usuário.
      - deduct_credits: leitura do saldo + UPDATE condicional ao valor lido + lançamento
      - add_credits: upsert do saldo + lançamento
      - refund_credits: estorno (add com tipo 'refund')
      - charge: dedução que levanta InsufficientCreditsError/AppError (uso nas rotas)
    """

    def __init__(
        self,
        repo: Optional[CreditRepository] = None,
        subscriptions: Optional[SubscriptionRepository] = None,
    ) -> None:
        self.repo = repo or CreditRepository()
        self.subscriptions = subscriptions or SubscriptionRepository()

    # ------------------------------ leitura --------------------------------

    def get_balance(self, user_id: str) -> int:
        return self.repo.get_balance(user_id) or 0

    def list_transactions(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        return self.repo.list_transactions(user_id, limit=limit)

    def get_overview(self, user_id: str) -> Dict[str, Any]:
        """Saldo, últimos 20 lançamentos e assinatura ativa."""
        return {
            "balance": self.get_balance(user_id),
            "transactions": self.list_transactions(user_id, limit=20),
            "subscription": self.subscriptions.get_active(user_id),
        }

    # ------------------------------ escrita --------------------------------

    def deduct_credits(
        self,
        user_id: str,
        amount: int,
        description: str = "Uso de créditos",
        *,
        reference_id: Optional[str] = None,
    ) -> CreditResult:
        amount = _validate_amount(amount)
        description = _validate_description(description) or "Uso de créditos"

        try:
            current = self.repo.get_balance(user_id)
        except SQLAlchemyError:
            logger.exception("Falha ao ler saldo de %s", user_id)
            return CreditResult(False, error="Erro ao verificar saldo", error_code=BALANCE_CHECK_FAILED)

        current = current or 0
        if current < amount:
            logger.info("Créditos insuficientes user=%s saldo=%s custo=%s", user_id, current, amount)
            return CreditResult(
                False,
                error="Créditos insuficientes",
                error_code=INSUFFICIENT_CREDITS,
                required=amount,
                available=current,
            )

        try:
            new_balance = self.repo.debit_if_unchanged(
                user_id, current, amount, description=description, reference_id=reference_id
            )
        except SQLAlchemyError:
            logger.exception("Falha ao deduzir créditos de %s", user_id)
            new_balance = None

        if new_balance is None:
            # saldo mudou entre a leitura e o UPDATE, ou o banco falhou
            return CreditResult(False, error="Erro ao deduzir créditos", error_code=DEDUCTION_FAILED)

        logger.info("Créditos deduzidos user=%s valor=%s saldo=%s", user_id, amount, new_balance)
        return CreditResult(True, new_balance=new_balance)

    def add_credits(
        self,
        user_id: str,
        amount: int,
        description: str = "Créditos adicionados",
        *,
        type: TransactionType | str = TransactionType.PURCHASE,
        stripe_payment_id: Optional[str] = None,
        stripe_subscription_id: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> CreditResult:
        amount = _validate_amount(amount)
        description = _validate_description(description) or "Créditos adicionados"
        tx_type = TransactionType(type).value

        try:
            new_balance = self.repo.credit(
                user_id,
                amount,
                type=tx_type,
                description=description,
                stripe_payment_id=stripe_payment_id,
                stripe_subscription_id=stripe_subscription_id,
                reference_id=reference_id,
            )
        except SQLAlchemyError:
            logger.exception("Falha ao adicionar créditos para %s", user_id)
            return CreditResult(False, error="Erro ao adicionar créditos", error_code=ADDITION_FAILED)

        logger.info("Créditos adicionados user=%s valor=%s tipo=%s saldo=%s", user_id, amount, tx_type, new_balance)
        return CreditResult(True, new_balance=new_balance)

    def refund_credits(
        self,
        user_id: str,
        amount: int,
        description: str = "Estorno de créditos",
        *,
        reference_id: Optional[str] = None,
    ) -> CreditResult:
        return self.add_credits(
            user_id, amount, description, type=TransactionType.REFUND, reference_id=reference_id
        )

    def charge(
        self,
        user_id: str,
        amount: int,
        description: str,
        *,
        reference_id: Optional[str] = None,
    ) -> int:
        """Deduz ou levanta erro HTTP-friendly. Retorna o novo saldo."""
        res = self.deduct_credits(user_id, amount, description, reference_id=reference_id)
        if res.success:
            return int(res.new_balance or 0)
        if res.error_code == INSUFFICIENT_CREDITS:
            raise InsufficientCreditsError(required=amount, available=res.available or 0)
        if res.error_code == DEDUCTION_FAILED:
            raise AppError(res.error or "Erro ao deduzir créditos", code=DEDUCTION_FAILED, status_code=409)
        raise AppError(res.error or "Erro ao verificar saldo", code=res.error_code or BALANCE_CHECK_FAILED)
