import pytest

from juriscan.errors import AppError, InsufficientCreditsError, ValidationError
from juriscan.persistence.repositories import CreditRepository
from juriscan.services import credits as credits_module
from juriscan.services.credits import (
    ADDITION_FAILED,
    BALANCE_CHECK_FAILED,
    DEDUCTION_FAILED,
    INSUFFICIENT_CREDITS,
    CreditService,
)
from sqlalchemy.exc import OperationalError


def test_balance_of_unknown_user_is_zero():
    assert CreditService().get_balance("ghost") == 0


def test_add_then_deduct_keeps_ledger_consistent():
    svc = CreditService()
    added = svc.add_credits("u1", 100, "Compra de 100 créditos")
    assert added.success and added.new_balance == 100

    res = svc.deduct_credits("u1", 3, "Mensagem com documento")
    assert res.success
    assert res.new_balance == 97
    assert svc.get_balance("u1") == 97

    txs = svc.list_transactions("u1")
    assert [t["amount"] for t in txs] == [-3, 100]
    assert txs[0]["type"] == "usage"
    assert txs[0]["balance_after"] == 97
    assert txs[1]["type"] == "purchase"


def test_deduct_exact_balance_reaches_zero():
    svc = CreditService()
    svc.add_credits("u1", 5)
    res = svc.deduct_credits("u1", 5)
    assert res.success and res.new_balance == 0


def test_insufficient_credits_leaves_balance_untouched():
    svc = CreditService()
    svc.add_credits("u1", 2)
    res = svc.deduct_credits("u1", 3)
    assert not res.success
    assert res.error_code == INSUFFICIENT_CREDITS
    assert res.error == "Créditos insuficientes"
    assert (res.required, res.available) == (3, 2)
    assert svc.get_balance("u1") == 2
    assert len(svc.list_transactions("u1")) == 1


def test_user_without_balance_row_is_insufficient():
    res = CreditService().deduct_credits("nobody", 1)
    assert res.error_code == INSUFFICIENT_CREDITS
    assert res.available == 0


def test_balance_changed_between_read_and_update_fails(monkeypatch):
    svc = CreditService()
    svc.add_credits("u1", 10)
    real_get = CreditRepository.get_balance

    def stale_read(self, user_id):
        value = real_get(self, user_id)
        # outra requisição debita antes do UPDATE condicional
        CreditRepository().debit_if_unchanged(user_id, value, 4, description="Concorrente")
        return value

    monkeypatch.setattr(CreditRepository, "get_balance", stale_read)
    res = svc.deduct_credits("u1", 5)
    monkeypatch.undo()

    assert not res.success
    assert res.error_code == DEDUCTION_FAILED
    assert svc.get_balance("u1") == 6


def test_balance_read_failure_reports_check_failed(monkeypatch):
    def boom(self, user_id):
        raise OperationalError("SELECT", {}, Exception("db down"))

    monkeypatch.setattr(CreditRepository, "get_balance", boom)
    res = CreditService().deduct_credits("u1", 1)
    assert res.error_code == BALANCE_CHECK_FAILED
    assert res.error == "Erro ao verificar saldo"


def test_add_failure_reports_addition_failed(monkeypatch):
    def boom(self, *a, **kw):
        raise OperationalError("UPDATE", {}, Exception("db down"))

    monkeypatch.setattr(CreditRepository, "credit", boom)
    res = CreditService().add_credits("u1", 10)
    assert not res.success
    assert res.error_code == ADDITION_FAILED


@pytest.mark.parametrize("amount", [0, -5, 1.5, True, "10"])
def test_invalid_amounts_are_rejected(amount):
    with pytest.raises(ValidationError):
        CreditService().deduct_credits("u1", amount)
    with pytest.raises(ValidationError):
        CreditService().add_credits("u1", amount)


def test_description_longer_than_limit_is_rejected():
    with pytest.raises(ValidationError):
        CreditService().add_credits("u1", 1, "x" * (credits_module.MAX_DESCRIPTION_LEN + 1))


def test_refund_is_recorded_with_refund_type():
    svc = CreditService()
    svc.add_credits("u1", 10)
    svc.deduct_credits("u1", 5, reference_id="rep_1")
    res = svc.refund_credits("u1", 5, reference_id="rep_1")
    assert res.new_balance == 10
    tx = svc.list_transactions("u1", limit=1)[0]
    assert tx["type"] == "refund"
    assert tx["reference_id"] == "rep_1"


def test_charge_raises_http_friendly_errors():
    svc = CreditService()
    svc.add_credits("u1", 1)
    with pytest.raises(InsufficientCreditsError) as exc:
        svc.charge("u1", 2, "Relatório")
    assert exc.value.status_code == 402
    assert exc.value.details == {"required": 2, "available": 1}
    assert svc.charge("u1", 1, "Mensagem") == 0


def test_charge_conflict_maps_to_409(monkeypatch):
    svc = CreditService()
    svc.add_credits("u1", 10)
    monkeypatch.setattr(CreditRepository, "debit_if_unchanged", lambda self, *a, **kw: None)
    with pytest.raises(AppError) as exc:
        svc.charge("u1", 1, "Mensagem")
    assert exc.value.code == DEDUCTION_FAILED
    assert exc.value.status_code == 409


def test_overview_includes_balance_and_recent_transactions():
    svc = CreditService()
    for _ in range(25):
        svc.add_credits("u1", 1)
    ov = svc.get_overview("u1")
    assert ov["balance"] == 25
    assert len(ov["transactions"]) == 20
    assert ov["subscription"] is None
