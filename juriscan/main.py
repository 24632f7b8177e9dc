#!/usr/bin/env python
# juriscan/main.py: CLI administrativa (créditos e dados jurídicos)
from __future__ import annotations

import os
import json
import argparse
import logging
from datetime import date
from typing import Any, List, Optional

from .errors import AppError
from .integrations.base import ProviderError
from .persistence.db import init_db

logger = logging.getLogger("juriscan.cli")


# -----------------------------------------------------------------------------
# Helpers básicos
# -----------------------------------------------------------------------------
def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _credit_service():
    from .services.credits import CreditService
    return CreditService()


def _gateway():
    from .gateways.legal_data import get_legal_data_gateway
    return get_legal_data_gateway()


# -----------------------------------------------------------------------------
# Comandos
# -----------------------------------------------------------------------------
def cmd_init_db(args):
    init_db()
    _print_json({"ok": True})


def cmd_credits_balance(args):
    svc = _credit_service()
    _print_json({"user_id": args.user_id, "balance": svc.get_balance(args.user_id)})


def cmd_credits_add(args):
    svc = _credit_service()
    res = svc.add_credits(args.user_id, args.amount, args.description, type=args.type)
    _print_json(res.to_dict())
    return 0 if res.success else 1


def cmd_credits_deduct(args):
    svc = _credit_service()
    res = svc.deduct_credits(args.user_id, args.amount, args.description)
    _print_json(res.to_dict())
    return 0 if res.success else 1


def cmd_credits_history(args):
    svc = _credit_service()
    _print_json(svc.list_transactions(args.user_id, limit=args.limit))


def cmd_processo(args):
    processo = _gateway().get_processo(args.numero)
    if processo is None:
        _print_json({"error": "Processo não encontrado", "numero": args.numero})
        return 1
    _print_json(processo.to_dict())


def cmd_jurimetrics(args):
    from .integrations.base import GetJurimetricsParams
    from .models.entities import Periodo

    data = _gateway().get_jurimetrics(GetJurimetricsParams(
        periodo=Periodo(inicio=date.fromisoformat(args.inicio), fim=date.fromisoformat(args.fim)),
        tribunal=args.tribunal.upper(),
        classe=args.classe,
        assunto=args.assunto,
    ))
    _print_json(data.to_dict())


def cmd_providers_health(args):
    from .gateways.legal_data import overall_status

    health = _gateway().health_check()
    _print_json({
        "status": overall_status(health).value,
        "providers": {name: h.to_dict() for name, h in health.items()},
    })


# -----------------------------------------------------------------------------
# Parsers / CLI
# -----------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="juriscan", description="CLI Juriscan: créditos e dados jurídicos")
    sp = p.add_subparsers(dest="cmd")  # subcomando OPCIONAL

    sp_init = sp.add_parser("init-db", help="Cria as tabelas no banco configurado (DB_URL)")
    sp_init.set_defaults(func=cmd_init_db)

    # Créditos
    sp_bal = sp.add_parser("credits-balance", help="Mostra o saldo de créditos do usuário")
    sp_bal.add_argument("--user-id", required=True)
    sp_bal.set_defaults(func=cmd_credits_balance)

    sp_add = sp.add_parser("credits-add", help="Adiciona créditos (compra, ajuste, estorno...)")
    sp_add.add_argument("--user-id", required=True)
    sp_add.add_argument("--amount", type=int, required=True)
    sp_add.add_argument("--description", default="Ajuste manual")
    sp_add.add_argument("--type", default="adjustment",
                        choices=["purchase", "subscription", "refund", "adjustment"])
    sp_add.set_defaults(func=cmd_credits_add)

    sp_ded = sp.add_parser("credits-deduct", help="Deduz créditos do usuário")
    sp_ded.add_argument("--user-id", required=True)
    sp_ded.add_argument("--amount", type=int, required=True)
    sp_ded.add_argument("--description", default="Uso de créditos")
    sp_ded.set_defaults(func=cmd_credits_deduct)

    sp_hist = sp.add_parser("credits-history", help="Lista os últimos lançamentos")
    sp_hist.add_argument("--user-id", required=True)
    sp_hist.add_argument("--limit", type=int, default=20)
    sp_hist.set_defaults(func=cmd_credits_history)

    # Dados jurídicos
    sp_proc = sp.add_parser("processo", help="Busca um processo pelo número CNJ")
    sp_proc.add_argument("numero")
    sp_proc.set_defaults(func=cmd_processo)

    sp_jm = sp.add_parser("jurimetrics", help="Jurimetria agregada de um tribunal")
    sp_jm.add_argument("--tribunal", required=True)
    sp_jm.add_argument("--inicio", required=True, help="AAAA-MM-DD")
    sp_jm.add_argument("--fim", required=True, help="AAAA-MM-DD")
    sp_jm.add_argument("--classe")
    sp_jm.add_argument("--assunto")
    sp_jm.set_defaults(func=cmd_jurimetrics)

    sp_health = sp.add_parser("providers-health", help="Health check dos providers de dados jurídicos")
    sp_health.set_defaults(func=cmd_providers_health)

    # Fallback: sem subcomando -> imprime help e retorna 0 (sem SystemExit:2)
    def _no_cmd(args, _p=p):
        _p.print_help()
        return 0
    p.set_defaults(func=_no_cmd)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=os.getenv("LOGLEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Garante que o schema exista antes de qualquer operação
    init_db()
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        ret = args.func(args)
    except AppError as e:
        _print_json(e.to_dict())
        return 1
    except ProviderError as e:
        _print_json({"error": {"code": "PROVIDER_ERROR", "message": str(e)}})
        return 1
    return 0 if ret is None else ret


if __name__ == "__main__":
    raise SystemExit(main())
