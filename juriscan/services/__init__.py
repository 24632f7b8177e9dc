from __future__ import annotations
from typing import TYPE_CHECKING

# Nomes exportados; o import real acontece sob demanda em __getattr__
__all__ = [
    "CreditService",
    "CreditResult",
    "TransactionType",
    "calculate_chat_cost",
    "get_report_cost",
    "get_export_cost",
    "get_analysis_cost",
    "JurimetricsInsights",
    "PredictiveAnalyzer",
    "JudgeProfileAnalyzer",
    "ReportService",
]

_LAZY = {
    "CreditService": ".credits",
    "CreditResult": ".credits",
    "TransactionType": ".costs",
    "calculate_chat_cost": ".costs",
    "get_report_cost": ".costs",
    "get_export_cost": ".costs",
    "get_analysis_cost": ".costs",
    "JurimetricsInsights": ".insights",
    "PredictiveAnalyzer": ".analyses",
    "JudgeProfileAnalyzer": ".analyses",
    "ReportService": ".reports",
}


def __getattr__(name: str):
    if name in _LAZY:
        from importlib import import_module
        return getattr(import_module(_LAZY[name], __name__), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(__all__)


# Ajuda para type checkers (mypy/pyright) sem forçar import em runtime
if TYPE_CHECKING:
    from .analyses import JudgeProfileAnalyzer, PredictiveAnalyzer
    from .costs import TransactionType, calculate_chat_cost, get_analysis_cost, get_export_cost, get_report_cost
    from .credits import CreditResult, CreditService
    from .insights import JurimetricsInsights
    from .reports import ReportService
