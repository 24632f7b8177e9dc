from __future__ import annotations
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

# Custos em créditos por operação

CHAT_COSTS: Dict[str, int] = {
    "text_message": 1,
    "with_image": 2,
    "with_document": 3,
    "with_audio": 2,
    "audio_transcription": 1,
}

REPORT_COSTS: Dict[str, int] = {
    "PREDICTIVE_ANALYSIS": 8,
    "JURIMETRICS": 5,
    "RELATOR_PROFILE": 6,
    "EXECUTIVE_SUMMARY": 10,
    "CUSTOM": 15,
}

EXPORT_COSTS: Dict[str, int] = {"pdf": 2, "txt": 0}

ANALYSIS_COSTS: Dict[str, int] = {"general": 10}

_ATTACHMENT_COST_KEY = {
    "image": "with_image",
    "file": "with_document",
    "audio": "with_audio",
}


class TransactionType(str, Enum):
    USAGE = "usage"
    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"


def _attachment_type(att: Any) -> Optional[str]:
    if isinstance(att, str):
        return att
    if isinstance(att, Mapping):
        return att.get("type")
    return getattr(att, "type", None)


def calculate_chat_cost(attachments: Optional[Iterable[Any]] = None) -> int:
    """
    Custo de uma mensagem de chat.
    Base = mensagem de texto; cada anexo soma a diferença do seu tipo para a base.
    Tipos desconhecidos não alteram o custo.
    """
    base = CHAT_COSTS["text_message"]
    cost = base
    for att in attachments or []:
        key = _ATTACHMENT_COST_KEY.get(_attachment_type(att) or "")
        if key:
            cost += CHAT_COSTS[key] - base
    return cost


def get_report_cost(report_type: Optional[str]) -> int:
    return REPORT_COSTS.get((report_type or "").upper(), REPORT_COSTS["CUSTOM"])


def get_export_cost(fmt: Optional[str]) -> int:
    return EXPORT_COSTS.get((fmt or "").lower(), EXPORT_COSTS["pdf"])


def get_analysis_cost(kind: str = "general") -> int:
    return ANALYSIS_COSTS.get(kind, ANALYSIS_COSTS["general"])
