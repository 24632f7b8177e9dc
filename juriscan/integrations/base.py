# -*- coding: utf-8 -*-
"""
Contrato dos providers de dados jurídicos (DataJud, futuros providers pagos).

O LegalDataGateway fala só com esta interface: cada provider declara
suas capacidades em metadata() e o gateway escolhe quem atende cada chamada.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from ..models.entities import (
    Juiz,
    JurimetricsData,
    Jurisprudencia,
    Periodo,
    Processo,
    Tribunal,
    to_plain,
)

T = TypeVar("T")


class Capability(str, Enum):
    SEARCH_PROCESSOS = "search_processos"
    GET_PROCESSO = "get_processo"
    SEARCH_JURISPRUDENCIA = "search_jurisprudencia"
    GET_JURIMETRICS = "get_jurimetrics"
    GET_JUIZ_PERFIL = "get_juiz_perfil"
    GET_TRIBUNAL_STATS = "get_tribunal_stats"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# ----------------------------- Erros -----------------------------

class ProviderError(Exception):
    """Falha ao consultar um provider."""


class ProviderUnavailableError(ProviderError):
    """Nenhum provider conseguiu atender a operação."""


# ----------------------------- Tipos -----------------------------

@dataclass
class ProviderHealth:
    status: HealthStatus
    latency_ms: Optional[int] = None
    last_check: datetime = field(default_factory=datetime.now)
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "status": HealthStatus(self.status).value,
            "latency_ms": self.latency_ms,
            "last_check": self.last_check.isoformat(),
        }
        if self.message:
            out["message"] = self.message
        return out


@dataclass
class ProviderMetadata:
    name: str
    capabilities: List[Capability]
    version: Optional[str] = None
    tribunais_suportados: List[str] = field(default_factory=list)
    requests_per_minute: Optional[int] = None
    requests_per_day: Optional[int] = None
    requer_autenticacao: bool = False

    def supports(self, capability: Capability) -> bool:
        return Capability(capability) in self.capabilities


@dataclass
class SearchResult(Generic[T]):
    items: List[T] = field(default_factory=list)
    total: int = 0
    offset: int = 0
    limit: int = 0
    has_more: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [to_plain(i) for i in self.items],
            "total": self.total,
            "offset": self.offset,
            "limit": self.limit,
            "has_more": self.has_more,
        }


@dataclass
class SearchProcessosParams:
    numero: Optional[str] = None
    tribunal: Optional[str] = None
    classe: Optional[str] = None
    assunto: Optional[str] = None
    parte: Optional[str] = None
    vara: Optional[str] = None
    periodo: Optional[Periodo] = None
    ano: Optional[int] = None
    segredo_justica: bool = False
    limit: int = 20
    offset: int = 0
    ordenar_por: str = "data_distribuicao"   # data_distribuicao | data_atualizacao | relevancia
    ordem: str = "desc"


@dataclass
class SearchJurisprudenciaParams:
    termo: Optional[str] = None
    tribunal: Optional[str] = None
    relator: Optional[str] = None
    orgao_julgador: Optional[str] = None
    materia: Optional[str] = None
    assunto: Optional[str] = None
    classe: Optional[str] = None
    periodo: Optional[Periodo] = None
    limit: int = 20
    offset: int = 0


@dataclass
class GetJurimetricsParams:
    periodo: Periodo
    tribunal: Optional[str] = None
    vara: Optional[str] = None
    juiz: Optional[str] = None
    classe: Optional[str] = None
    assunto: Optional[str] = None
    materia: Optional[str] = None


@dataclass
class GetJuizPerfilParams:
    tribunal: str
    nome: Optional[str] = None
    id: Optional[str] = None
    vara: Optional[str] = None
    periodo: Optional[Periodo] = None


# ----------------------------- Interface -----------------------------

class LegalDataProvider(ABC):
    """
    Interface base dos providers.
    Obrigatórios: metadata, health_check, search_processos, get_processo_by_numero,
    search_jurisprudencia, get_jurimetrics.
    Opcionais (retornam None/[] por padrão): get_juiz_perfil, get_tribunal, list_tribunais.
    """

    name: str = "provider"

    @abstractmethod
    def metadata(self) -> ProviderMetadata:
        raise NotImplementedError

    @abstractmethod
    def health_check(self) -> ProviderHealth:
        raise NotImplementedError

    @abstractmethod
    def search_processos(self, params: SearchProcessosParams) -> SearchResult[Processo]:
        raise NotImplementedError

    @abstractmethod
    def get_processo_by_numero(self, numero: str) -> Optional[Processo]:
        raise NotImplementedError

    @abstractmethod
    def search_jurisprudencia(self, params: SearchJurisprudenciaParams) -> SearchResult[Jurisprudencia]:
        raise NotImplementedError

    @abstractmethod
    def get_jurimetrics(self, params: GetJurimetricsParams) -> JurimetricsData:
        raise NotImplementedError

    def get_juiz_perfil(self, params: GetJuizPerfilParams) -> Optional[Juiz]:
        return None

    def get_tribunal(self, sigla: str) -> Optional[Tribunal]:
        return None

    def list_tribunais(self) -> List[Tribunal]:
        return []
