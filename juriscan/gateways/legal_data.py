# -*- coding: utf-8 -*-
"""
LegalDataGateway: orquestra os providers de dados jurídicos.

- Consulta os providers na ordem de registro (DataJud primeiro) e cai para o
  próximo quando um deles falha.
- Cacheia processo, jurimetria, perfil de juiz e a busca unificada.
- search_parallel() roda processos, jurisprudência e jurimetria em threads.
"""
from __future__ import annotations
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..integrations.base import (
    Capability,
    GetJuizPerfilParams,
    GetJurimetricsParams,
    HealthStatus,
    LegalDataProvider,
    ProviderHealth,
    ProviderUnavailableError,
    SearchJurisprudenciaParams,
    SearchProcessosParams,
    SearchResult,
)
from ..integrations.datajud import DataJudProvider
from ..models.entities import Juiz, JurimetricsData, Jurisprudencia, Periodo, Processo, Tribunal, to_plain
from .cache import (
    CacheGateway,
    CacheTTL,
    cache_key_juiz_perfil,
    cache_key_jurimetrics,
    cache_key_processo,
    cache_key_search,
)

logger = logging.getLogger(__name__)


@dataclass
class LegalDataGatewayConfig:
    enable_datajud: bool = True
    enable_cache: bool = True
    timeout: float = field(default_factory=lambda: float(os.getenv("DATAJUD_TIMEOUT_SECONDS", "30")))
    datajud_api_key: Optional[str] = field(default_factory=lambda: os.getenv("DATAJUD_API_KEY"))


@dataclass
class UnifiedSearchParams:
    termo: Optional[str] = None
    tribunal: Optional[str] = None
    classe: Optional[str] = None
    assunto: Optional[str] = None
    materia: Optional[str] = None
    parte: Optional[str] = None
    periodo: Optional[Periodo] = None
    limit: int = 20
    incluir_processos: bool = True
    incluir_jurisprudencia: bool = True
    incluir_jurimetrics: bool = True


@dataclass
class UnifiedSearchResult:
    processos: List[Processo] = field(default_factory=list)
    jurisprudencia: List[Jurisprudencia] = field(default_factory=list)
    jurimetrics: Optional[JurimetricsData] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return to_plain(self)


def overall_status(health: Dict[str, ProviderHealth]) -> HealthStatus:
    """healthy se todos estão healthy; degraded se algum está; senão unhealthy."""
    status = [HealthStatus(h.status) for h in health.values()]
    if status and all(s == HealthStatus.HEALTHY for s in status):
        return HealthStatus.HEALTHY
    if any(s == HealthStatus.HEALTHY for s in status):
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


class LegalDataGateway:
    def __init__(
        self,
        config: Optional[LegalDataGatewayConfig] = None,
        *,
        providers: Optional[List[LegalDataProvider]] = None,
        cache: Optional[CacheGateway] = None,
    ):
        self.config = config or LegalDataGatewayConfig()
        self.cache = cache or CacheGateway()
        self.providers: Dict[str, LegalDataProvider] = {}
        if self.config.enable_datajud:
            self.register(DataJudProvider(api_key=self.config.datajud_api_key, timeout=self.config.timeout))
        for p in providers or []:
            self.register(p)

    def register(self, provider: LegalDataProvider) -> None:
        self.providers[provider.name] = provider

    def _capable(self, capability: Capability):
        for name, provider in list(self.providers.items()):
            try:
                if provider.metadata().supports(capability):
                    yield name, provider
            except Exception:
                logger.exception("Provider %s: falha ao ler metadata", name)

    def _cache_get(self, key: str) -> Optional[Any]:
        return self.cache.get(key) if self.config.enable_cache else None

    def _cache_set(self, key: str, value: Any, ttl: int) -> None:
        if self.config.enable_cache:
            self.cache.set(key, value, ttl)

    # ----------------------------- processos -----------------------------

    def get_processo(self, numero: str) -> Optional[Processo]:
        key = cache_key_processo(numero)
        cached = self._cache_get(key)
        if cached is not None:
            logger.debug("Cache hit processo %s", numero)
            return cached

        for name, provider in list(self.providers.items()):
            try:
                processo = provider.get_processo_by_numero(numero)
            except Exception:
                logger.warning("Erro ao buscar processo %s em %s", numero, name, exc_info=True)
                continue
            if processo is not None:
                logger.info("Processo %s encontrado via %s", numero, name)
                self._cache_set(key, processo, CacheTTL.PROCESSO)
                return processo
        return None

    def _first_capable(self, capability: Capability, call, rotulo: str, *, propagar: bool = False):
        ultimo: Optional[Exception] = None
        for name, provider in self._capable(capability):
            try:
                return call(provider)
            except Exception as e:
                ultimo = e
                logger.warning("Erro em %s via %s", rotulo, name, exc_info=True)
        if propagar and ultimo is not None:
            raise ultimo
        return SearchResult()

    def search_processos(self, params: SearchProcessosParams, *, propagar: bool = False) -> SearchResult[Processo]:
        return self._first_capable(
            Capability.SEARCH_PROCESSOS, lambda p: p.search_processos(params), "busca de processos",
            propagar=propagar,
        )

    def search_jurisprudencia(self, params: SearchJurisprudenciaParams, *, propagar: bool = False) -> SearchResult[Jurisprudencia]:
        return self._first_capable(
            Capability.SEARCH_JURISPRUDENCIA, lambda p: p.search_jurisprudencia(params), "busca de jurisprudência",
            propagar=propagar,
        )

    # ----------------------------- jurimetria -----------------------------

    def get_jurimetrics(self, params: GetJurimetricsParams) -> JurimetricsData:
        key = cache_key_jurimetrics(
            params.tribunal or "all", params.periodo.inicio, params.periodo.fim,
            classe=params.classe, assunto=params.assunto,
        )
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        for name, provider in self._capable(Capability.GET_JURIMETRICS):
            try:
                data = provider.get_jurimetrics(params)
            except Exception:
                logger.warning("Erro ao obter jurimetria de %s", name, exc_info=True)
                continue
            self._cache_set(key, data, CacheTTL.JURIMETRICS)
            return data
        raise ProviderUnavailableError("Nenhum provider disponível para jurimetria")

    def get_judge_profile(self, nome: str, tribunal: str) -> Optional[Juiz]:
        key = cache_key_juiz_perfil(nome, tribunal)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        for name, provider in self._capable(Capability.GET_JUIZ_PERFIL):
            try:
                juiz = provider.get_juiz_perfil(GetJuizPerfilParams(tribunal=tribunal, nome=nome))
            except Exception:
                logger.warning("Erro ao obter perfil de juiz em %s", name, exc_info=True)
                continue
            if juiz is not None:
                self._cache_set(key, juiz, CacheTTL.JUIZ_PERFIL)
                return juiz
        return None

    # ----------------------------- tribunais -----------------------------

    def get_tribunal(self, sigla: str) -> Optional[Tribunal]:
        for name, provider in list(self.providers.items()):
            try:
                tribunal = provider.get_tribunal(sigla)
            except Exception:
                logger.warning("Erro ao obter tribunal %s em %s", sigla, name, exc_info=True)
                continue
            if tribunal is not None:
                return tribunal
        return None

    def list_tribunais(self) -> List[Tribunal]:
        vistos = set()
        out: List[Tribunal] = []
        for name, provider in list(self.providers.items()):
            try:
                lista = provider.list_tribunais()
            except Exception:
                logger.warning("Erro ao listar tribunais em %s", name, exc_info=True)
                continue
            for t in lista:
                if t.sigla not in vistos:
                    vistos.add(t.sigla)
                    out.append(t)
        return out

    # ----------------------------- busca unificada -----------------------------

    def search_parallel(self, params: UnifiedSearchParams) -> UnifiedSearchResult:
        key = cache_key_search("processos", asdict(params))
        cached = self._cache_get(key)
        if cached is not None:
            logger.debug("Cache hit busca unificada %s", key)
            return UnifiedSearchResult(
                processos=cached.processos,
                jurisprudencia=cached.jurisprudencia,
                jurimetrics=cached.jurimetrics,
                metadata={**cached.metadata, "cached": True},
            )

        erros: List[str] = []
        erros_lock = threading.Lock()

        def _run(rotulo: str, fn, vazio):
            try:
                return fn()
            except Exception as e:
                logger.warning("Busca unificada: %s falhou", rotulo, exc_info=True)
                with erros_lock:
                    erros.append(f"{rotulo}: {e}")
                return vazio

        proc_params = SearchProcessosParams(
            tribunal=params.tribunal,
            classe=params.classe,
            assunto=params.assunto or params.materia,
            parte=params.parte,
            periodo=params.periodo,
            limit=params.limit or 20,
        )
        jur_params = SearchJurisprudenciaParams(
            termo=params.termo,
            tribunal=params.tribunal,
            materia=params.materia or params.assunto,
            periodo=params.periodo,
            limit=params.limit or 20,
        )

        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="legal-data") as pool:
            f_proc = f_jur = f_metr = None
            if params.incluir_processos:
                f_proc = pool.submit(_run, "Processos", lambda: self.search_processos(proc_params, propagar=True), SearchResult())
            if params.incluir_jurisprudencia:
                f_jur = pool.submit(_run, "Jurisprudência", lambda: self.search_jurisprudencia(jur_params, propagar=True), SearchResult())
            if params.incluir_jurimetrics and params.tribunal and params.periodo:
                # sem classe/assunto: as agregações mostram a distribuição do tribunal
                metr_params = GetJurimetricsParams(periodo=params.periodo, tribunal=params.tribunal)
                f_metr = pool.submit(_run, "Jurimetria", lambda: self.get_jurimetrics(metr_params), None)

            processos = f_proc.result() if f_proc else SearchResult()
            jurisprudencia = f_jur.result() if f_jur else SearchResult()
            jurimetrics = f_metr.result() if f_metr else None

        metadata: Dict[str, Any] = {
            "providers_consultados": self.get_active_providers(),
            "timestamp": datetime.now().isoformat(),
            "cached": False,
        }
        if erros:
            metadata["erros"] = erros

        result = UnifiedSearchResult(
            processos=list(processos.items),
            jurisprudencia=list(jurisprudencia.items),
            jurimetrics=jurimetrics,
            metadata=metadata,
        )
        if not erros:
            self._cache_set(key, result, CacheTTL.MEDIUM)
        return result

    # ----------------------------- operação -----------------------------

    def health_check(self) -> Dict[str, ProviderHealth]:
        out: Dict[str, ProviderHealth] = {}
        for name, provider in list(self.providers.items()):
            try:
                out[name] = provider.health_check()
            except Exception as e:
                out[name] = ProviderHealth(status=HealthStatus.UNHEALTHY, message=str(e) or "Erro desconhecido")
        return out

    def invalidate_cache_tribunal(self, tribunal: str) -> int:
        if not self.config.enable_cache:
            return 0
        return self.cache.invalidate_pattern(f"*{tribunal}*")

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()

    def get_active_providers(self) -> List[str]:
        return list(self.providers)


# ------------------------------ singleton ---------------------------------

_gateway: Optional[LegalDataGateway] = None
_gateway_lock = threading.Lock()


def get_legal_data_gateway(config: Optional[LegalDataGatewayConfig] = None) -> LegalDataGateway:
    global _gateway
    with _gateway_lock:
        if _gateway is None:
            _gateway = LegalDataGateway(config)
        return _gateway


def create_legal_data_gateway(config: Optional[LegalDataGatewayConfig] = None, **kw: Any) -> LegalDataGateway:
    return LegalDataGateway(config, **kw)


def reset_legal_data_gateway() -> None:
    global _gateway
    with _gateway_lock:
        _gateway = None
