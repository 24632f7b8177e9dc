# -*- coding: utf-8 -*-
"""
Integração Datajud: API Pública CNJ
- Provider HTTP com rate limiting (<=120 req/min) e retry com backoff exponencial
- Consultas Elasticsearch: busca de processos, processo por número, agregações de jurimetria
- Mapeamento dos documentos do Datajud para as entidades do domínio

Requisitos de uso e limites (conforme Termo de Uso do CNJ):
- Header: Authorization: APIKey <SUA_CHAVE>
- CNJ não garante precisão/atualidade; os dados têm defasagem de meses.
"""
from __future__ import annotations
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import httpx

from ..models.entities import (
    Classificacao,
    Distribuicao,
    JurimetricsData,
    Jurisprudencia,
    Movimentacao,
    Periodo,
    Processo,
    Tribunal,
    Vara,
)
from ..models.numero_processo import NumeroProcesso, formatar_numero_processo, limpar_numero
from .base import (
    Capability,
    GetJurimetricsParams,
    HealthStatus,
    LegalDataProvider,
    ProviderError,
    ProviderHealth,
    ProviderMetadata,
    SearchJurisprudenciaParams,
    SearchProcessosParams,
    SearchResult,
)

logger = logging.getLogger(__name__)


# ------------------------------
# Util: Token bucket simples
# ------------------------------
class _TokenBucket:
    """Thread-safe: a reserva do token acontece sob o lock; a espera, fora dele."""

    def __init__(self, rate_per_sec: float, capacity: int):
        self.rate = float(rate_per_sec)
        self.capacity = int(capacity)
        self.tokens = float(capacity)
        self.ts = time.monotonic()
        self._lock = threading.Lock()

    def consume(self, amount: float = 1.0) -> None:
        with self._lock:
            now = time.monotonic()
            self.tokens = min(self.capacity, self.tokens + (now - self.ts) * self.rate)
            self.ts = now
            # saldo negativo = fila de chamadas aguardando reposição
            self.tokens -= amount
            deficit = -self.tokens
        if deficit > 0 and self.rate > 0:
            time.sleep(deficit / self.rate)


# ------------------------------
# Mapeamento de índices
# ------------------------------
DATAJUD_BASE = "https://api-publica.datajud.cnj.jus.br"
ALL_INDICES = "api_publica_*"

_TJS = [
    "TJAC", "TJAL", "TJAM", "TJAP", "TJBA", "TJCE", "TJDFT", "TJES", "TJGO",
    "TJMA", "TJMG", "TJMS", "TJMT", "TJPA", "TJPB", "TJPE", "TJPI", "TJPR",
    "TJRJ", "TJRN", "TJRO", "TJRR", "TJRS", "TJSC", "TJSE", "TJSP", "TJTO",
]
TRIBUNAL_INDICES: Dict[str, str] = {
    # Tribunais Superiores
    "STF": "api_publica_stf",
    "STJ": "api_publica_stj",
    "TST": "api_publica_tst",
    "TSE": "api_publica_tse",
    "STM": "api_publica_stm",
    # Justiça Estadual
    **{s: f"api_publica_{s.lower()}" for s in _TJS},
    # Justiça do Trabalho
    **{f"TRT{i}": f"api_publica_trt{i}" for i in range(1, 25)},
    # Justiça Federal
    **{f"TRF{i}": f"api_publica_trf{i}" for i in range(1, 7)},
}

_SORT_FIELDS = {
    "data_atualizacao": "dataHoraUltimaAtualizacao",
    "relevancia": "_score",
}

LIMITACOES_JURIMETRIA = [
    "DataJud não fornece resultados de julgamento",
    "Tempos de tramitação não disponíveis",
    "Valores de condenação não disponíveis",
]


def get_index(tribunal: Optional[str]) -> str:
    if not tribunal:
        return ALL_INDICES
    return TRIBUNAL_INDICES.get(tribunal.upper().strip(), ALL_INDICES)


def identificar_tribunal(numero: str) -> Optional[str]:
    """
    Sigla do tribunal a partir do número CNJ (sem conferir o DV).
    Só cobre os segmentos com índice no Datajud: 8 (TJ), 5 (TRT/TST) e 4 (TRF).
    """
    n = limpar_numero(numero)
    if len(n) != 20 or n[13] not in "458":
        return None
    np_ = NumeroProcesso(n[0:7], n[7:9], int(n[9:13]), int(n[13]), n[14:16], n[16:20])
    sigla = np_.sigla_tribunal()
    return sigla if sigla in TRIBUNAL_INDICES else None


def _fmt_datajud(d: date, *, fim: bool = False) -> str:
    """Formato de data do Datajud: YYYYMMDDHHmmss."""
    if isinstance(d, datetime):
        return d.strftime("%Y%m%d%H%M%S")
    return d.strftime("%Y%m%d") + ("235959" if fim else "000000")


def _parse_datajud_date(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    s = value.strip()
    if s.isdigit() and len(s) == 14:
        try:
            return datetime.strptime(s, "%Y%m%d%H%M%S")
        except ValueError:
            return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None


def _flatten_assuntos(raw: Any) -> List[Dict[str, Any]]:
    # alguns TJs devolvem lista de listas
    out: List[Dict[str, Any]] = []
    for item in raw or []:
        if isinstance(item, list):
            out.extend(i for i in item if isinstance(i, dict))
        elif isinstance(item, dict):
            out.append(item)
    return out


# ------------------------------
# Builders de query (Elasticsearch DSL)
# ------------------------------
def build_search_query(params: SearchProcessosParams) -> Dict[str, Any]:
    must: List[Dict[str, Any]] = []
    flt: List[Dict[str, Any]] = []

    if params.numero:
        must.append({"match": {"numeroProcesso": limpar_numero(params.numero)}})
    if params.classe:
        must.append({"match": {"classe.nome": params.classe}})
    if params.assunto:
        must.append({"match": {"assuntos.nome": params.assunto}})
    if params.parte:
        # a API pública não expõe partes de forma consistente
        must.append({"multi_match": {"query": params.parte, "fields": ["partes.nome", "partes.pessoa.nome"]}})
    if params.vara:
        must.append({"match": {"orgaoJulgador.nome": params.vara}})

    if params.periodo:
        flt.append({"range": {"dataAjuizamento": {
            "gte": _fmt_datajud(params.periodo.inicio),
            "lte": _fmt_datajud(params.periodo.fim, fim=True),
        }}})
    if params.ano:
        flt.append({"range": {"dataAjuizamento": {
            "gte": f"{params.ano}0101000000",
            "lte": f"{params.ano}1231235959",
        }}})

    # só processos sem sigilo, salvo pedido explícito
    if params.segredo_justica is not True:
        flt.append({"bool": {"should": [
            {"term": {"nivelSigilo": 0}},
            {"bool": {"must_not": {"exists": {"field": "nivelSigilo"}}}},
        ]}})

    if not must and not flt:
        return {"match_all": {}}
    query: Dict[str, Any] = {}
    if must:
        query["must"] = must
    if flt:
        query["filter"] = flt
    return {"bool": query}


def build_sort(params: SearchProcessosParams) -> List[Dict[str, Any]]:
    campo = _SORT_FIELDS.get(params.ordenar_por, "dataAjuizamento")
    ordem = params.ordem if params.ordem in ("asc", "desc") else "desc"
    return [{campo: {"order": ordem}}]


def build_jurimetrics_query(params: GetJurimetricsParams) -> Dict[str, Any]:
    flt: List[Dict[str, Any]] = [{"range": {"dataAjuizamento": {
        "gte": _fmt_datajud(params.periodo.inicio),
        "lte": _fmt_datajud(params.periodo.fim, fim=True),
    }}}]
    if params.classe:
        flt.append({"match": {"classe.nome": params.classe}})
    if params.assunto:
        flt.append({"match": {"assuntos.nome": params.assunto}})
    if params.materia:
        flt.append({"match": {"assuntos.nome": params.materia}})
    if params.vara:
        flt.append({"match": {"orgaoJulgador.nome": params.vara}})
    return {"bool": {"filter": flt}}


def jurimetrics_aggs() -> Dict[str, Any]:
    return {
        "total_processos": {"value_count": {"field": "numeroProcesso.keyword"}},
        "por_classe": {"terms": {"field": "classe.nome.keyword", "size": 20}},
        "por_assunto": {"terms": {"field": "assuntos.nome.keyword", "size": 20}},
        "por_orgao": {"terms": {"field": "orgaoJulgador.nome.keyword", "size": 20}},
        "valor_causa_stats": {"stats": {"field": "valorCausa"}},
    }


def periodo_consolidado(hoje: Optional[date] = None) -> Periodo:
    """01/01 de três anos atrás até 31/12 do ano passado (dados do Datajud chegam com atraso)."""
    ano = (hoje or date.today()).year
    return Periodo(inicio=date(ano - 3, 1, 1), fim=date(ano - 1, 12, 31))


# ------------------------------
# Mapeamento de respostas
# ------------------------------
def map_to_processo(src: Dict[str, Any]) -> Processo:
    sigla = (src.get("tribunal") or "").upper()
    pid = str(src.get("id") or src.get("numeroProcesso") or "")
    classe = src.get("classe") or {}
    assuntos = _flatten_assuntos(src.get("assuntos"))
    orgao = src.get("orgaoJulgador")
    atualizado = _parse_datajud_date(src.get("dataHoraUltimaAtualizacao"))

    movs = []
    for m in (src.get("movimentos") or [])[:10]:
        m = m or {}
        movs.append(Movimentacao(
            id=f"mov_{pid}_{m.get('codigo')}_{m.get('dataHora')}",
            processo_id=pid,
            descricao=m.get("nome") or "",
            data=_parse_datajud_date(m.get("dataHora")),
            codigo_cnj=str(m["codigo"]) if m.get("codigo") is not None else None,
        ))

    grau = src.get("grau")
    return Processo(
        id=pid,
        numero=formatar_numero_processo(src.get("numeroProcesso") or "") or (src.get("numeroProcesso") or ""),
        tribunal=Tribunal.from_sigla(sigla) if sigla else Tribunal(sigla="?", nome="Desconhecido", tipo="estadual"),
        classificacao=Classificacao(
            classe=classe.get("nome") or "",
            classe_codigo=str(classe["codigo"]) if classe.get("codigo") is not None else None,
            assuntos=[a.get("nome") for a in assuntos if a.get("nome")],
            assuntos_codigos=[str(a.get("codigo")) for a in assuntos if a.get("codigo") is not None],
        ),
        grau="segundo" if grau == "G2" else "primeiro",
        vara=Vara(
            id=f"vara_{orgao.get('codigo')}",
            nome=orgao.get("nome") or "",
            tribunal_sigla=sigla,
        ) if isinstance(orgao, dict) else None,
        valor_causa=float(src.get("valorCausa") or 0),
        data_distribuicao=_parse_datajud_date(src.get("dataAjuizamento")),
        ultima_movimentacao=atualizado,
        movimentacoes=movs,
        segredo_justica=int(src.get("nivelSigilo") or 0) > 0,
        fonte={"provider": "datajud", "atualizado_em": (atualizado or datetime.now()).isoformat()},
    )


def _buckets(aggs: Dict[str, Any], name: str, label: str, total: int) -> List[Dict[str, Any]]:
    out = []
    for b in (aggs.get(name) or {}).get("buckets") or []:
        qtd = int(b.get("doc_count") or 0)
        out.append({label: b.get("key"), "quantidade": qtd, "percentual": (qtd / total) if total > 0 else 0})
    return out


def map_to_jurimetrics(response: Dict[str, Any], params: GetJurimetricsParams) -> JurimetricsData:
    aggs = response.get("aggregations") or {}
    total = int((aggs.get("total_processos") or {}).get("value") or 0)
    if not total:
        total = int((((response.get("hits") or {}).get("total")) or {}).get("value") or 0)
    stats = aggs.get("valor_causa_stats") or {}

    return JurimetricsData(
        periodo=params.periodo,
        escopo={
            "tribunal": params.tribunal,
            "tipo_acao": params.classe,
            "materia": params.materia or params.assunto,
        },
        total_processos=total,
        valores={
            "media_valor_causa": stats.get("avg") or 0,
            "min_valor_causa": stats.get("min") or 0,
            "max_valor_causa": stats.get("max") or 0,
            "mediana_valor_causa": 0,
            "media_condenacao": 0,
            "mediana_condenacao": 0,
            "total_condenacoes": 0,
        },
        volume={"por_mes": [], "por_ano": [], "total": total},
        distribuicao=Distribuicao(
            por_classe=_buckets(aggs, "por_classe", "classe", total),
            por_assunto=_buckets(aggs, "por_assunto", "assunto", total),
            por_vara=_buckets(aggs, "por_orgao", "vara", total),
        ),
        providers_consultados=["datajud"],
        confiabilidade=0.7,
        limitacoes=list(LIMITACOES_JURIMETRIA),
    )


# ------------------------------
# Provider
# ------------------------------
@dataclass
class DataJudProvider(LegalDataProvider):
    api_key: Optional[str] = None
    base_url: str = DATAJUD_BASE
    timeout: float = field(default_factory=lambda: float(os.getenv("DATAJUD_TIMEOUT_SECONDS", "30")))
    max_retries: int = 3
    max_per_minute: int = 120
    backoff_base: float = 1.0
    transport: Optional[httpx.BaseTransport] = None

    name = "datajud"

    def __post_init__(self):
        self.api_key = self.api_key or os.getenv("DATAJUD_API_KEY")
        self._rate = _TokenBucket(rate_per_sec=self.max_per_minute / 60.0, capacity=self.max_per_minute)

    def _headers(self) -> Dict[str, str]:
        h = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "juriscan/1.0 (Datajud integration)",
        }
        if self.api_key:
            h["Authorization"] = f"APIKey {self.api_key}"
        return h

    def _post(self, index: str, body: Dict[str, Any], *, retries: Optional[int] = None) -> Dict[str, Any]:
        url = f"{self.base_url.rstrip('/')}/{index}/_search"
        attempts = max(1, retries or self.max_retries)
        last: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            self._rate.consume(1.0)
            try:
                with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                    resp = client.post(url, headers=self._headers(), json=body)
                if resp.status_code >= 400:
                    raise ProviderError(f"HTTP {resp.status_code}: {resp.text[:300]}")
                return resp.json()
            except (httpx.HTTPError, ProviderError, ValueError) as e:
                last = e
                logger.warning("Datajud %s tentativa %d/%d falhou: %s", index, attempt, attempts, e)
                if attempt < attempts:
                    time.sleep(self.backoff_base * (2 ** attempt))
        raise ProviderError(f"Falha no Datajud ({index}): {last}")

    # -------------------- interface --------------------

    def metadata(self) -> ProviderMetadata:
        return ProviderMetadata(
            name="DataJud - CNJ",
            version="1.0",
            capabilities=[
                Capability.SEARCH_PROCESSOS,
                Capability.GET_PROCESSO,
                Capability.GET_JURIMETRICS,
                Capability.GET_TRIBUNAL_STATS,
            ],
            tribunais_suportados=list(TRIBUNAL_INDICES),
            requests_per_minute=60,
            requests_per_day=10000,
            requer_autenticacao=True,
        )

    def health_check(self) -> ProviderHealth:
        start = time.monotonic()
        try:
            data = self._post("api_publica_tjsp", {"size": 1, "query": {"match_all": {}}}, retries=1)
        except ProviderError as e:
            return ProviderHealth(
                status=HealthStatus.UNHEALTHY,
                latency_ms=int((time.monotonic() - start) * 1000),
                message=str(e),
            )
        latency = int((time.monotonic() - start) * 1000)
        if data.get("timed_out"):
            return ProviderHealth(HealthStatus.DEGRADED, latency, message="Serviço respondendo com timeout")
        return ProviderHealth(HealthStatus.HEALTHY, latency)

    def search_processos(self, params: SearchProcessosParams) -> SearchResult[Processo]:
        body = {
            "size": params.limit,
            "from": params.offset,
            "query": build_search_query(params),
            "sort": build_sort(params),
        }
        data = self._post(get_index(params.tribunal), body)
        hits = (data.get("hits") or {})
        items = [map_to_processo(h.get("_source") or {}) for h in hits.get("hits") or []]
        total = int((hits.get("total") or {}).get("value") or 0)
        return SearchResult(
            items=items,
            total=total,
            offset=params.offset,
            limit=params.limit,
            has_more=params.offset + len(items) < total,
        )

    def get_processo_by_numero(self, numero: str) -> Optional[Processo]:
        n = limpar_numero(numero)
        sigla = identificar_tribunal(n)
        index = TRIBUNAL_INDICES[sigla] if sigla else ALL_INDICES
        body = {"size": 1, "query": {"match": {"numeroProcesso": n}}}
        try:
            data = self._post(index, body)
        except ProviderError:
            logger.exception("Datajud: falha ao buscar processo %s", n)
            return None
        hits = (data.get("hits") or {}).get("hits") or []
        if not hits:
            return None
        return map_to_processo(hits[0].get("_source") or {})

    def search_jurisprudencia(self, params: SearchJurisprudenciaParams) -> SearchResult[Jurisprudencia]:
        # o Datajud é voltado a metadados processuais, não a ementas
        return SearchResult()

    def get_jurimetrics(self, params: GetJurimetricsParams) -> JurimetricsData:
        ajustado = GetJurimetricsParams(
            periodo=periodo_consolidado(),
            tribunal=params.tribunal,
            vara=params.vara,
            juiz=params.juiz,
            classe=params.classe,
            assunto=params.assunto,
            materia=params.materia,
        )
        logger.info(
            "Datajud jurimetria tribunal=%s período pedido=%s..%s consolidado=%s..%s",
            params.tribunal, params.periodo.inicio, params.periodo.fim,
            ajustado.periodo.inicio, ajustado.periodo.fim,
        )
        body = {"size": 0, "query": build_jurimetrics_query(ajustado), "aggs": jurimetrics_aggs()}
        data = self._post(get_index(params.tribunal), body)
        return map_to_jurimetrics(data, ajustado)

    def get_tribunal(self, sigla: str) -> Optional[Tribunal]:
        s = (sigla or "").upper()
        if s not in TRIBUNAL_INDICES:
            return None
        return Tribunal.from_sigla(s, api_disponivel=True, url_base=self.base_url)

    def list_tribunais(self) -> List[Tribunal]:
        return [Tribunal.from_sigla(s, api_disponivel=True) for s in TRIBUNAL_INDICES]

