import json
from datetime import date, datetime

import httpx
import pytest

from juriscan.integrations.base import (
    GetJurimetricsParams,
    HealthStatus,
    ProviderError,
    SearchProcessosParams,
)
from juriscan.integrations.datajud import (
    ALL_INDICES,
    DataJudProvider,
    build_search_query,
    build_sort,
    get_index,
    identificar_tribunal,
    map_to_processo,
    periodo_consolidado,
)
from juriscan.models.entities import Periodo

NUMERO = "00000017320238260100"

SOURCE = {
    "id": "TJSP_G1_00000017320238260100",
    "tribunal": "TJSP",
    "numeroProcesso": NUMERO,
    "grau": "G2",
    "classe": {"codigo": 198, "nome": "Apelação Cível"},
    "assuntos": [[{"codigo": 10433, "nome": "Indenização por Dano Moral"}], {"codigo": 7780, "nome": "Bancários"}],
    "orgaoJulgador": {"codigo": 1234, "nome": "1ª Vara Cível"},
    "dataAjuizamento": "20230115000000",
    "dataHoraUltimaAtualizacao": "2024-02-01T10:00:00.000Z",
    "valorCausa": 15000.5,
    "movimentos": [{"codigo": i, "nome": f"Mov {i}", "dataHora": "2023-02-01T00:00:00"} for i in range(15)],
}


def make_provider(handler, **kw):
    kw.setdefault("backoff_base", 0)
    return DataJudProvider(api_key="chave", transport=httpx.MockTransport(handler), **kw)


def hits_response(sources, total=None):
    return {"hits": {"total": {"value": len(sources) if total is None else total},
                     "hits": [{"_source": s} for s in sources]}}


def test_get_index_and_tribunal_from_numero():
    assert get_index("tjsp") == "api_publica_tjsp"
    assert get_index("TRT2") == "api_publica_trt2"
    assert get_index("XYZ") == ALL_INDICES
    assert get_index(None) == ALL_INDICES
    assert identificar_tribunal(NUMERO) == "TJSP"
    assert identificar_tribunal("00000010020235020001") == "TRT2"
    assert identificar_tribunal("00000010020236000000") is None
    assert identificar_tribunal("123") is None


def test_search_query_filters():
    params = SearchProcessosParams(
        classe="Apelação",
        periodo=Periodo(inicio=date(2023, 1, 1), fim=date(2023, 6, 30)),
    )
    q = build_search_query(params)["bool"]
    assert q["must"] == [{"match": {"classe.nome": "Apelação"}}]
    assert q["filter"][0] == {"range": {"dataAjuizamento": {"gte": "20230101000000", "lte": "20230630235959"}}}
    sigilo = q["filter"][1]["bool"]["should"]
    assert {"term": {"nivelSigilo": 0}} in sigilo


def test_search_query_without_filters_and_with_secret():
    assert build_search_query(SearchProcessosParams(segredo_justica=True)) == {"match_all": {}}


def test_sort_fields():
    assert build_sort(SearchProcessosParams()) == [{"dataAjuizamento": {"order": "desc"}}]
    assert build_sort(SearchProcessosParams(ordenar_por="relevancia", ordem="asc")) == [{"_score": {"order": "asc"}}]
    assert build_sort(SearchProcessosParams(ordenar_por="data_atualizacao", ordem="x")) == [
        {"dataHoraUltimaAtualizacao": {"order": "desc"}}
    ]


def test_map_to_processo():
    p = map_to_processo(SOURCE)
    assert p.numero == "0000001-73.2023.8.26.0100"
    assert p.tribunal.sigla == "TJSP"
    assert p.grau == "segundo"
    assert p.classificacao.classe == "Apelação Cível"
    assert p.classificacao.assuntos == ["Indenização por Dano Moral", "Bancários"]
    assert p.vara.nome == "1ª Vara Cível"
    assert p.valor_causa == 15000.5
    assert p.data_distribuicao == datetime(2023, 1, 15)
    assert len(p.movimentacoes) == 10
    assert p.segredo_justica is False
    assert p.fonte["provider"] == "datajud"


def test_search_processos_posts_to_tribunal_index():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=hits_response([SOURCE], total=30))

    provider = make_provider(handler)
    res = provider.search_processos(SearchProcessosParams(tribunal="TJSP", limit=10))
    assert seen["url"].endswith("/api_publica_tjsp/_search")
    assert seen["auth"] == "APIKey chave"
    assert seen["body"]["size"] == 10
    assert res.total == 30 and res.has_more is True
    assert res.items[0].numero == "0000001-73.2023.8.26.0100"


def test_retries_then_raises_provider_error():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(503, text="indisponível")

    provider = make_provider(handler, max_retries=3)
    with pytest.raises(ProviderError):
        provider.search_processos(SearchProcessosParams(tribunal="TJSP"))
    assert len(calls) == 3


def test_retry_recovers_after_transport_error():
    calls = []

    def handler(request):
        calls.append(1)
        if len(calls) == 1:
            raise httpx.ConnectError("conexão recusada", request=request)
        return httpx.Response(200, json=hits_response([]))

    res = make_provider(handler).search_processos(SearchProcessosParams())
    assert res.items == [] and len(calls) == 2


def test_get_processo_by_numero_uses_inferred_index():
    urls = []

    def handler(request):
        urls.append(str(request.url))
        return httpx.Response(200, json=hits_response([SOURCE]))

    p = make_provider(handler).get_processo_by_numero("0000001-73.2023.8.26.0100")
    assert p.id == SOURCE["id"]
    assert urls[0].endswith("/api_publica_tjsp/_search")


def test_get_processo_by_numero_not_found_or_error_is_none():
    vazio = make_provider(lambda r: httpx.Response(200, json=hits_response([])))
    assert vazio.get_processo_by_numero(NUMERO) is None
    quebrado = make_provider(lambda r: httpx.Response(500, text="erro"), max_retries=1)
    assert quebrado.get_processo_by_numero(NUMERO) is None


def test_jurimetrics_uses_consolidated_period_and_aggregations():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={
            "hits": {"total": {"value": 200}},
            "aggregations": {
                "total_processos": {"value": 200},
                "por_classe": {"buckets": [{"key": "Procedimento Comum Cível", "doc_count": 150}]},
                "por_assunto": {"buckets": []},
                "por_orgao": {"buckets": [{"key": "1ª Vara", "doc_count": 50}]},
                "valor_causa_stats": {"avg": 1000.0, "min": 10.0, "max": 5000.0},
            },
        })

    pedido = Periodo(inicio=date(2024, 1, 1), fim=date(2024, 12, 31))
    data = make_provider(handler).get_jurimetrics(GetJurimetricsParams(periodo=pedido, tribunal="TJSP"))
    consolidado = periodo_consolidado()
    assert data.periodo == consolidado
    assert bodies[0]["size"] == 0
    assert set(bodies[0]["aggs"]) == {"total_processos", "por_classe", "por_assunto", "por_orgao", "valor_causa_stats"}
    assert data.total_processos == 200
    assert data.distribuicao.por_classe[0]["percentual"] == 0.75
    assert data.distribuicao.por_vara[0]["vara"] == "1ª Vara"
    assert data.valores["media_valor_causa"] == 1000.0
    assert data.confiabilidade == 0.7
    assert len(data.limitacoes) == 3


def test_periodo_consolidado():
    p = periodo_consolidado(date(2026, 5, 10))
    assert (p.inicio, p.fim) == (date(2023, 1, 1), date(2025, 12, 31))


def test_health_check_states():
    ok = make_provider(lambda r: httpx.Response(200, json={"timed_out": False}))
    assert ok.health_check().status == HealthStatus.HEALTHY
    lento = make_provider(lambda r: httpx.Response(200, json={"timed_out": True}))
    assert lento.health_check().status == HealthStatus.DEGRADED
    fora = make_provider(lambda r: httpx.Response(502, text="bad gateway"))
    h = fora.health_check()
    assert h.status == HealthStatus.UNHEALTHY
    assert "502" in h.message


def test_tribunais():
    provider = make_provider(lambda r: httpx.Response(200, json={}))
    assert provider.get_tribunal("tjsp").nome == "Tribunal de Justiça do Estado de São Paulo"
    assert provider.get_tribunal("XYZ") is None
    siglas = [t.sigla for t in provider.list_tribunais()]
    assert "TJDFT" in siglas and "TRT24" in siglas and "TRF6" in siglas
    assert provider.metadata().requests_per_minute == 60


class FrozenTime:
    """Relógio parado: as esperas são só registradas."""

    def __init__(self):
        self.sleeps = []

    def monotonic(self):
        return 100.0

    def sleep(self, seconds):
        self.sleeps.append(seconds)


def test_token_bucket_queues_callers_without_overdraw(monkeypatch):
    import juriscan.integrations.datajud as datajud_module

    fake = FrozenTime()
    monkeypatch.setattr(datajud_module, "time", fake)
    bucket = datajud_module._TokenBucket(rate_per_sec=2.0, capacity=1)
    for _ in range(3):
        bucket.consume()
    # 1º usa o token disponível; os seguintes esperam 0,5 s a mais cada
    assert fake.sleeps == [0.5, 1.0]


def test_token_bucket_concurrent_consumers(monkeypatch):
    import threading
    import juriscan.integrations.datajud as datajud_module

    fake = FrozenTime()
    monkeypatch.setattr(datajud_module, "time", fake)
    bucket = datajud_module._TokenBucket(rate_per_sec=2.0, capacity=2)

    threads = [threading.Thread(target=bucket.consume) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # 2 tokens livres; as outras 8 chamadas formam fila sem sobreposição
    assert sorted(fake.sleeps) == [0.5 * i for i in range(1, 9)]
    assert bucket.tokens == -8.0
