from datetime import date

import juriscan.gateways.cache as cache_module
from juriscan.gateways.cache import (
    CacheGateway,
    cache_key_juiz_perfil,
    cache_key_jurimetrics,
    cache_key_processo,
    cache_key_search,
)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def time(self):
        return self.now


def test_set_get_and_stats():
    cache = CacheGateway()
    assert cache.get("a") is None
    cache.set("a", {"x": 1})
    assert cache.get("a") == {"x": 1}
    assert cache.has("a")
    stats = cache.get_stats()
    assert stats["memory_hits"] == 2
    assert stats["memory_misses"] == 1
    assert stats["total_items"] == 1
    assert abs(stats["hit_rate"] - 2 / 3) < 1e-9


def test_item_expires_after_ttl(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(cache_module, "time", clock)
    cache = CacheGateway(default_ttl=60)
    cache.set("a", 1)
    cache.set("b", 2, ttl=600)
    clock.now += 61
    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get_stats()["total_items"] == 1


def test_cleanup_removes_only_expired(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(cache_module, "time", clock)
    cache = CacheGateway()
    cache.set("curto", 1, ttl=10)
    cache.set("longo", 2, ttl=1000)
    clock.now += 11
    assert cache.cleanup() == 1
    assert cache.get("longo") == 2


def test_set_sweeps_expired_items_every_interval(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(cache_module, "time", clock)
    cache = CacheGateway(cleanup_interval=60)
    cache.set("curto", 1, ttl=10)
    cache.set("longo", 2, ttl=1000)

    clock.now += 30
    cache.set("outro", 3)
    # expirado, mas ainda dentro do intervalo de varredura
    assert cache.get_stats()["total_items"] == 3

    clock.now += 31
    cache.set("mais_um", 4)
    assert cache.get_stats()["total_items"] == 3
    assert cache.get("longo") == 2


def test_eviction_removes_oldest_least_used(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(cache_module, "time", clock)
    cache = CacheGateway(max_items=2)
    cache.set("velho", 1)
    clock.now += 1
    cache.set("novo", 2)
    clock.now += 1
    cache.set("terceiro", 3)
    assert cache.get("velho") is None
    assert cache.get("novo") == 2
    assert cache.get("terceiro") == 3


def test_eviction_score_discounts_hits(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(cache_module, "time", clock)
    cache = CacheGateway(max_items=2)
    cache.set("antigo", 1)
    clock.now += 10
    cache.set("acessado", 2)
    for _ in range(11):
        cache.get("acessado")
    cache.set("terceiro", 3)
    # score de "acessado": (t+10)*1000 - 11*1000 < t*1000
    assert cache.get("acessado") is None
    assert cache.get("antigo") == 1


def test_overwrite_does_not_evict():
    cache = CacheGateway(max_items=1)
    cache.set("a", 1)
    cache.set("a", 2)
    assert cache.get("a") == 2


def test_get_or_set_calls_factory_once():
    cache = CacheGateway()
    calls = []

    def factory():
        calls.append(1)
        return "valor"

    assert cache.get_or_set("k", factory) == "valor"
    assert cache.get_or_set("k", factory) == "valor"
    assert len(calls) == 1


def test_invalidate_pattern_and_clear():
    cache = CacheGateway()
    cache.set(cache_key_jurimetrics("TJSP", date(2023, 1, 1), date(2023, 12, 31)), 1)
    cache.set(cache_key_jurimetrics("TJRJ", date(2023, 1, 1), date(2023, 12, 31)), 2)
    cache.set(cache_key_juiz_perfil("Fulano", "TJSP"), 3)
    assert cache.invalidate_pattern("*TJSP*") == 2
    assert cache.get_stats()["total_items"] == 1

    cache.get("qualquer")
    cache.clear()
    assert cache.get_stats() == {"memory_hits": 0, "memory_misses": 0, "total_items": 0, "hit_rate": 0.0}


def test_cache_keys():
    assert cache_key_processo("0000001-73.2023.8.26.0100") == "processo:00000017320238260100"
    assert (
        cache_key_jurimetrics("TJSP", date(2023, 1, 1), date(2023, 12, 31), classe="Apelação", assunto="Dano")
        == "jurimetrics:TJSP:2023-01-01:2023-12-31:c:Apelação:a:Dano"
    )
    assert cache_key_juiz_perfil("Maria da Silva Souza Pereira Santos", "TJSP") == (
        "juiz:TJSP:" + "maria_da_silva_souza_pereira_santos"[:30]
    )


def test_search_key_ignores_param_order():
    a = cache_key_search("processos", {"tribunal": "TJSP", "classe": "X"})
    b = cache_key_search("processos", {"classe": "X", "tribunal": "TJSP"})
    c = cache_key_search("processos", {"classe": "Y", "tribunal": "TJSP"})
    assert a == b != c
    assert a.startswith("search:processos:")
