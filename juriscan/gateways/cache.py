# -*- coding: utf-8 -*-
"""
Cache em memória com TTL para as respostas dos providers jurídicos.

- Chaves com prefixo (padrão "juriscan:"), TTL padrão de 1h, no máximo 1000 itens.
- Ao lotar, remove o item de menor score: created_at - hits*1000ms.
- Itens expirados saem na leitura, em cleanup() e na varredura feita por set()
  a cada `cleanup_interval` segundos (padrão 60).
- Protegido por Lock: o servidor Flask atende em threads.
"""
from __future__ import annotations
import hashlib
import json
import re
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional, TypeVar

T = TypeVar("T")


class CacheTTL:
    SHORT = 300            # 5 min
    MEDIUM = 3600          # 1 h
    LONG = 86400           # 24 h
    VERY_LONG = 604800     # 7 dias
    JURIMETRICS = 3600
    PROCESSO = 1800
    JURISPRUDENCIA = 86400
    JUIZ_PERFIL = 86400


@dataclass
class _CacheItem:
    value: Any
    expires_at: float
    created_at: float
    hits: int = 0


class CacheGateway:
    def __init__(self, *, default_ttl: int = 3600, max_items: int = 1000, prefix: str = "juriscan:",
                 cleanup_interval: int = 60):
        self.default_ttl = int(default_ttl)
        self.max_items = int(max_items)
        self.prefix = prefix
        self._items: Dict[str, _CacheItem] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self.cleanup_interval = int(cleanup_interval)
        self._last_cleanup = time.time()

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    # ----------------------------- leitura -----------------------------

    def get(self, key: str) -> Optional[Any]:
        fk = self._full_key(key)
        with self._lock:
            item = self._items.get(fk)
            if item is not None:
                if item.expires_at > time.time():
                    item.hits += 1
                    self._hits += 1
                    return item.value
                del self._items[fk]
            self._misses += 1
            return None

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    # ----------------------------- escrita -----------------------------

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        fk = self._full_key(key)
        ttl = self.default_ttl if ttl is None else int(ttl)
        now = time.time()
        with self._lock:
            if now - self._last_cleanup >= self.cleanup_interval:
                self._cleanup_locked(now)
            if fk not in self._items and len(self._items) >= self.max_items:
                self._evict_locked()
            self._items[fk] = _CacheItem(value=value, expires_at=now + ttl, created_at=now)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(self._full_key(key), None)

    def get_or_set(self, key: str, factory: Callable[[], T], ttl: Optional[int] = None) -> T:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = factory()
        self.set(key, value, ttl)
        return value

    def invalidate_pattern(self, pattern: str) -> int:
        """Remove as chaves que contêm o padrão ou casam com ele ('*' como curinga)."""
        full = self._full_key(pattern)
        rx = re.compile("^" + ".*".join(re.escape(p) for p in full.split("*")) + "$")
        with self._lock:
            alvo = [k for k in self._items if full in k or rx.match(k)]
            for k in alvo:
                del self._items[k]
        return len(alvo)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._hits = 0
            self._misses = 0

    def cleanup(self) -> int:
        with self._lock:
            return self._cleanup_locked(time.time())

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "memory_hits": self._hits,
                "memory_misses": self._misses,
                "total_items": len(self._items),
                "hit_rate": (self._hits / total) if total else 0.0,
            }

    def _cleanup_locked(self, now: float) -> int:
        expirados = [k for k, it in self._items.items() if it.expires_at <= now]
        for k in expirados:
            del self._items[k]
        self._last_cleanup = now
        return len(expirados)

    def _evict_locked(self) -> None:
        if not self._items:
            return
        # score em ms, como created_at - hits * 1000ms
        alvo = min(self._items, key=lambda k: self._items[k].created_at * 1000 - self._items[k].hits * 1000)
        del self._items[alvo]


# ------------------------------ chaves ---------------------------------

def _iso_dia(d: Any) -> str:
    if isinstance(d, (datetime, date)):
        return d.isoformat()[:10]
    return str(d)[:10]


def cache_key_processo(numero: str) -> str:
    return "processo:" + re.sub(r"\D", "", numero or "")


def cache_key_jurimetrics(tribunal: str, inicio: Any, fim: Any, *,
                          classe: Optional[str] = None, assunto: Optional[str] = None) -> str:
    parts = ["jurimetrics", tribunal, _iso_dia(inicio), _iso_dia(fim)]
    if classe:
        parts.append(f"c:{classe}")
    if assunto:
        parts.append(f"a:{assunto}")
    return ":".join(parts)


def cache_key_juiz_perfil(nome: str, tribunal: str) -> str:
    slug = re.sub(r"\s+", "_", (nome or "").lower())[:30]
    return f"juiz:{tribunal}:{slug}"


def cache_key_search(tipo: str, params: Dict[str, Any]) -> str:
    raw = json.dumps(params, sort_keys=True, default=str, ensure_ascii=False)
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]
    return f"search:{tipo}:{digest}"
