# -*- coding: utf-8 -*-
"""
Entidades de dados jurídicos devolvidas pelos providers (DataJud etc.).

Todas são dataclasses simples com .to_dict() para saída JSON.
"""
from __future__ import annotations
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional


def to_plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


class _Entity:
    def to_dict(self) -> Dict[str, Any]:
        return to_plain(self)


# ------------------------------
# Tribunais
# ------------------------------
UF_NOMES = {
    "AC": "Acre", "AL": "Alagoas", "AP": "Amapá", "AM": "Amazonas", "BA": "Bahia",
    "CE": "Ceará", "DF": "Distrito Federal", "ES": "Espírito Santo", "GO": "Goiás",
    "MA": "Maranhão", "MT": "Mato Grosso", "MS": "Mato Grosso do Sul", "MG": "Minas Gerais",
    "PA": "Pará", "PB": "Paraíba", "PR": "Paraná", "PE": "Pernambuco", "PI": "Piauí",
    "RJ": "Rio de Janeiro", "RN": "Rio Grande do Norte", "RS": "Rio Grande do Sul",
    "RO": "Rondônia", "RR": "Roraima", "SC": "Santa Catarina", "SE": "Sergipe",
    "SP": "São Paulo", "TO": "Tocantins",
}

SUPERIORES = {
    "STF": "Supremo Tribunal Federal",
    "STJ": "Superior Tribunal de Justiça",
    "TST": "Tribunal Superior do Trabalho",
    "TSE": "Tribunal Superior Eleitoral",
    "STM": "Superior Tribunal Militar",
}


def tipo_tribunal(sigla: str) -> str:
    s = (sigla or "").upper()
    if s == "STM":
        return "militar"
    if s in SUPERIORES:
        return "superior"
    if s.startswith("TRT"):
        return "trabalho"
    if s.startswith("TRF"):
        return "federal"
    if s.startswith("TRE"):
        return "eleitoral"
    return "estadual"


def nome_tribunal(sigla: str) -> str:
    s = (sigla or "").upper()
    if s in SUPERIORES:
        return SUPERIORES[s]
    if s == "TJDFT":
        return "Tribunal de Justiça do Distrito Federal e dos Territórios"
    if s.startswith("TJ") and s[2:] in UF_NOMES:
        return f"Tribunal de Justiça do Estado de {UF_NOMES[s[2:]]}"
    if s.startswith("TRT") and s[3:].isdigit():
        return f"Tribunal Regional do Trabalho da {int(s[3:])}ª Região"
    if s.startswith("TRF") and s[3:].isdigit():
        return f"Tribunal Regional Federal da {int(s[3:])}ª Região"
    return f"Tribunal {s}"


@dataclass
class Tribunal(_Entity):
    sigla: str
    nome: str
    tipo: str
    uf: Optional[str] = None
    regiao: Optional[int] = None
    api_disponivel: bool = False
    url_base: Optional[str] = None
    id: str = ""

    def __post_init__(self) -> None:
        self.sigla = self.sigla.upper()
        if not self.id:
            self.id = f"tribunal_{self.sigla.lower()}"

    @classmethod
    def from_sigla(cls, sigla: str, **kw: Any) -> "Tribunal":
        s = sigla.upper()
        uf = s[2:] if s.startswith("TJ") and s[2:] in UF_NOMES else None
        if s == "TJDFT":
            uf = "DF"
        regiao = int(s[3:]) if s[:3] in ("TRT", "TRF") and s[3:].isdigit() else None
        return cls(sigla=s, nome=nome_tribunal(s), tipo=tipo_tribunal(s), uf=uf, regiao=regiao, **kw)


# ------------------------------
# Processos
# ------------------------------
@dataclass
class Vara(_Entity):
    id: str
    nome: str
    tribunal_sigla: str
    tipo: str = "outro"
    comarca: Optional[str] = None
    ativa: bool = True


@dataclass
class Movimentacao(_Entity):
    id: str
    processo_id: str
    descricao: str
    data: Optional[datetime] = None
    codigo_cnj: Optional[str] = None
    tipo: str = "outros"
    situacao: str = "realizada"
    publica: bool = True


@dataclass
class Classificacao(_Entity):
    classe: str = ""
    classe_codigo: Optional[str] = None
    assuntos: List[str] = field(default_factory=list)
    assuntos_codigos: List[str] = field(default_factory=list)


@dataclass
class Processo(_Entity):
    id: str
    numero: str
    tribunal: Tribunal
    classificacao: Classificacao = field(default_factory=Classificacao)
    grau: str = "primeiro"
    vara: Optional[Vara] = None
    valor_causa: float = 0.0
    data_distribuicao: Optional[datetime] = None
    ultima_movimentacao: Optional[datetime] = None
    situacao: str = "em_tramitacao"
    movimentacoes: List[Movimentacao] = field(default_factory=list)
    segredo_justica: bool = False
    fonte: Dict[str, Any] = field(default_factory=dict)


# ------------------------------
# Jurisprudência e magistrados
# ------------------------------
@dataclass
class Jurisprudencia(_Entity):
    id: str
    numero_processo: str
    tribunal_sigla: str
    relator: str
    ementa: str
    tipo: str = "acordao"
    data_julgamento: Optional[date] = None
    orgao_julgador: Optional[str] = None
    assuntos: List[str] = field(default_factory=list)
    url: Optional[str] = None


@dataclass
class Juiz(_Entity):
    id: str
    nome: str
    cargo: str
    tribunal_sigla: str
    vara: Optional[str] = None
    situacao: str = "desconhecido"
    perfil: Optional[Dict[str, Any]] = None


# ------------------------------
# Jurimetria
# ------------------------------
@dataclass
class Periodo(_Entity):
    inicio: date
    fim: date

    def __post_init__(self) -> None:
        if isinstance(self.inicio, datetime):
            self.inicio = self.inicio.date()
        if isinstance(self.fim, datetime):
            self.fim = self.fim.date()


def _taxas_vazias() -> Dict[str, Any]:
    return {
        "procedencia": 0.0,
        "improcedencia": 0.0,
        "parcial_procedencia": 0.0,
        "acordo": 0.0,
        "extincao_sem_merito": 0.0,
        "outros": 1.0,
        "total_decisoes": 0,
    }


def _tempos_vazios() -> Dict[str, Any]:
    return {
        "distribuicao_citacao_dias": 0,
        "citacao_sentenca_dias": 0,
        "distribuicao_sentenca_dias": 0,
        "sentenca_acordao_dias": 0,
        "total_tramitacao_dias": 0,
    }


@dataclass
class Distribuicao(_Entity):
    por_classe: List[Dict[str, Any]] = field(default_factory=list)
    por_assunto: List[Dict[str, Any]] = field(default_factory=list)
    por_vara: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class JurimetricsData(_Entity):
    periodo: Periodo
    escopo: Dict[str, Any] = field(default_factory=dict)
    total_processos: int = 0
    taxas: Dict[str, Any] = field(default_factory=_taxas_vazias)
    tempos: Dict[str, Any] = field(default_factory=_tempos_vazios)
    valores: Dict[str, Any] = field(default_factory=dict)
    volume: Dict[str, Any] = field(default_factory=dict)
    distribuicao: Distribuicao = field(default_factory=Distribuicao)
    providers_consultados: List[str] = field(default_factory=list)
    data_geracao: datetime = field(default_factory=datetime.now)
    confiabilidade: float = 0.0
    limitacoes: List[str] = field(default_factory=list)
