from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models.entities import JurimetricsData
from ..utils.openai_client import LLM

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """Você é um especialista em jurimetria e análise estatística jurídica.
Sua tarefa é analisar dados jurimétricos e gerar insights acionáveis para advogados.

REGRAS:
- Seja objetivo e direto
- Use linguagem profissional mas acessível
- Baseie-se nos dados fornecidos
- Destaque padrões e anomalias
- Forneça recomendações práticas

FORMATO DE RESPOSTA (JSON):
{
  "sumario": "Resumo executivo em 2-3 parágrafos",
  "destaques": ["destaque 1", "destaque 2", "destaque 3", "destaque 4", "destaque 5"],
  "recomendacoes": ["recomendação 1", "recomendação 2", "recomendação 3"]
}"""


@dataclass
class Insights:
    sumario: str
    destaques: List[str] = field(default_factory=list)
    recomendacoes: List[str] = field(default_factory=list)
    origem: str = "ia"   # ia | regras

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sumario": self.sumario,
            "destaques": list(self.destaques),
            "recomendacoes": list(self.recomendacoes),
            "origem": self.origem,
        }


# ------------------------------ formatação pt-BR ---------------------------------

def _fmt_int(n: Any) -> str:
    return f"{int(n or 0):,}".replace(",", ".")


def _fmt_brl(v: Any) -> str:
    s = f"{float(v or 0):,.2f}"
    return "R$ " + s.replace(",", "_").replace(".", ",").replace("_", ".")


def _pct(x: Any) -> str:
    return f"{float(x or 0) * 100:.1f}%"


def build_analysis_context(data: JurimetricsData) -> str:
    escopo = data.escopo or {}
    taxas, tempos, valores = data.taxas or {}, data.tempos or {}, data.valores or {}
    alvo = " | ".join(str(v) for v in (escopo.get("tribunal"), escopo.get("tipo_acao"), escopo.get("materia")) if v)

    linhas = [
        "## DADOS JURIMÉTRICOS",
        "",
        f"**Período:** {data.periodo.inicio.strftime('%d/%m/%Y')} a {data.periodo.fim.strftime('%d/%m/%Y')}",
        f"**Escopo:** {alvo or 'Geral'}",
        "",
        "### VOLUME",
        f"- Total de processos: {_fmt_int(data.total_processos)}",
        "",
        "### TAXAS DE RESULTADO",
        f"- Procedência: {_pct(taxas.get('procedencia'))}",
        f"- Improcedência: {_pct(taxas.get('improcedencia'))}",
        f"- Parcialmente Procedente: {_pct(taxas.get('parcial_procedencia'))}",
        f"- Acordo: {_pct(taxas.get('acordo'))}",
        f"- Extinção sem mérito: {_pct(taxas.get('extincao_sem_merito'))}",
        "",
        "### TEMPOS MÉDIOS (em dias)",
        f"- Distribuição à Sentença: {tempos.get('distribuicao_sentenca_dias', 0)}",
        f"- Total de Tramitação: {tempos.get('total_tramitacao_dias', 0)}",
        "",
        "### VALORES",
        f"- Média de Condenação: {_fmt_brl(valores.get('media_condenacao'))}",
        f"- Média Valor da Causa: {_fmt_brl(valores.get('media_valor_causa'))}",
    ]
    por_classe = data.distribuicao.por_classe if data.distribuicao else []
    if por_classe:
        linhas += ["", "### CLASSES MAIS FREQUENTES"]
        for i, c in enumerate(por_classe[:5], 1):
            linhas.append(f"{i}. {c.get('classe')}: {c.get('quantidade')} ({_pct(c.get('percentual'))})")
    if data.limitacoes:
        linhas += ["", "### LIMITAÇÕES DOS DADOS"] + [f"- {lim}" for lim in data.limitacoes]
    return "\n".join(linhas)


def fallback_insights(data: JurimetricsData) -> Insights:
    """Insights por regras fixas, usados quando o modelo falha."""
    escopo = data.escopo or {}
    taxas, tempos, valores = data.taxas or {}, data.tempos or {}, data.valores or {}
    procedencia = float(taxas.get("procedencia") or 0) * 100
    acordo = float(taxas.get("acordo") or 0) * 100
    dias_sentenca = int(tempos.get("distribuicao_sentenca_dias") or 0)

    sumario = f"Análise de {_fmt_int(data.total_processos)} processos "
    sumario += f"no {escopo['tribunal']}" if escopo.get("tribunal") else "em diversos tribunais"
    sumario += f". A taxa de procedência é de {procedencia:.1f}%"
    if procedencia > 60:
        sumario += ", indicando um cenário favorável para ações similares. "
    elif procedencia < 40:
        sumario += ", sugerindo cautela na propositura de ações similares. "
    else:
        sumario += ", indicando um cenário equilibrado. "
    sumario += f"O tempo médio até sentença é de {dias_sentenca} dias."

    destaques = [f"Taxa de procedência de {procedencia:.1f}% para o tipo de ação analisado"]
    if float(valores.get("media_condenacao") or 0) > 0:
        destaques.append(f"Valor médio de condenação: {_fmt_brl(valores['media_condenacao'])}")
    destaques.append(f"Tempo médio de tramitação: {dias_sentenca} dias até sentença")
    if acordo > 15:
        destaques.append(f"Taxa de acordo de {acordo:.1f}%, indicando abertura para conciliação")
    por_classe = data.distribuicao.por_classe if data.distribuicao else []
    if por_classe:
        top = por_classe[0]
        destaques.append(f"Classe mais frequente: {top.get('classe')} ({_pct(top.get('percentual'))})")

    recomendacoes: List[str] = []
    if procedencia > 60:
        recomendacoes.append("Cenário favorável para propositura de ações similares")
    elif procedencia < 40:
        recomendacoes.append("Avaliar criteriosamente a viabilidade antes de ajuizar")
    if acordo > 20:
        recomendacoes.append("Considerar tentativa de acordo como estratégia inicial")
    if dias_sentenca > 365:
        recomendacoes.append("Preparar cliente para processo de longa duração")
    recomendacoes.append("Documentar adequadamente todos os fatos e provas antes do ajuizamento")

    return Insights(sumario=sumario, destaques=destaques, recomendacoes=recomendacoes, origem="regras")


class JurimetricsInsights:
    """
    Gera sumário, destaques e recomendações a partir de JurimetricsData.
    Usa o LLM (resposta JSON validada) e cai para fallback_insights() em qualquer falha:
    chave ausente, erro de API, JSON inválido ou estrutura incompleta.
    """

    def __init__(self, llm: Optional[LLM] = None) -> None:
        self._llm = llm

    def _get_llm(self) -> LLM:
        if self._llm is None:
            self._llm = LLM(temperature=0.7)
        return self._llm

    def generate(self, data: JurimetricsData) -> Insights:
        try:
            parsed = self._get_llm().generate_json(
                "Analise os seguintes dados jurimétricos e gere insights:\n\n"
                f"{build_analysis_context(data)}\n\n"
                "Responda APENAS com o JSON, sem markdown ou explicações adicionais.",
                system=SYSTEM_PROMPT,
                max_tokens=2000,
            )
            sumario = parsed.get("sumario")
            destaques = parsed.get("destaques")
            recomendacoes = parsed.get("recomendacoes")
            if not sumario or not isinstance(destaques, list) or not isinstance(recomendacoes, list):
                raise ValueError("Resposta da IA com estrutura inválida")
            return Insights(
                sumario=str(sumario),
                destaques=[str(d) for d in destaques],
                recomendacoes=[str(r) for r in recomendacoes],
            )
        except Exception:
            logger.warning("Falha ao gerar insights com IA; usando regras", exc_info=True)
            return fallback_insights(data)
