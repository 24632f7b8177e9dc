from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from ..models.entities import JurimetricsData, Juiz, Periodo
from ..utils.openai_client import LLM
from .insights import _fmt_brl, _fmt_int, _pct, fallback_insights

logger = logging.getLogger(__name__)

PREDICTIVE_SYSTEM = (
    "Você é um analista jurídico especializado em jurimetria e análise preditiva. "
    "Responda APENAS com JSON válido."
)

JUDGE_PROFILE_SYSTEM = (
    "Você é um analista jurídico especializado em perfis de magistrados. "
    "Responda APENAS com JSON válido."
)

CONFIANCAS = ("alta", "media", "baixa")


def _lista(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else []


def _periodo_br(periodo: Periodo) -> str:
    return f"{periodo.inicio.strftime('%d/%m/%Y')} a {periodo.fim.strftime('%d/%m/%Y')}"


# =============================================================================
# Análise preditiva
# =============================================================================

def probabilidade_base(data: Optional[JurimetricsData]) -> Optional[float]:
    """Procedência + metade da parcial procedência (0..1); None sem dados."""
    if data is None:
        return None
    taxas = data.taxas or {}
    return float(taxas.get("procedencia") or 0) + float(taxas.get("parcial_procedencia") or 0) * 0.5


def build_predictive_prompt(params: Dict[str, Any], data: Optional[JurimetricsData]) -> str:
    linhas = [
        "Analise o seguinte caso e forneça uma previsão detalhada.",
        "",
        "## DADOS DO CASO",
        "",
        f"**Tribunal:** {params['tribunal']}",
        f"**Tipo de Ação:** {params['tipo_acao']}",
        f"**Argumentos:** {params['argumentos']}",
        f"**Pedidos:** {params['pedidos']}",
    ]
    if params.get("valor_causa"):
        linhas.append(f"**Valor da Causa:** {_fmt_brl(params['valor_causa'])}")
    if params.get("processo_numero"):
        linhas.append(f"**Número do Processo:** {params['processo_numero']}")

    linhas += ["", "## DADOS ESTATÍSTICOS REAIS"]
    if data is None:
        linhas.append("Dados estatísticos não disponíveis. Análise baseada apenas em conhecimento jurídico.")
    else:
        taxas, tempos, valores = data.taxas or {}, data.tempos or {}, data.valores or {}
        linhas += [
            f"### Estatísticas do {data.escopo.get('tribunal') or 'Tribunal'} ({_periodo_br(data.periodo)})",
            f"**Volume:** {_fmt_int(data.total_processos)} processos analisados",
            f"- Procedência total: {_pct(taxas.get('procedencia'))}",
            f"- Procedência parcial: {_pct(taxas.get('parcial_procedencia'))}",
            f"- Improcedência: {_pct(taxas.get('improcedencia'))}",
            f"- Acordo: {_pct(taxas.get('acordo'))}",
            f"- Até sentença: {tempos.get('distribuicao_sentenca_dias', 0)} dias",
            f"- Média de condenação: {_fmt_brl(valores.get('media_condenacao'))}",
            "",
            f"**Probabilidade Base (dados históricos):** {_pct(probabilidade_base(data))}",
        ]

    linhas += [
        "",
        "Responda APENAS com JSON válido no formato:",
        '{"probabilidade_exito": <0-100>, "confianca": "<alta|media|baixa>", '
        '"fatores_favoraveis": [], "fatores_desfavoraveis": [], '
        '"jurisprudencia": [{"tribunal": "", "numero": "", "resumo": ""}], '
        '"recomendacoes": [], "riscos": [], "resumo_executivo": ""}',
        "Inclua no resumo executivo que esta é uma análise probabilística e não garantia de resultado.",
    ]
    return "\n".join(linhas)


def _dados_base(data: Optional[JurimetricsData]) -> Dict[str, Any]:
    if data is None:
        return {
            "total_processos_analisados": 0,
            "taxa_procedencia_historica": 0.0,
            "tempo_medio_tramitacao_dias": 0,
            "valor_medio_condenacao": None,
            "periodo_analise": "N/A",
        }
    return {
        "total_processos_analisados": data.total_processos,
        "taxa_procedencia_historica": float((data.taxas or {}).get("procedencia") or 0) * 100,
        "tempo_medio_tramitacao_dias": int((data.tempos or {}).get("distribuicao_sentenca_dias") or 0),
        "valor_medio_condenacao": (data.valores or {}).get("media_condenacao") or None,
        "periodo_analise": _periodo_br(data.periodo),
    }


class PredictiveAnalyzer:
    """
    Probabilidade de êxito de um caso, combinando o LLM com a jurimetria do tribunal.

    Com dados históricos a probabilidade final pondera 60% a base histórica e 40%
    a estimativa do modelo. Sem dados a confiança é rebaixada (alta -> media, demais -> baixa).
    Se o modelo falhar, a análise sai só dos dados (origem "regras"); sem dados, o erro sobe.
    """

    def __init__(self, llm: Optional[LLM] = None) -> None:
        self._llm = llm

    def _get_llm(self) -> LLM:
        if self._llm is None:
            self._llm = LLM(temperature=0.5)
        return self._llm

    def analyze(self, params: Dict[str, Any], data: Optional[JurimetricsData]) -> Dict[str, Any]:
        base = probabilidade_base(data)
        try:
            parsed = self._get_llm().generate_json(
                build_predictive_prompt(params, data), system=PREDICTIVE_SYSTEM, max_tokens=2500
            )
            prob_ia = float(parsed["probabilidade_exito"])
        except Exception:
            if data is None:
                raise
            logger.warning("Falha na análise preditiva com IA; usando dados históricos", exc_info=True)
            return self._from_data(data, base)

        prob = prob_ia if base is None else base * 100 * 0.6 + prob_ia * 0.4
        confianca = parsed.get("confianca") if parsed.get("confianca") in CONFIANCAS else "media"
        if data is None:
            confianca = "media" if confianca == "alta" else "baixa"
        return {
            "probabilidade_exito": int(round(min(100.0, max(0.0, prob)))),
            "confianca": confianca,
            "fatores_favoraveis": _lista(parsed.get("fatores_favoraveis")),
            "fatores_desfavoraveis": _lista(parsed.get("fatores_desfavoraveis")),
            "jurisprudencia": _lista(parsed.get("jurisprudencia")),
            "recomendacoes": _lista(parsed.get("recomendacoes")),
            "riscos": _lista(parsed.get("riscos")),
            "resumo_executivo": str(parsed.get("resumo_executivo") or ""),
            "dados_base": _dados_base(data),
            "origem": "ia",
        }

    def _from_data(self, data: JurimetricsData, base: Optional[float]) -> Dict[str, Any]:
        regras = fallback_insights(data)
        return {
            "probabilidade_exito": int(round((base or 0) * 100)),
            "confianca": "baixa",
            "fatores_favoraveis": [],
            "fatores_desfavoraveis": [],
            "jurisprudencia": [],
            "recomendacoes": regras.recomendacoes,
            "riscos": [],
            "resumo_executivo": regras.sumario + " Esta é uma análise probabilística e não garantia de resultado.",
            "dados_base": _dados_base(data),
            "origem": "regras",
        }


# =============================================================================
# Perfil de relator / magistrado
# =============================================================================

def build_judge_profile_prompt(
    nome: str,
    tribunal: str,
    periodo: Periodo,
    juiz: Optional[Juiz],
    data: Optional[JurimetricsData],
) -> str:
    linhas = [
        "Analise o seguinte magistrado e forneça um perfil detalhado.",
        "",
        "## DADOS DO MAGISTRADO",
        f"**Nome:** {nome}",
        f"**Tribunal:** {tribunal}",
        f"**Período de Análise:** {_periodo_br(periodo)}",
        "",
    ]
    if juiz is not None:
        linhas.append(f"### Dados do Magistrado (fonte: DataJud)\n**Nome Completo:** {juiz.nome}")
        if juiz.vara:
            linhas.append(f"**Vara/Câmara:** {juiz.vara}")
        perfil = juiz.perfil or {}
        if perfil:
            linhas += [
                f"- Total de decisões: {perfil.get('total_decisoes', 0)}",
                f"- Taxa de procedência: {_pct((perfil.get('taxas') or {}).get('procedencia'))}",
                f"- Tempo médio para decisão: {perfil.get('tempo_medio_decisao_dias', 0)} dias",
            ]
    else:
        linhas.append(
            "NOTA: Dados específicos do magistrado não disponíveis. Forneça análise baseada em "
            "conhecimento geral sobre magistrados deste tribunal e tipo de vara."
        )
    if data is not None:
        taxas = data.taxas or {}
        linhas += [
            "",
            f"### Estatísticas Gerais do {tribunal} ({_periodo_br(data.periodo)})",
            f"- Total de processos: {_fmt_int(data.total_processos)}",
            f"- Taxa média de procedência: {_pct(taxas.get('procedencia'))}",
            f"- Taxa média de acordo: {_pct(taxas.get('acordo'))}",
            f"- Tempo médio até sentença: {(data.tempos or {}).get('distribuicao_sentenca_dias', 0)} dias",
            "Use estas estatísticas do tribunal como referência para comparação.",
        ]
    linhas += [
        "",
        "Responda APENAS com JSON válido no formato:",
        '{"magistrado": {"nome": "", "tribunal": "", "vara_camara": "", "tempo_atuacao_anos": 0}, '
        '"estatisticas": {"total_decisoes": 0, "taxa_procedencia": 0, "taxa_reforma": 0, '
        '"tempo_medio_decisao_dias": 0}, '
        '"tendencias": {"favorece": "<autor|reu|neutro>", "intensidade": "<forte|moderada|leve>"}, '
        '"tipos_caso_frequentes": [{"tipo": "", "percentual": 0}], "padroes_identificados": [], '
        '"doutrina_citada": [], "recomendacoes_estrategicas": [], "resumo_executivo": ""}',
        "Baseie a análise em padrões objetivos e evite juízos de valor sobre o magistrado.",
    ]
    return "\n".join(linhas)


class JudgeProfileAnalyzer:
    """Perfil decisório do relator; os números do provider prevalecem sobre os do modelo."""

    def __init__(self, llm: Optional[LLM] = None) -> None:
        self._llm = llm

    def _get_llm(self) -> LLM:
        if self._llm is None:
            self._llm = LLM(temperature=0.5)
        return self._llm

    def analyze(
        self,
        nome: str,
        tribunal: str,
        periodo: Periodo,
        juiz: Optional[Juiz],
        data: Optional[JurimetricsData],
    ) -> Dict[str, Any]:
        parsed = self._get_llm().generate_json(
            build_judge_profile_prompt(nome, tribunal, periodo, juiz, data),
            system=JUDGE_PROFILE_SYSTEM,
            max_tokens=2500,
        )
        magistrado = parsed.get("magistrado") if isinstance(parsed.get("magistrado"), dict) else {}
        estatisticas = parsed.get("estatisticas") if isinstance(parsed.get("estatisticas"), dict) else {}
        magistrado = dict(magistrado)
        magistrado["nome"] = magistrado.get("nome") or nome
        magistrado["tribunal"] = magistrado.get("tribunal") or tribunal

        if juiz is not None:
            magistrado["nome"] = juiz.nome
            magistrado["tribunal"] = juiz.tribunal_sigla
            if juiz.vara:
                magistrado["vara_camara"] = juiz.vara
            perfil = juiz.perfil or {}
            if perfil:
                taxas = perfil.get("taxas") or {}
                estatisticas = {
                    **estatisticas,
                    "total_decisoes": perfil.get("total_decisoes", estatisticas.get("total_decisoes")),
                    "taxa_procedencia": float(taxas.get("procedencia") or 0) * 100,
                    "taxa_reforma": float(taxas.get("reforma") or 0) * 100,
                    "tempo_medio_decisao_dias": perfil.get("tempo_medio_decisao_dias"),
                }
                if perfil.get("tempo_atuacao_anos") is not None:
                    magistrado["tempo_atuacao_anos"] = perfil["tempo_atuacao_anos"]

        return {
            "magistrado": magistrado,
            "estatisticas": estatisticas,
            "tendencias": parsed.get("tendencias") if isinstance(parsed.get("tendencias"), dict) else {},
            "tipos_caso_frequentes": _lista(parsed.get("tipos_caso_frequentes")),
            "padroes_identificados": _lista(parsed.get("padroes_identificados")),
            "doutrina_citada": _lista(parsed.get("doutrina_citada")),
            "recomendacoes_estrategicas": _lista(parsed.get("recomendacoes_estrategicas")),
            "resumo_executivo": str(parsed.get("resumo_executivo") or ""),
        }
