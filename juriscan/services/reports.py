from __future__ import annotations
import logging
import time
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..errors import AppError, ConflictError, NotFoundError, ValidationError
from ..gateways.legal_data import LegalDataGateway, get_legal_data_gateway
from ..integrations.base import GetJurimetricsParams, ProviderError
from ..models.entities import JurimetricsData, Periodo
from ..persistence.db import utcnow
from ..persistence.repositories import ReportRepository
from .analyses import JudgeProfileAnalyzer, PredictiveAnalyzer
from .costs import REPORT_COSTS, get_report_cost
from .credits import CreditService
from .insights import JurimetricsInsights

logger = logging.getLogger(__name__)

REPORT_TYPES = tuple(REPORT_COSTS)
# tipos com geração implementada; os demais existem só na tabela de preços
SUPPORTED_REPORT_TYPES = ("JURIMETRICS", "PREDICTIVE_ANALYSIS", "RELATOR_PROFILE")
MAX_TITLE_LEN = 200

REQUIRED_PARAMETERS = {
    "JURIMETRICS": (),
    "PREDICTIVE_ANALYSIS": ("tipo_acao", "tribunal", "argumentos", "pedidos"),
    "RELATOR_PROFILE": ("relator", "tribunal"),
}

# período padrão (dias) quando inicio/fim não vêm nos parâmetros
DEFAULT_PERIOD_DAYS = {
    "JURIMETRICS": 365,
    "PREDICTIVE_ANALYSIS": 730,
    "RELATOR_PROFILE": 730,
}


class ReportStatus:
    DRAFT = "DRAFT"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def _parse_date(value: Any, campo: str) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Data inválida em '{campo}'", details={campo: value})


def periodo_from_parameters(parameters: Dict[str, Any], default_days: int = 365) -> Periodo:
    """inicio/fim ISO nos parâmetros; sem eles, os últimos `default_days` dias."""
    fim = _parse_date(parameters.get("fim"), "fim") or date.today()
    inicio = _parse_date(parameters.get("inicio"), "inicio") or (fim - timedelta(days=default_days))
    if fim < inicio:
        raise ValidationError("Data final deve ser maior ou igual à inicial")
    return Periodo(inicio=inicio, fim=fim)


def validate_parameters(tipo: str, params: Dict[str, Any]) -> None:
    faltando = [
        campo for campo in REQUIRED_PARAMETERS[tipo]
        if not isinstance(params.get(campo), str) or not params[campo].strip()
    ]
    if faltando:
        raise ValidationError("Parâmetros obrigatórios ausentes", details={"campos": faltando})
    valor = params.get("valor_causa")
    if valor is not None and (isinstance(valor, bool) or not isinstance(valor, (int, float)) or valor < 0):
        raise ValidationError("valor_causa deve ser um número não negativo")
    periodo_from_parameters(params)


class ReportService:
    """
    Ciclo de vida dos relatórios: DRAFT -> GENERATING -> COMPLETED | FAILED.

    A geração reivindica o relatório (DRAFT -> GENERATING condicional) antes de
    cobrar get_report_cost(tipo); só um pedido concorrente passa. Se a cobrança
    falhar o relatório volta para DRAFT; se a geração falhar depois da cobrança,
    vai para FAILED e os créditos são estornados.

    Conteúdo por tipo:
      - JURIMETRICS: jurimetria do tribunal + insights
      - PREDICTIVE_ANALYSIS: probabilidade de êxito do caso (IA + base histórica)
      - RELATOR_PROFILE: perfil decisório do relator
    """

    def __init__(
        self,
        reports: Optional[ReportRepository] = None,
        credits: Optional[CreditService] = None,
        gateway: Optional[LegalDataGateway] = None,
        insights: Optional[JurimetricsInsights] = None,
        predictive: Optional[PredictiveAnalyzer] = None,
        judge_profiles: Optional[JudgeProfileAnalyzer] = None,
    ) -> None:
        self.reports = reports or ReportRepository()
        self.credits = credits or CreditService()
        self._gateway = gateway
        self.insights = insights or JurimetricsInsights()
        self.predictive = predictive or PredictiveAnalyzer()
        self.judge_profiles = judge_profiles or JudgeProfileAnalyzer()
        self._builders: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            "JURIMETRICS": self._build_jurimetrics,
            "PREDICTIVE_ANALYSIS": self._build_predictive,
            "RELATOR_PROFILE": self._build_relator_profile,
        }

    @property
    def gateway(self) -> LegalDataGateway:
        if self._gateway is None:
            self._gateway = get_legal_data_gateway()
        return self._gateway

    # ------------------------------ CRUD --------------------------------

    def create_report(
        self,
        user_id: str,
        type: str,
        title: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        tipo = (type or "").upper() if isinstance(type, str) else ""
        if tipo not in REPORT_TYPES:
            raise ValidationError("Tipo de relatório inválido", details={"type": type, "tipos": list(REPORT_TYPES)})
        if tipo not in SUPPORTED_REPORT_TYPES:
            raise ValidationError(
                "Tipo de relatório não suportado",
                details={"type": tipo, "suportados": list(SUPPORTED_REPORT_TYPES)},
            )
        titulo = title.strip() if isinstance(title, str) else ""
        if not titulo or len(titulo) > MAX_TITLE_LEN:
            raise ValidationError(f"Título deve ter entre 1 e {MAX_TITLE_LEN} caracteres")
        if parameters is not None and not isinstance(parameters, dict):
            raise ValidationError("parameters deve ser um objeto")
        params = dict(parameters or {})
        validate_parameters(tipo, params)
        report = self.reports.create(user_id, tipo, titulo, params)
        logger.info("Relatório criado id=%s user=%s tipo=%s", report["id"], user_id, tipo)
        return report

    def get_report(self, user_id: str, report_id: str) -> Dict[str, Any]:
        report = self.reports.get(report_id, user_id=user_id)
        if report is None:
            raise NotFoundError("Relatório")
        return report

    def list_reports(self, user_id: str, **filtros: Any) -> List[Dict[str, Any]]:
        return self.reports.list_by_user(user_id, **filtros)

    def delete_report(self, user_id: str, report_id: str) -> None:
        if not self.reports.delete(report_id, user_id):
            raise NotFoundError("Relatório")

    # ------------------------------ geração --------------------------------

    def generate_report(self, user_id: str, report_id: str) -> Dict[str, Any]:
        report = self.get_report(user_id, report_id)
        if report["status"] != ReportStatus.DRAFT or not self.reports.claim_for_generation(report_id, user_id):
            atual = self.reports.get(report_id) or report
            raise ConflictError(
                "Relatório já foi gerado ou está em geração",
                details={"status": atual["status"]},
            )

        cost = get_report_cost(report["type"])
        try:
            self.credits.charge(user_id, cost, f"Relatório: {report['title']}", reference_id=report_id)
        except Exception:
            self.reports.update(report_id, status=ReportStatus.DRAFT)
            raise

        try:
            content = self._build_content(report)
            updated = self.reports.update(
                report_id,
                status=ReportStatus.COMPLETED,
                content=content,
                credits_used=cost,
                generated_at=utcnow(),
                error=None,
            )
        except Exception as e:
            logger.exception("Falha ao gerar relatório %s", report_id)
            self.reports.update(report_id, status=ReportStatus.FAILED, error=str(e)[:1000])
            refund = self.credits.refund_credits(
                user_id, cost, f"Estorno: relatório {report['title']}", reference_id=report_id
            )
            if not refund.success:
                logger.error("Estorno do relatório %s falhou: %s", report_id, refund.error)
            raise AppError(
                "Erro ao gerar relatório",
                code="REPORT_GENERATION_FAILED",
                status_code=502 if isinstance(e, ProviderError) else 500,
                details={"report_id": report_id, "refunded": refund.success},
            ) from e

        logger.info("Relatório %s gerado (%s créditos)", report_id, cost)
        return updated or report

    def _build_content(self, report: Dict[str, Any]) -> Dict[str, Any]:
        inicio_proc = time.monotonic()
        params = report.get("parameters") or {}
        content = self._builders[report["type"]](params)
        content["metadata"] = {
            **content.get("metadata", {}),
            "generated_at": datetime.now().isoformat(),
            "processing_time_ms": int((time.monotonic() - inicio_proc) * 1000),
        }
        return content

    def _periodo(self, tipo: str, params: Dict[str, Any]) -> Periodo:
        return periodo_from_parameters(params, DEFAULT_PERIOD_DAYS[tipo])

    def _data_source(self) -> str:
        return ", ".join(self.gateway.get_active_providers())

    def _jurimetrics_or_none(self, params: GetJurimetricsParams) -> Optional[JurimetricsData]:
        try:
            return self.gateway.get_jurimetrics(params)
        except ProviderError:
            logger.warning("Jurimetria indisponível para %s; seguindo sem dados", params.tribunal, exc_info=True)
            return None

    def _build_jurimetrics(self, params: Dict[str, Any]) -> Dict[str, Any]:
        tribunal = params.get("tribunal")
        data = self.gateway.get_jurimetrics(GetJurimetricsParams(
            periodo=self._periodo("JURIMETRICS", params),
            tribunal=tribunal.upper() if isinstance(tribunal, str) and tribunal else None,
            classe=params.get("classe"),
            assunto=params.get("assunto"),
            materia=params.get("materia"),
        ))
        return {
            "jurimetrics": data.to_dict(),
            "insights": self.insights.generate(data).to_dict(),
            "metadata": {"data_source": self._data_source()},
        }

    def _build_predictive(self, params: Dict[str, Any]) -> Dict[str, Any]:
        data = self._jurimetrics_or_none(GetJurimetricsParams(
            periodo=self._periodo("PREDICTIVE_ANALYSIS", params),
            tribunal=params["tribunal"].upper(),
            classe=params["tipo_acao"],
        ))
        return {
            "analise": self.predictive.analyze(params, data),
            "jurimetrics": data.to_dict() if data else None,
            "metadata": {"data_source": self._data_source() if data else "ai-only"},
        }

    def _build_relator_profile(self, params: Dict[str, Any]) -> Dict[str, Any]:
        tribunal = params["tribunal"].upper()
        nome = params["relator"].strip()
        periodo = self._periodo("RELATOR_PROFILE", params)
        try:
            juiz = self.gateway.get_judge_profile(nome, tribunal)
        except ProviderError:
            logger.warning("Perfil do relator %s indisponível no provider", nome, exc_info=True)
            juiz = None
        data = self._jurimetrics_or_none(GetJurimetricsParams(periodo=periodo, tribunal=tribunal))
        return {
            "perfil": self.judge_profiles.analyze(nome, tribunal, periodo, juiz, data),
            "relator": juiz.to_dict() if juiz else None,
            "jurimetrics": data.to_dict() if data else None,
            "metadata": {"data_source": self._data_source() if juiz else "ai-analysis"},
        }
