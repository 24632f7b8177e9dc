import os, json, time, uuid, logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

from flask import Blueprint, Flask, current_app, g, has_request_context, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from werkzeug.exceptions import HTTPException

from juriscan.errors import AppError, AuthError, NotFoundError, ValidationError
from juriscan.gateways.legal_data import (
    LegalDataGateway,
    UnifiedSearchParams,
    get_legal_data_gateway,
    overall_status,
)
from juriscan.integrations.base import (
    GetJurimetricsParams,
    ProviderError,
    ProviderUnavailableError,
    SearchProcessosParams,
)
from juriscan.models.entities import Periodo
from juriscan.models.numero_processo import limpar_numero
from juriscan.persistence.db import init_db, ping
from juriscan.services.costs import (
    calculate_chat_cost,
    get_analysis_cost,
    get_export_cost,
    get_report_cost,
)
from juriscan.services.credits import CreditService
from juriscan.services.payments import (
    CREDIT_PACKAGES,
    PLANS,
    CheckoutService,
    PaymentError,
    ProviderConfigError,
    ProviderHTTPError,
    StripeProvider,
    StripeWebhookHandler,
    WebhookSignatureError,
)
from juriscan.services.reports import ReportService


# ====== JSON logger “safe” (único) ======
def _json_log_format(record: logging.LogRecord) -> str:
    base = {
        "ts": int(time.time() * 1000),
        "level": record.levelname,
        "msg": record.getMessage(),
        "logger": record.name,
    }
    if has_request_context():
        rid = getattr(g, "request_id", None)
        if rid:
            base["request_id"] = rid
        base["path"] = request.path
        base["method"] = request.method
        base["remote_ip"] = request.headers.get("X-Forwarded-For", request.remote_addr)
        uid = getattr(g, "user_id", None)
        if uid:
            base["user_id"] = uid
    # inclui traceback compacto quando houver exceção
    if record.exc_info:
        base["exc_info"] = True
    return json.dumps(base, ensure_ascii=False)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return _json_log_format(record)


def _client_ip() -> str:
    return request.headers.get("X-Forwarded-For", request.remote_addr or "")


limiter = Limiter(
    key_func=_client_ip,
    default_limits=[os.getenv("RATE_LIMIT_DEFAULT", "60 per minute")],
)

api = Blueprint("api", __name__)


# ====== serviços da aplicação ======
@dataclass
class Services:
    credits: CreditService
    checkout: CheckoutService
    webhooks: StripeWebhookHandler
    stripe: StripeProvider
    gateway: LegalDataGateway
    reports: ReportService


def build_services(**overrides: Any) -> Services:
    credits = overrides.get("credits") or CreditService()
    stripe = overrides.get("stripe") or StripeProvider()
    gateway = overrides.get("gateway") or get_legal_data_gateway()
    return Services(
        credits=credits,
        checkout=overrides.get("checkout") or CheckoutService(provider=stripe),
        webhooks=overrides.get("webhooks") or StripeWebhookHandler(credits=credits),
        stripe=stripe,
        gateway=gateway,
        reports=overrides.get("reports") or ReportService(credits=credits, gateway=gateway),
    )


def svc() -> Services:
    return current_app.extensions["juriscan"]


# ====== helpers ======
def ok(data: Any, status: int = 200):
    return jsonify({"data": data}), status


def _user_id() -> str:
    uid = (request.headers.get("X-User-Id") or "").strip()
    if not uid:
        raise AuthError()
    g.user_id = uid
    return uid


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Corpo da requisição deve ser um objeto JSON")
    return data


def _origin() -> str:
    return request.headers.get("Origin") or os.getenv("APP_URL") or request.host_url.rstrip("/")


def _parse_date_arg(name: str, *, required: bool = False) -> Optional[date]:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        if required:
            raise ValidationError(f"Parâmetro '{name}' é obrigatório")
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise ValidationError(f"Data inválida em '{name}' (use AAAA-MM-DD)", details={name: raw})


def _optional_periodo() -> Optional[Periodo]:
    inicio = _parse_date_arg("inicio")
    fim = _parse_date_arg("fim")
    if not (inicio or fim):
        return None
    if not (inicio and fim):
        raise ValidationError("Informe 'inicio' e 'fim' juntos")
    if fim < inicio:
        raise ValidationError("'fim' deve ser maior ou igual a 'inicio'")
    return Periodo(inicio=inicio, fim=fim)


def _flag_arg(name: str) -> bool:
    return (request.args.get(name) or "true").strip().lower() not in ("0", "false", "nao", "não")


def _int_arg(name: str, default: int, *, minimo: int = 0, maximo: int = 100) -> int:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        v = int(raw)
    except ValueError:
        raise ValidationError(f"Parâmetro '{name}' deve ser inteiro")
    return max(minimo, min(maximo, v))


def _str_field(body: Dict[str, Any], name: str) -> Optional[str]:
    value = body.get(name)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"Campo '{name}' deve ser texto", details={name: value})
    return value


def _operation_cost(body: Dict[str, Any]) -> int:
    op = (_str_field(body, "operation") or "chat").lower()
    if op == "chat":
        attachments = body.get("attachments") or []
        if not isinstance(attachments, list):
            raise ValidationError("attachments deve ser uma lista")
        return calculate_chat_cost(attachments)
    if op == "report":
        return get_report_cost(_str_field(body, "report_type"))
    if op == "export":
        return get_export_cost(_str_field(body, "format"))
    if op == "analysis":
        return get_analysis_cost(_str_field(body, "kind") or "general")
    raise ValidationError("Operação inválida", details={"operation": op})


# ====== health ======
@api.route("/health")
def health():
    checks = {"db": "ok"}
    try:
        ping()
    except Exception:
        current_app.logger.exception("Health check do banco falhou")
        checks["db"] = "fail"
    status = 200 if checks["db"] == "ok" else 500
    return jsonify({"status": "ok" if status == 200 else "degraded", "checks": checks}), status


# ====== créditos ======
@api.get("/api/credits")
def credits_overview():
    return ok(svc().credits.get_overview(_user_id()))


@api.post("/api/credits/consume")
def credits_consume():
    uid = _user_id()
    body = _json_body()
    cost = _operation_cost(body)
    description = _str_field(body, "description")
    reference_id = _str_field(body, "reference_id")
    credits = svc().credits
    if cost <= 0:
        return ok({"success": True, "cost": 0, "new_balance": credits.get_balance(uid)})
    new_balance = credits.charge(
        uid,
        cost,
        description or f"Uso: {body.get('operation') or 'chat'}",
        reference_id=reference_id,
    )
    return ok({"success": True, "cost": cost, "new_balance": new_balance})


@api.post("/api/credits/estimate")
def credits_estimate():
    uid = _user_id()
    cost = _operation_cost(_json_body())
    balance = svc().credits.get_balance(uid)
    return ok({"cost": cost, "balance": balance, "sufficient": balance >= cost})


@api.get("/api/plans")
def plans():
    return ok({
        "plans": [p.to_dict() for p in PLANS.values()],
        "credit_packages": [c.to_dict() for c in CREDIT_PACKAGES.values()],
    })


# ====== Stripe ======
@api.post("/api/stripe/checkout")
def stripe_checkout():
    uid = _user_id()
    body = _json_body()
    result = svc().checkout.start_checkout(
        uid,
        email=body.get("email"),
        plan_id=body.get("planId") or body.get("plan_id"),
        credit_package_id=body.get("creditPackageId") or body.get("credit_package_id"),
        price_id=body.get("priceId") or body.get("price_id"),
        mode=body.get("mode"),
        origin=_origin(),
    )
    return ok(result.to_dict())


@api.post("/api/stripe/portal")
def stripe_portal():
    uid = _user_id()
    return ok({"url": svc().checkout.portal_url(uid, origin=_origin())})


@api.post("/api/stripe/webhook")
@limiter.limit(lambda: os.getenv("RATE_LIMIT_WEBHOOK", "300 per minute"))
def stripe_webhook():
    payload = request.get_data()
    signature = request.headers.get("Stripe-Signature")
    if not signature:
        raise ValidationError("Assinatura ausente", code="WEBHOOK_SIGNATURE_MISSING")
    event = svc().stripe.verify_event(payload, signature)
    try:
        result = svc().webhooks.handle(event)
    except Exception:
        current_app.logger.exception("Falha ao processar webhook %s", event.get("type"))
        raise AppError("Falha ao processar webhook", code="WEBHOOK_HANDLER_FAILED", status_code=500)
    return jsonify(result.to_dict()), 200


# ====== dados jurídicos ======
@api.get("/api/processos")
def processos_search():
    _user_id()
    tribunal = (request.args.get("tribunal") or "").strip().upper() or None
    classe = (request.args.get("classe") or "").strip() or None
    parte = (request.args.get("parte") or "").strip() or None
    if not (tribunal or classe or parte):
        raise ValidationError("Informe ao menos um filtro: tribunal, classe ou parte")
    params = SearchProcessosParams(
        tribunal=tribunal,
        classe=classe,
        assunto=(request.args.get("assunto") or "").strip() or None,
        parte=parte,
        periodo=_optional_periodo(),
        limit=_int_arg("limit", 20, minimo=1, maximo=100),
        offset=_int_arg("offset", 0, maximo=10000),
    )
    return ok(svc().gateway.search_processos(params).to_dict())


@api.get("/api/processos/<numero>")
def processo_detail(numero: str):
    _user_id()
    n = limpar_numero(numero)
    if len(n) != 20:
        raise ValidationError("Número de processo inválido: deve ter 20 dígitos")
    processo = svc().gateway.get_processo(n)
    if processo is None:
        raise NotFoundError("Processo")
    return ok(processo.to_dict())


@api.get("/api/legal-data/search")
def legal_data_search():
    """Processos, jurisprudência e jurimetria do tribunal em paralelo."""
    _user_id()
    termo = (request.args.get("termo") or "").strip() or None
    tribunal = (request.args.get("tribunal") or "").strip().upper() or None
    if not (termo or tribunal):
        raise ValidationError("Informe ao menos 'termo' ou 'tribunal'")
    params = UnifiedSearchParams(
        termo=termo,
        tribunal=tribunal,
        classe=(request.args.get("classe") or "").strip() or None,
        assunto=(request.args.get("assunto") or "").strip() or None,
        materia=(request.args.get("materia") or "").strip() or None,
        parte=(request.args.get("parte") or "").strip() or None,
        periodo=_optional_periodo(),
        limit=_int_arg("limit", 20, minimo=1, maximo=100),
        incluir_processos=_flag_arg("processos"),
        incluir_jurisprudencia=_flag_arg("jurisprudencia"),
        incluir_jurimetrics=_flag_arg("jurimetrics"),
    )
    return ok(svc().gateway.search_parallel(params).to_dict())


@api.get("/api/jurimetrics")
def jurimetrics():
    _user_id()
    tribunal = (request.args.get("tribunal") or "").strip().upper()
    if not tribunal:
        raise ValidationError("Parâmetro 'tribunal' é obrigatório")
    inicio = _parse_date_arg("inicio", required=True)
    fim = _parse_date_arg("fim", required=True)
    if fim < inicio:
        raise ValidationError("'fim' deve ser maior ou igual a 'inicio'")
    data = svc().gateway.get_jurimetrics(GetJurimetricsParams(
        periodo=Periodo(inicio=inicio, fim=fim),
        tribunal=tribunal,
        classe=(request.args.get("classe") or "").strip() or None,
        assunto=(request.args.get("assunto") or "").strip() or None,
        materia=(request.args.get("materia") or "").strip() or None,
    ))
    return ok(data.to_dict())


@api.get("/api/jurimetrics/health")
def jurimetrics_health():
    gateway = svc().gateway
    health = gateway.health_check()
    return ok({
        "status": overall_status(health).value,
        "providers": {name: h.to_dict() for name, h in health.items()},
        "cache": gateway.get_cache_stats(),
    })


@api.get("/api/jurimetrics/tribunais")
def jurimetrics_tribunais():
    tribunais = svc().gateway.list_tribunais()
    return ok({"tribunais": [t.to_dict() for t in tribunais], "total": len(tribunais)})


@api.get("/api/jurimetrics/tribunais/<sigla>")
def jurimetrics_tribunal(sigla: str):
    tribunal = svc().gateway.get_tribunal(sigla.strip().upper())
    if tribunal is None:
        raise NotFoundError("Tribunal")
    return ok(tribunal.to_dict())


# ====== relatórios ======
@api.get("/api/reports")
def reports_list():
    uid = _user_id()
    reports = svc().reports.list_reports(
        uid,
        type=(request.args.get("type") or "").upper() or None,
        status=(request.args.get("status") or "").upper() or None,
        limit=_int_arg("limit", 20, minimo=1, maximo=100),
        offset=_int_arg("offset", 0, maximo=10000),
    )
    return ok({"reports": reports})


@api.post("/api/reports")
def reports_create():
    uid = _user_id()
    body = _json_body()
    report = svc().reports.create_report(
        uid, body.get("type") or "", body.get("title") or "", body.get("parameters") or {}
    )
    return ok({"report": report}, 201)


@api.get("/api/reports/<report_id>")
def reports_get(report_id: str):
    return ok({"report": svc().reports.get_report(_user_id(), report_id)})


@api.delete("/api/reports/<report_id>")
def reports_delete(report_id: str):
    svc().reports.delete_report(_user_id(), report_id)
    return ok({"message": "Relatório excluído"})


@api.post("/api/reports/<report_id>/generate")
@limiter.limit(lambda: os.getenv("RATE_LIMIT_REPORTS", "10 per minute"))
def reports_generate(report_id: str):
    return ok({"report": svc().reports.generate_report(_user_id(), report_id)})


# ====== erros ======
def _error(code: str, message: str, status: int, details: Any = None):
    body: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        body["details"] = details
    return jsonify({"error": body}), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def _app_error(e: AppError):
        if e.status_code >= 500:
            app.logger.error("AppError %s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(WebhookSignatureError)
    def _bad_signature(e: WebhookSignatureError):
        app.logger.warning("Webhook com assinatura inválida: %s", e)
        return _error("WEBHOOK_SIGNATURE_INVALID", "Assinatura inválida", 400)

    @app.errorhandler(PaymentError)
    def _payment_error(e: PaymentError):
        app.logger.error("Erro de pagamento: %s", e)
        if isinstance(e, ProviderConfigError):
            return _error("PAYMENT_CONFIG_ERROR", "Pagamentos não configurados", 500)
        if isinstance(e, ProviderHTTPError):
            return _error("PAYMENT_PROVIDER_ERROR", "Erro ao comunicar com a Stripe", 502)
        return _error("PAYMENT_ERROR", str(e) or "Erro no pagamento", 500)

    @app.errorhandler(ProviderError)
    def _provider_error(e: ProviderError):
        app.logger.warning("Erro de provider jurídico: %s", e)
        if isinstance(e, ProviderUnavailableError):
            return _error("PROVIDER_UNAVAILABLE", str(e), 503)
        return _error("PROVIDER_ERROR", "Erro ao consultar fonte de dados jurídicos", 502)

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        codes = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED", 429: "RATE_LIMIT_EXCEEDED"}
        return _error(codes.get(e.code or 500, "HTTP_ERROR"), e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):
        app.logger.exception("Erro não tratado: %s", e)
        return _error("INTERNAL_ERROR", "Erro interno do servidor", 500)


# ====== app factory ======
def create_app(config: Optional[Dict[str, Any]] = None, **services: Any) -> Flask:
    app = Flask(__name__)
    app.config["RATELIMIT_ENABLED"] = os.getenv("RATE_LIMIT_ENABLED", "true").lower() != "false"
    app.config["RATELIMIT_STORAGE_URI"] = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
    app.config.update(config or {})

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    app.logger.handlers = [handler]
    app.logger.setLevel(os.getenv("LOGLEVEL", "INFO").upper())

    # ===== CORS / Rate limit =====
    allowed_origins = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]
    if allowed_origins:
        CORS(app, resources={r"/api/*": {"origins": allowed_origins}})
    limiter.init_app(app)

    @app.before_request
    def _request_id():
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex

    @app.after_request
    def _add_request_id(resp):
        rid = getattr(g, "request_id", None)
        if rid:
            resp.headers["X-Request-Id"] = rid
        return resp

    init_db()
    app.extensions["juriscan"] = build_services(**services)
    app.register_blueprint(api)
    register_error_handlers(app)
    return app
