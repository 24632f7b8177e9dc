import hashlib
import hmac
import json
import time
from datetime import date

import pytest

from juriscan.gateways.legal_data import UnifiedSearchResult
from juriscan.integrations.base import (
    HealthStatus,
    ProviderHealth,
    ProviderUnavailableError,
    SearchResult,
)
from juriscan.models.entities import JurimetricsData, Processo, Tribunal
from juriscan.services.credits import CreditService
from juriscan.services.insights import Insights
from juriscan.services.payments import StripeProvider
from juriscan.services.reports import ReportService
from server import create_app

SECRET = "whsec_test"
NUMERO = "00000017320238260100"


class FakeGateway:
    def __init__(self):
        self.fail_jurimetrics = False
        self.search_params = []

    def search_processos(self, params, *, propagar=False):
        self.search_params.append(params)
        proc = Processo(id="p1", numero="0000001-73.2023.8.26.0100", tribunal=Tribunal.from_sigla("TJSP"))
        return SearchResult(items=[proc], total=1, limit=params.limit)

    def get_processo(self, numero):
        if numero == NUMERO:
            return Processo(id="p1", numero="0000001-73.2023.8.26.0100", tribunal=Tribunal.from_sigla("TJSP"))
        return None

    def get_jurimetrics(self, params):
        if self.fail_jurimetrics:
            raise ProviderUnavailableError("Nenhum provider disponível para jurimetria")
        return JurimetricsData(periodo=params.periodo, total_processos=7)

    def get_judge_profile(self, nome, tribunal):
        return None

    def health_check(self):
        return {"datajud": ProviderHealth(status=HealthStatus.HEALTHY, latency_ms=12)}

    def get_cache_stats(self):
        return {"memory_hits": 0, "memory_misses": 0, "total_items": 0, "hit_rate": 0.0}

    def list_tribunais(self):
        return [Tribunal.from_sigla("TJSP")]

    def get_active_providers(self):
        return ["datajud"]

    def get_tribunal(self, sigla):
        return Tribunal.from_sigla(sigla) if sigla == "TJSP" else None

    def search_parallel(self, params):
        self.search_params.append(params)
        proc = Processo(id="p1", numero="0000001-73.2023.8.26.0100", tribunal=Tribunal.from_sigla("TJSP"))
        return UnifiedSearchResult(processos=[proc], metadata={"providers_consultados": ["datajud"], "cached": False})


class FakeInsights:
    def generate(self, data):
        return Insights(sumario="ok", destaques=[], recomendacoes=[])


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(gateway):
    credits = CreditService()
    return create_app(
        {"TESTING": True, "RATELIMIT_ENABLED": False},
        credits=credits,
        gateway=gateway,
        stripe=StripeProvider(api_key="sk_test", webhook_secret=SECRET),
        reports=ReportService(credits=credits, gateway=gateway, insights=FakeInsights()),
    )


@pytest.fixture
def client(app):
    return app.test_client()


USER = {"X-User-Id": "u1"}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok", "checks": {"db": "ok"}}
    assert resp.headers["X-Request-Id"]


def test_request_id_is_echoed(client):
    resp = client.get("/health", headers={"X-Request-Id": "abc123"})
    assert resp.headers["X-Request-Id"] == "abc123"


def test_missing_user_is_401(client):
    resp = client.get("/api/credits")
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "AUTH_ERROR"


def test_credits_overview_and_consume(client):
    CreditService().add_credits("u1", 10)
    assert client.get("/api/credits", headers=USER).get_json()["data"]["balance"] == 10

    resp = client.post("/api/credits/consume", headers=USER,
                       json={"operation": "chat", "attachments": [{"type": "file"}]})
    assert resp.status_code == 200
    assert resp.get_json()["data"] == {"success": True, "cost": 3, "new_balance": 7}


def test_consume_zero_cost_does_not_charge(client):
    CreditService().add_credits("u1", 1)
    resp = client.post("/api/credits/consume", headers=USER, json={"operation": "export", "format": "txt"})
    assert resp.get_json()["data"] == {"success": True, "cost": 0, "new_balance": 1}
    assert len(CreditService().list_transactions("u1")) == 1


def test_consume_without_balance_is_402(client):
    resp = client.post("/api/credits/consume", headers=USER, json={"operation": "report", "report_type": "CUSTOM"})
    assert resp.status_code == 402
    err = resp.get_json()["error"]
    assert err["code"] == "INSUFFICIENT_CREDITS"
    assert err["details"] == {"required": 15, "available": 0}


def test_estimate_and_invalid_operation(client):
    CreditService().add_credits("u1", 4)
    data = client.post("/api/credits/estimate", headers=USER, json={"operation": "analysis"}).get_json()["data"]
    assert data == {"cost": 10, "balance": 4, "sufficient": False}
    resp = client.post("/api/credits/estimate", headers=USER, json={"operation": "voar"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"


def test_consume_rejects_non_text_fields(client):
    CreditService().add_credits("u1", 10)
    resp = client.post("/api/credits/consume", headers=USER, json={"operation": 5})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"
    resp = client.post("/api/credits/consume", headers=USER, json={"operation": "chat", "description": ["x"]})
    assert resp.status_code == 400
    resp = client.post("/api/credits/estimate", headers=USER, json={"operation": "report", "report_type": {"a": 1}})
    assert resp.status_code == 400
    assert CreditService().get_balance("u1") == 10


def test_unsupported_report_type_is_400(client):
    resp = client.post("/api/reports", headers=USER, json={"type": "CUSTOM", "title": "x"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["message"] == "Tipo de relatório não suportado"


def test_plans(client):
    data = client.get("/api/plans").get_json()["data"]
    assert [p["id"] for p in data["plans"]] == ["free", "professional", "enterprise"]
    assert len(data["credit_packages"]) == 3


# ------------------------------ webhook ------------------------------

def _signed(payload: str):
    ts = int(time.time())
    mac = hmac.new(SECRET.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return {"Stripe-Signature": f"t={ts},v1={mac}", "Content-Type": "application/json"}


def test_webhook_credits_purchase(client):
    payload = json.dumps({
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {"object": {"mode": "payment", "metadata": {
            "user_id": "u1", "credit_package_id": "credits_100", "credits": "100"}}},
    })
    resp = client.post("/api/stripe/webhook", data=payload, headers=_signed(payload))
    assert resp.status_code == 200
    assert resp.get_json() == {"received": True, "type": "checkout.session.completed",
                               "handled": True, "duplicate": False}
    assert CreditService().get_balance("u1") == 100


def test_webhook_signature_errors(client):
    payload = json.dumps({"id": "evt_1", "type": "x", "data": {"object": {}}})
    resp = client.post("/api/stripe/webhook", data=payload)
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "WEBHOOK_SIGNATURE_MISSING"

    resp = client.post("/api/stripe/webhook", data=payload,
                       headers={"Stripe-Signature": "t=1,v1=deadbeef"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "WEBHOOK_SIGNATURE_INVALID"


# ------------------------------ dados jurídicos ------------------------------

def test_processos_requires_filter_and_valid_period(client):
    assert client.get("/api/processos", headers=USER).status_code == 400
    resp = client.get("/api/processos?tribunal=TJSP&inicio=2024-01-01", headers=USER)
    assert resp.status_code == 400
    resp = client.get("/api/processos?tribunal=TJSP&inicio=2024-02-01&fim=2024-01-01", headers=USER)
    assert resp.status_code == 400


def test_processos_search(client, gateway):
    resp = client.get("/api/processos?tribunal=tjsp&limit=500&inicio=2024-01-01&fim=2024-03-31", headers=USER)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["total"] == 1
    params = gateway.search_params[0]
    assert params.tribunal == "TJSP"
    assert params.limit == 100
    assert params.periodo.fim == date(2024, 3, 31)


def test_processo_detail(client):
    assert client.get("/api/processos/123", headers=USER).status_code == 400
    assert client.get("/api/processos/00000020000000000000", headers=USER).status_code == 404
    resp = client.get("/api/processos/0000001-73.2023.8.26.0100", headers=USER)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["tribunal"]["sigla"] == "TJSP"


def test_jurimetrics_route(client, gateway):
    resp = client.get("/api/jurimetrics?tribunal=TJSP&inicio=2023-01-01&fim=2023-12-31", headers=USER)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["total_processos"] == 7
    assert client.get("/api/jurimetrics?tribunal=TJSP", headers=USER).status_code == 400

    gateway.fail_jurimetrics = True
    resp = client.get("/api/jurimetrics?tribunal=TJSP&inicio=2023-01-01&fim=2023-12-31", headers=USER)
    assert resp.status_code == 503
    assert resp.get_json()["error"]["code"] == "PROVIDER_UNAVAILABLE"


def test_jurimetrics_health_and_tribunais(client):
    data = client.get("/api/jurimetrics/health").get_json()["data"]
    assert data["status"] == "healthy"
    assert data["providers"]["datajud"]["latency_ms"] == 12
    data = client.get("/api/jurimetrics/tribunais").get_json()["data"]
    assert data["total"] == 1 and data["tribunais"][0]["sigla"] == "TJSP"


def test_tribunal_detail(client):
    resp = client.get("/api/jurimetrics/tribunais/tjsp")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["uf"] == "SP"
    assert client.get("/api/jurimetrics/tribunais/TJXX").status_code == 404


def test_legal_data_search(client, gateway):
    assert client.get("/api/legal-data/search", headers=USER).status_code == 400
    resp = client.get("/api/legal-data/search?tribunal=TJSP&inicio=2024-02-01", headers=USER)
    assert resp.status_code == 400

    resp = client.get(
        "/api/legal-data/search?termo=dano%20moral&tribunal=tjsp&inicio=2024-01-01&fim=2024-06-30"
        "&jurimetrics=false&limit=500",
        headers=USER,
    )
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["processos"][0]["id"] == "p1"
    assert data["jurimetrics"] is None
    params = gateway.search_params[-1]
    assert params.termo == "dano moral"
    assert params.tribunal == "TJSP"
    assert params.limit == 100
    assert params.incluir_processos and params.incluir_jurisprudencia
    assert not params.incluir_jurimetrics
    assert params.periodo.inicio == date(2024, 1, 1)


# ------------------------------ relatórios ------------------------------

def test_report_lifecycle(client):
    CreditService().add_credits("u1", 10)
    resp = client.post("/api/reports", headers=USER,
                       json={"type": "JURIMETRICS", "title": "TJSP", "parameters": {"tribunal": "TJSP"}})
    assert resp.status_code == 201
    report_id = resp.get_json()["data"]["report"]["id"]

    resp = client.post(f"/api/reports/{report_id}/generate", headers=USER)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["report"]["status"] == "COMPLETED"
    assert CreditService().get_balance("u1") == 5

    assert client.post(f"/api/reports/{report_id}/generate", headers=USER).status_code == 409
    listed = client.get("/api/reports", headers=USER).get_json()["data"]["reports"]
    assert [r["id"] for r in listed] == [report_id]

    assert client.delete(f"/api/reports/{report_id}", headers=USER).status_code == 200
    assert client.get(f"/api/reports/{report_id}", headers=USER).status_code == 404


def test_report_generation_failure_refunds(client, gateway):
    CreditService().add_credits("u1", 10)
    report_id = client.post("/api/reports", headers=USER,
                            json={"type": "JURIMETRICS", "title": "x"}).get_json()["data"]["report"]["id"]
    gateway.fail_jurimetrics = True
    resp = client.post(f"/api/reports/{report_id}/generate", headers=USER)
    assert resp.status_code == 502
    assert resp.get_json()["error"]["code"] == "REPORT_GENERATION_FAILED"
    assert CreditService().get_balance("u1") == 10


def test_unknown_route_is_json_404(client):
    resp = client.get("/api/nada")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "NOT_FOUND"
