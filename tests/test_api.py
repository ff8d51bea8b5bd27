"""
Integration tests for the HTTP API.
"""
import inspect
import uuid
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import app.api as api_module
import services.analysis_service as analysis_module
from app.api import app
from core.exceptions import ResponseParseError
from core.schema import ClassifierOutput

CSV_UPLOAD = ("extrato.csv", b"DATA,DESCRICAO,VALOR\n2024-05-01,NETFLIX.COM,-55.90\n", "text/csv")


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def classifier(monkeypatch, make_item):
    state = {"error": None}

    def fake_classify(text):
        if state["error"]:
            raise state["error"]
        return ClassifierOutput(
            items=[
                make_item(name="Netflix", amount=55.90, category="Streaming"),
                make_item(name="Spotify", amount=11.90, category="Streaming"),
                make_item(name="SmartFit", amount=129.90, category="Fitness"),
            ],
            insights=["Você tem 3 assinaturas ativas."],
        )

    monkeypatch.setattr(analysis_module, "classify_statement", fake_classify)
    return state


@pytest.fixture
def session_headers(client):
    response = client.post("/session/login", json={"email": f"{uuid.uuid4().hex[:8]}@example.com"})
    assert response.status_code == 200
    return {"X-Session-Id": response.json()["sessionId"]}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_login(client):
    response = client.post("/session/login", json={"email": "Ana@Example.com"})

    body = response.json()
    assert body["email"] == "ana@example.com"
    assert body["state"] == "authenticated_with_credits"
    assert body["credits"] == 1


def test_login_rejects_bad_email(client):
    assert client.post("/session/login", json={"email": "not-an-email"}).status_code == 422


def test_analyze_requires_session(client, classifier):
    response = client.post("/analyze", data={"use_sample": "true"})
    assert response.status_code == 401


def test_analyze_requires_login(client, session_headers, classifier):
    client.post("/session/logout", headers=session_headers)

    response = client.post("/analyze", data={"use_sample": "true"}, headers=session_headers)
    assert response.status_code == 401


def test_analyze_upload(client, session_headers, classifier):
    response = client.post("/analyze", files={"file": CSV_UPLOAD}, headers=session_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["subscriptionCount"] == 3
    assert body["totalMonthly"] == 197.70
    assert body["totalYearly"] == 2372.40
    assert body["categoryBreakdown"] == [
        {"category": "Streaming", "amount": 67.80},
        {"category": "Fitness", "amount": 129.90},
    ]
    assert body["id"]
    assert body["createdAt"]

    state = client.get("/session", headers=session_headers).json()
    assert state["credits"] == 0
    assert state["state"] == "authenticated_no_credits"


def test_paywall_and_purchase(client, session_headers, classifier):
    assert client.post("/analyze", data={"use_sample": "true"}, headers=session_headers).status_code == 200

    blocked = client.post("/analyze", data={"use_sample": "true"}, headers=session_headers)
    assert blocked.status_code == 402

    checkout = client.post("/pay/create", headers=session_headers).json()
    assert checkout["billingId"]
    assert checkout["url"]

    check = client.post("/pay/check", json={"billingId": checkout["billingId"]}, headers=session_headers)
    assert check.json() == {"paid": True, "credits": 3}

    assert client.post("/analyze", data={"use_sample": "true"}, headers=session_headers).status_code == 200


def test_unsupported_upload(client, session_headers, classifier):
    response = client.post(
        "/analyze",
        files={"file": ("foto.png", b"\x89PNG", "image/png")},
        headers=session_headers,
    )

    assert response.status_code == 415
    assert response.json()["error"] == "UnsupportedFormatError"
    assert client.get("/session", headers=session_headers).json()["credits"] == 1


def test_missing_input(client, session_headers, classifier):
    assert client.post("/analyze", headers=session_headers).status_code == 400


def test_classifier_failure_is_user_facing(client, session_headers, classifier):
    classifier["error"] = ResponseParseError("Classifier response has no 'items' list")

    response = client.post("/analyze", data={"use_sample": "true"}, headers=session_headers)

    assert response.status_code == 502
    assert response.json()["error"] == "ResponseParseError"
    assert "IA" in response.json()["detail"]
    assert client.get("/session", headers=session_headers).json()["credits"] == 1
    assert client.get("/history", headers=session_headers).json()["records"] == []


def test_blank_text_is_not_an_error(client, session_headers, classifier):
    response = client.post("/analyze", data={"text": "   "}, headers=session_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["subscriptionCount"] == 0
    assert len(body["insights"]) == 1


def test_history_and_export(client, session_headers, classifier):
    analysis = client.post("/analyze", data={"use_sample": "true"}, headers=session_headers).json()

    history = client.get("/history", headers=session_headers).json()
    assert [r["id"] for r in history["records"]] == [analysis["id"]]
    assert history["trend"][0]["totalMonthly"] == analysis["totalMonthly"]

    export = client.get(f"/history/{analysis['id']}/export", headers=session_headers)
    assert export.status_code == 200
    assert export.content[:2] == b"PK"

    assert client.get("/history/unknown/export", headers=session_headers).status_code == 404

    assert client.delete("/history", headers=session_headers).status_code == 200
    assert client.get("/history", headers=session_headers).json()["records"] == []


def test_simulate(client):
    items = [
        {"name": "Netflix", "amount": 100, "frequency": "monthly", "category": "Streaming", "confidence": 1},
        {"name": "Domain", "amount": 120, "frequency": "yearly", "category": "Software", "confidence": 1},
    ]

    response = client.post("/simulate", json={"items": items, "active": [False, True]})

    assert response.status_code == 200
    body = response.json()
    assert body["totalMonthly"] == 10.0
    assert body["totalYearly"] == 120.0
    assert body["activeCount"] == 1
    assert body["savings"] == {"monthly": 100.0, "yearly": 1200.0}


def test_simulate_flag_mismatch(client):
    items = [{"name": "Netflix", "amount": 100, "frequency": "monthly", "category": "Streaming", "confidence": 1}]

    response = client.post("/simulate", json={"items": items, "active": []})
    assert response.status_code == 422


def test_export_file_is_removed_after_download(client, session_headers, classifier):
    analysis = client.post("/analyze", data={"use_sample": "true"}, headers=session_headers).json()

    export = client.get(f"/history/{analysis['id']}/export", headers=session_headers)

    assert export.status_code == 200
    assert list(Path(api_module.settings.temp_storage_path).glob("quantoda_report_*.xlsx")) == []


@pytest.mark.parametrize("endpoint", [
    "create_payment",
    "check_payment",
    "get_history",
    "clear_history",
    "export_history_record",
])
def test_blocking_routes_run_in_thread_pool(endpoint):
    """Routes doing network or disk I/O are sync so FastAPI runs them off the event loop."""
    assert not inspect.iscoroutinefunction(getattr(api_module, endpoint))
