from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from fakes import build_orchestrator

from src.app.dependencies import get_auth_context, get_knowledge_retriever, get_orchestrator
from src.app.main import app
from src.ingestion.pipeline import IngestionPipeline
from src.orchestrator.intents import Role
from src.orchestrator.state import AuthContext
from src.services.errors import LLMRequestFailed
from src.services.rag import KnowledgeRetriever
from src.services.rate_limiter import RateLimiter


class FailingReplyGenerator:
    def generate(self, system_prompt, history):
        raise LLMRequestFailed("Gemini request failed: secret upstream detail")


@pytest.fixture()
def knowledge_dir(tmp_path: Path) -> Path:
    (tmp_path / "faq.md").write_text(
        "# FAQ\n\n## Payments\nPayments are settled in LKR after the driver records the weight.\n",
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture()
def make_client(knowledge_dir):
    def factory(**kwargs):
        orchestrator, llm = build_orchestrator(knowledge_dir, **kwargs)
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        return TestClient(app), llm

    try:
        yield factory
    finally:
        app.dependency_overrides.clear()


def _payload(content: str, **extra):
    return {"messages": [{"role": "user", "content": content}], **extra}


def test_chat_returns_camel_case_response(make_client):
    client, llm = make_client()

    response = client.post(
        "/api/v1/chat",
        json=_payload(
            "How are payments settled?",
            currentRoute="/users/dashboard",
            pageContext={"url": "https://trash2cash.lk/users/dashboard", "title": "Dashboard"},
        ),
    )
    data = response.json()

    assert response.status_code == 200
    assert data["reply"] == "Stub assistant reply."
    assert data["mode"] == "knowledge"
    assert data["responseLanguage"] == "EN"
    assert data["sources"] == ["faq.md > Payments"]
    assert data["toolCalls"] == []
    assert "bookingDraft" not in data
    assert "- Title: Dashboard" in llm.calls[0]["system_prompt"]
    assert "- Current route: /users/dashboard" in llm.calls[0]["system_prompt"]


def test_guest_gets_no_role_routes(make_client):
    client, _ = make_client()

    data = client.post("/api/v1/chat", json=_payload("Tell me about payments", currentRoute="/login")).json()

    assert data["suggestedActions"] == []


def test_customer_without_specific_intent_gets_role_routes(make_client):
    client, _ = make_client(auth=AuthContext(is_authenticated=True, user_id="cust-1", role=Role.CUSTOMER))

    data = client.post(
        "/api/v1/chat", json=_payload("Tell me about payments", currentRoute="/users/dashboard")
    ).json()

    hrefs = [action["href"] for action in data["suggestedActions"]]
    assert hrefs == ["/users/bookings/new", "/users/bookings", "/users/rewards"]


def test_explicit_language_preference(make_client):
    client, llm = make_client()

    data = client.post("/api/v1/chat", json=_payload("How are payments settled?", preferredLanguage="TA")).json()

    assert data["responseLanguage"] == "TA"
    assert "Primary response language: Tamil (TA)." in llm.calls[0]["system_prompt"]


def test_booking_ready_response_includes_draft(make_client):
    client, _ = make_client(auth=AuthContext(is_authenticated=True, user_id="cust-1", role=Role.CUSTOMER))
    for message in (
        "Book a metal pickup tomorrow, phone 0712345678, postal code 80000",
        "15 Lake Drive",
        "Kandy",
        "evening",
    ):
        assert client.post("/api/v1/chat", json=_payload(message)).status_code == 200

    data = client.post("/api/v1/chat", json=_payload("skip")).json()

    assert data["bookingDraft"]["city"] == "Kandy"
    assert data["bookingDraft"]["locationPicked"] is False
    assert data["suggestedActions"] == [{"label": "Open booking form", "href": "/users/bookings/new"}]


def test_rate_limited_requests_get_429_with_retry_after(make_client):
    client, _ = make_client(limiter=RateLimiter(max_requests=1, window_seconds=30))
    client.post("/api/v1/chat", json=_payload("How are payments settled?"))

    response = client.post("/api/v1/chat", json=_payload("How are payments settled?"))

    assert response.status_code == 429
    assert 1 <= int(response.headers["Retry-After"]) <= 30


def test_model_failure_returns_502_without_details(make_client):
    client, _ = make_client(llm=FailingReplyGenerator())

    response = client.post("/api/v1/chat", json=_payload("How are payments settled?"))

    assert response.status_code == 502
    assert "secret upstream detail" not in response.text


def test_invalid_payloads_are_rejected(make_client):
    client, _ = make_client()

    assert client.post("/api/v1/chat", json={"messages": []}).status_code == 422
    assert client.post("/api/v1/chat", json=_payload("x" * 2001)).status_code == 422
    assert client.post("/api/v1/chat", json=_payload("hi", preferredLanguage="FR")).status_code == 422


def test_only_assistant_messages_is_a_bad_request(make_client):
    client, _ = make_client()

    response = client.post("/api/v1/chat", json={"messages": [{"role": "assistant", "content": "Hello"}]})

    assert response.status_code == 400


def test_health_endpoint(make_client):
    client, _ = make_client()

    assert client.get("/health").json()["status"] == "ok"


@pytest.fixture()
def reload_client(knowledge_dir):
    retriever = KnowledgeRetriever(IngestionPipeline(knowledge_dir))
    app.dependency_overrides[get_knowledge_retriever] = lambda: retriever

    def as_role(auth: AuthContext) -> TestClient:
        app.dependency_overrides[get_auth_context] = lambda: auth
        return TestClient(app)

    try:
        yield as_role
    finally:
        app.dependency_overrides.clear()


def test_admin_can_reload_knowledge(reload_client):
    client = reload_client(AuthContext(is_authenticated=True, user_id="adm-1", role=Role.ADMIN))

    response = client.post("/api/v1/knowledge/reload")

    assert response.status_code == 200
    assert response.json() == {"files": 1, "chunks": 1}


def test_non_admin_reload_is_forbidden(reload_client):
    customer = reload_client(AuthContext(is_authenticated=True, user_id="cust-1", role=Role.CUSTOMER))
    response = customer.post("/api/v1/knowledge/reload")
    assert response.status_code == 403
    assert response.json() == {"detail": "Admin access required"}


def test_guest_reload_requires_authentication(reload_client):
    guest = reload_client(AuthContext.guest())
    response = guest.post("/api/v1/knowledge/reload")
    assert response.status_code == 401
    assert response.json() == {"detail": "Not authenticated"}
