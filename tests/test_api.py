"""
API tests against the FastAPI app with an in-memory service container.

The lifespan is not run; each test installs its own container on
app.state so no database, model provider or vector store is needed.
"""

import logging

import pytest
from fastapi.testclient import TestClient

from supportflow.config import settings
from supportflow.container import Container
from supportflow.knowledge.application import KnowledgeLibraryService
from supportflow.main import app
from supportflow.shared.infrastructure.logging import CorrelationIdFilter
from supportflow.support.application import AgentConfigService, SupportStatsService
from supportflow.support.infrastructure import PolicyConfigManager
from tests.conftest import OTHER_TENANT, TENANT, model_output

GENERATE_BODY = {
    "tenantId": TENANT,
    "subject": "Waar blijft mijn pakket?",
    "body": "Ik heb vorige week besteld.",
    "from": "Sara Janssen <sara@example.com>",
    "customer": {"name": "Sara", "email": "sara@example.com", "language": "nl"},
    "order": {"orderId": "A-1001", "productName": "Lamp", "pricePaid": 49.95, "currency": "EUR"},
}


@pytest.fixture
def container(config_store, events, blobs, chunks, library, worker, retrieval, agent):
    return Container(
        agent_configs=AgentConfigService(config_store),
        support_stats=SupportStatsService(events),
        policy_manager=PolicyConfigManager(),
        blob_store=blobs,
        chunk_store=chunks,
        library=library,
        worker=worker,
        retrieval=retrieval,
        agent=agent,
    )


@pytest.fixture
def client(container):
    app.state.container = container
    yield TestClient(app)
    del app.state.container


@pytest.fixture
def client_session(monkeypatch):
    """Configure tokens so that 'client-token' is a client of TENANT."""
    monkeypatch.setattr(settings, "admin_token", "admin-token")
    monkeypatch.setattr(settings, "client_token", "client-token")
    monkeypatch.setattr(settings, "default_client_id", TENANT)
    return {"Authorization": "Bearer client-token"}


class TestGenerate:
    def test_routed_draft(self, client, events):
        response = client.post("/support/generate", json=GENERATE_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["routing"] == "HUMAN_REVIEW"
        assert data["status"] == "DRAFT_OK"
        assert data["confidence"] == pytest.approx(0.5)
        assert data["draft"]["from"] == "sara@example.com"
        assert data["draft"]["body"].endswith("Met vriendelijke groet,")
        assert data["knowledge"] == {"used": False, "topSimilarity": None, "sources": []}
        assert data["retrievalTier"] == "LOW"
        assert data["requestId"] == events.events[0].request_id

    def test_damage_rule(self, client):
        body = dict(GENERATE_BODY, body="De lamp is kapot aangekomen")

        data = client.post("/support/generate", json=body).json()

        assert data["routing"] == "AUTO_REPLY"
        assert data["confidence"] == 0.95
        assert data["draft"]["body"].startswith("Beste Sara,")

    def test_model_failure_returns_error_with_request_id(self, client, chat, events):
        chat.raw = "not json"

        response = client.post("/support/generate", json=GENERATE_BODY)

        assert response.status_code == 500
        data = response.json()
        assert set(data) == {"error", "request_id"}
        assert data["request_id"] == events.events[0].request_id
        assert events.events[0].outcome == "error"

    def test_malformed_actions_fail_and_are_recorded_as_error(self, client, chat, events):
        chat.raw = model_output(actions=["REQUEST_ORDER_ID"], reasons=[{"why": "known"}])

        response = client.post("/support/generate", json=GENERATE_BODY)

        assert response.status_code == 500
        assert set(response.json()) == {"error", "request_id"}
        assert "actions[0] must be object" in response.json()["error"]
        assert [e.outcome for e in events.events] == ["error"]

    def test_unexpected_failure_is_generic(self, client, chat):
        chat.error = RuntimeError("socket closed")

        response = client.post("/support/generate", json=GENERATE_BODY)

        assert response.status_code == 500
        assert response.json()["error"] == "Internal server error"

    def test_unknown_tenant_is_not_found(self, client):
        response = client.post("/support/generate", json=dict(GENERATE_BODY, tenantId="nobody"))

        assert response.status_code == 404
        assert "request_id" in response.json()

    def test_admin_without_tenant(self, client, events):
        body = {k: v for k, v in GENERATE_BODY.items() if k != "tenantId"}

        response = client.post("/support/generate", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required field: tenantId"
        assert events.events == []

    @pytest.mark.parametrize("override", [
        {"subject": " ", "body": ""},
        {"channel": "fax"},
        {"customer": {"language": "de"}},
        {"unexpected": True},
    ])
    def test_invalid_request(self, client, override):
        response = client.post("/support/generate", json=dict(GENERATE_BODY, **override))
        assert response.status_code == 422

    def test_agent_unavailable(self, client, container):
        container.agent = None

        response = client.post("/support/generate", json=GENERATE_BODY)

        assert response.status_code == 503

    def test_client_uses_own_tenant(self, client, client_session, events):
        body = {k: v for k, v in GENERATE_BODY.items() if k != "tenantId"}

        response = client.post("/support/generate", json=body, headers=client_session)

        assert response.status_code == 200
        assert events.events[0].tenant_id == TENANT

    def test_client_cannot_name_other_tenant(self, client, client_session):
        body = dict(GENERATE_BODY, tenantId=OTHER_TENANT)

        response = client.post("/support/generate", json=body, headers=client_session)

        assert response.status_code == 403


class TestAuth:
    def test_missing_token(self, client, client_session):
        assert client.get("/support/stats").status_code == 401

    def test_wrong_token(self, client, client_session):
        response = client.get("/support/stats", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_cookie_token(self, client, client_session):
        client.cookies.set("sf_token", "admin-token")
        assert client.get("/support/stats").status_code == 200


class TestAgentConfig:
    def test_defaults_when_not_stored(self, client):
        data = client.get("/support/agent-config", params={"tenant_id": OTHER_TENANT}).json()

        assert data["stored"] is False
        assert data["tenantId"] == OTHER_TENANT
        assert data["config"]["signature"] == "Met vriendelijke groet,"

    def test_put_and_get(self, client):
        payload = {"companyName": "Acme BV", "tone": "formal", "allowDiscount": True, "maxDiscountAmount": 10}

        put = client.put("/support/agent-config", params={"tenant_id": OTHER_TENANT}, json=payload)
        got = client.get("/support/agent-config", params={"tenant_id": OTHER_TENANT}).json()

        assert put.status_code == 200
        assert got["stored"] is True
        assert got["config"]["company_name"] == "Acme BV"
        assert got["config"]["allow_discount"] is True
        assert got["config"]["schema_version"] == 2

    def test_invalid_tone(self, client):
        response = client.put("/support/agent-config", params={"tenant_id": TENANT}, json={"tone": "rude"})
        assert response.status_code == 422

    def test_admin_needs_tenant(self, client):
        assert client.get("/support/agent-config").status_code == 400


class TestKnowledgeRoutes:
    def test_upload_list_and_worker(self, client):
        upload = client.post(
            "/knowledge/upload",
            files={"file": ("retour.txt", b"Retourneren kan binnen 30 dagen.", "text/plain")},
            data={"type": "policy", "tenant_id": TENANT},
        )
        assert upload.status_code == 200
        document_id = upload.json()["documentId"]
        assert upload.json()["jobQueued"] is True

        worker = client.post("/knowledge/worker")
        assert worker.json()["processed"] == 1
        assert worker.json()["jobs"][0]["status"] == "done"

        listed = client.get("/knowledge/documents", params={"tenant_id": TENANT}).json()["documents"]
        assert [(d["id"], d["status"], d["chunkCount"]) for d in listed] == [(document_id, "ready", 1)]

        stats = client.get("/knowledge/stats").json()
        assert stats["documentsTotal"] == 1
        assert stats["chunksTotal"] == 1

    def test_unsupported_file(self, client):
        response = client.post(
            "/knowledge/upload",
            files={"file": ("deck.pptx", b"binary", "application/vnd.ms-powerpoint")},
            data={"type": "policy", "tenant_id": TENANT},
        )
        assert response.status_code == 400

    def test_oversized_upload_is_rejected_after_limit(self, client, container, documents, chunks, blobs, jobs, ingestion):
        class RecordingLibrary(KnowledgeLibraryService):
            async def upload(self, **kwargs):
                self.received = len(kwargs["data"])
                return await super().upload(**kwargs)

        container.library = RecordingLibrary(
            documents, chunks, blobs, jobs, ingestion, inline_ingestion=False, max_upload_bytes=16
        )

        response = client.post(
            "/knowledge/upload",
            files={"file": ("retour.txt", b"x" * 4096, "text/plain")},
            data={"type": "policy", "tenant_id": TENANT},
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"max_bytes": 16}
        assert container.library.received == 17
        assert documents.documents == {}

    def test_client_cannot_upload_platform(self, client, client_session):
        response = client.post(
            "/knowledge/upload",
            files={"file": ("faq.md", b"# FAQ", "text/markdown")},
            data={"type": "platform"},
            headers=client_session,
        )
        assert response.status_code == 403

    def test_delete_and_reindex_missing(self, client):
        assert client.delete("/knowledge/documents/missing").status_code == 404
        assert client.post("/knowledge/reindex", json={"documentId": "missing"}).status_code == 404

    def test_worker_requires_secret(self, client, monkeypatch):
        monkeypatch.setattr(settings, "cron_secret", "s3cret")

        assert client.post("/knowledge/worker").status_code == 401
        assert client.post("/knowledge/worker", headers={"x-cron-secret": "s3cret"}).status_code == 200
        assert client.get("/knowledge/worker", params={"secret": "s3cret"}).status_code == 200


def test_health_reports_degraded_without_database(client):
    data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["checks"]["database"].startswith("error")
    assert data["checks"]["routing_policy"] == "defaults"


def test_correlation_id_is_echoed(client):
    response = client.get("/", headers={"X-Correlation-ID": "abc-123"})
    assert response.headers["X-Correlation-ID"] == "abc-123"


def test_forged_correlation_id_is_replaced(client):
    response = client.get("/", headers={"X-Correlation-ID": "abc\" injected=1"})
    assert response.headers["X-Correlation-ID"] != "abc\" injected=1"
    assert len(response.headers["X-Correlation-ID"]) == 36


def test_health_reports_request_counts_per_area(client):
    client.get("/knowledge/documents")
    data = client.get("/health").json()

    assert data["requests"]["knowledge"]["requests"] >= 1
    assert "X-Response-Time" in client.get("/").headers


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.INFO)
        self.records = []
        self.addFilter(CorrelationIdFilter())

    def emit(self, record):
        self.records.append(record)


def test_service_records_carry_correlation_id(client):
    service_logger = logging.getLogger("supportflow.knowledge")
    handler = RecordingHandler()
    previous_level = service_logger.level
    service_logger.setLevel(logging.INFO)
    service_logger.addHandler(handler)
    try:
        client.post(
            "/knowledge/upload",
            files={"file": ("retour.txt", b"Retourneren kan binnen 30 dagen.", "text/plain")},
            data={"type": "policy", "tenant_id": TENANT},
            headers={"X-Correlation-ID": "req-upload-1"},
        )
    finally:
        service_logger.removeHandler(handler)
        service_logger.setLevel(previous_level)

    assert handler.records
    assert {record.correlation_id for record in handler.records} == {"req-upload-1"}
