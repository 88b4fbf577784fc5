"""Shared fixtures for the supportflow test suite."""

import json
import os

# Settings are read at import time; pin a development setup without tokens
os.environ.setdefault("ENVIRONMENT", "development")
os.environ["ADMIN_TOKEN"] = ""
os.environ["CLIENT_TOKEN"] = ""
os.environ["CRON_SECRET"] = ""
os.environ.setdefault("GRAFANA_HOST", "")

import pytest

from supportflow.knowledge.application import (
    IngestionService,
    KnowledgeLibraryService,
    KnowledgeWorker,
    RetrievalService,
)
from supportflow.support.application import SupportAgentService
from supportflow.support.domain import AgentConfig, Customer, Ticket
from tests.fakes import (
    FakeChatClient,
    FakeEmbedder,
    FakeExtractor,
    InMemoryAgentConfigStore,
    InMemoryBlobStore,
    InMemoryChunkStore,
    InMemoryDocumentRepository,
    InMemoryJobQueue,
    InMemorySupportEventSink,
)

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


def model_output(
    status: str = "DRAFT_OK",
    confidence: float = 0.5,
    subject: str = "Re: Waar blijft mijn pakket?",
    body: str = "Beste Sara,\n\nUw pakket is onderweg.",
    actions=None,
    reasons=None,
) -> str:
    """Raw model text in the shape the drafting prompt asks for."""
    return json.dumps({
        "status": status,
        "confidence": confidence,
        "draft": {"subject": subject, "body": body},
        "actions": actions if actions is not None else [],
        "reasons": reasons if reasons is not None else ["order status known"],
    })


def make_ticket(
    subject: str = "Waar blijft mijn pakket?",
    body: str = "Ik heb vorige week besteld en nog niets ontvangen.",
    tenant_id: str = TENANT,
    **kwargs
) -> Ticket:
    return Ticket(tenant_id=tenant_id, subject=subject, body=body, **kwargs)


@pytest.fixture
def documents():
    return InMemoryDocumentRepository()


@pytest.fixture
def chunks():
    return InMemoryChunkStore()


@pytest.fixture
def blobs():
    return InMemoryBlobStore()


@pytest.fixture
def jobs():
    return InMemoryJobQueue()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def ingestion(documents, chunks, blobs, embedder, extractor):
    return IngestionService(documents, chunks, blobs, embedder, extractor, chunk_size=1000, chunk_overlap=200)


@pytest.fixture
def retrieval(embedder, chunks):
    return RetrievalService(embedder, chunks, candidate_count=20)


@pytest.fixture
def library(documents, chunks, blobs, jobs, ingestion):
    return KnowledgeLibraryService(
        documents, chunks, blobs, jobs, ingestion,
        inline_ingestion=False, max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def worker(jobs, ingestion):
    return KnowledgeWorker(jobs, ingestion, max_jobs=2)


@pytest.fixture
def config_store():
    return InMemoryAgentConfigStore({TENANT: AgentConfig(company_name="Acme")})


@pytest.fixture
def events():
    return InMemorySupportEventSink()


@pytest.fixture
def chat():
    return FakeChatClient(raw=model_output())


@pytest.fixture
def agent(config_store, events, retrieval, chat):
    return SupportAgentService(config_store, events, retrieval, chat, max_tokens=600)


@pytest.fixture
def ticket():
    return make_ticket(
        sender="Sara Janssen <sara@example.com>",
        customer=Customer(email="sara@example.com"),
    )
