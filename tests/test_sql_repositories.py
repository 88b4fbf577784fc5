"""
Tests for the SQLAlchemy repositories on a throwaway SQLite database.

Concurrent claims and workers run on separate pooled connections, so the
compare-and-set claim and the open-job index are exercised for real.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from supportflow.config import DocumentStatus, EventOutcome, JobStatus
from supportflow.infrastructure.database import (
    close_database,
    create_tables,
    get_session_factory,
    init_database,
    ping_database,
)
from supportflow.knowledge.application import IngestionService, KnowledgeLibraryService, KnowledgeWorker
from supportflow.knowledge.domain import Chunk, Document, TenantScope
from supportflow.knowledge.infrastructure import (
    IngestJobModel,
    SQLAlchemyChunkStore,
    SQLAlchemyDocumentRepository,
    SQLAlchemyJobQueue,
)
from supportflow.support.domain import AgentConfig, SupportEvent
from supportflow.support.infrastructure import (
    AgentConfigModel,
    SQLAlchemyAgentConfigStore,
    SQLAlchemySupportEventSink,
)
from tests.conftest import OTHER_TENANT, TENANT
from tests.fakes import FakeEmbedder, FakeExtractor, InMemoryBlobStore


@pytest.fixture
async def session_factory(tmp_path):
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'supportflow.db'}")
    await create_tables()
    yield get_session_factory()
    await close_database()


def new_document(tenant_id=TENANT, category="policy"):
    return Document(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        category=category,
        title="Retourbeleid",
        source="retour.txt",
        mime_type="text/plain",
    )


def new_chunk(document, vector, index=0):
    return Chunk(
        id=str(uuid.uuid4()),
        document_id=document.id,
        tenant_id=document.tenant_id,
        category=document.category,
        chunk_index=index,
        content=f"chunk {index} of {document.id}",
        embedding=vector,
    )


async def test_ping(session_factory):
    assert await ping_database() is True


class TestDocumentRepository:
    async def test_create_get_update(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        document = await repo.create(new_document())

        await repo.update_status(document.id, DocumentStatus.READY, chunk_count=4)
        stored = await repo.get(document.id)

        assert stored.status == DocumentStatus.READY
        assert stored.chunk_count == 4
        assert stored.updated_at is not None
        assert stored.created_at.tzinfo is not None

    async def test_list_and_count_are_scoped(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        own = await repo.create(new_document())
        await repo.create(new_document(tenant_id=OTHER_TENANT))
        platform = await repo.create(new_document(tenant_id=None, category="platform"))

        assert [d.id for d in await repo.list_by_tenant_and_category(TENANT)] == [own.id]
        assert [d.id for d in await repo.list_by_tenant_and_category(None, "platform")] == [platform.id]
        assert len(await repo.list_by_tenant_and_category(None, all_tenants=True)) == 3
        assert await repo.count_by_status(TENANT) == {DocumentStatus.PENDING: 1}
        assert await repo.count_by_status(None, all_tenants=True) == {DocumentStatus.PENDING: 3}

    async def test_delete_removes_children(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        chunks = SQLAlchemyChunkStore(session_factory)
        jobs = SQLAlchemyJobQueue(session_factory)
        document = await repo.create(new_document())
        await chunks.insert_many([new_chunk(document, [1.0, 0.0])])
        await jobs.enqueue(document.id)

        assert await repo.delete(document.id) is True

        assert await repo.get(document.id) is None
        assert await chunks.count() == 0
        assert await jobs.claim_one() is None
        assert await repo.delete(document.id) is False


class TestChunkStore:
    async def test_search_honours_scope_and_threshold(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        store = SQLAlchemyChunkStore(session_factory)
        own = await repo.create(new_document())
        other = await repo.create(new_document(tenant_id=OTHER_TENANT))
        platform = await repo.create(new_document(tenant_id=None, category="platform"))
        await store.insert_many([
            new_chunk(own, [1.0, 0.0]),
            new_chunk(own, [0.0, 1.0], index=1),
            new_chunk(other, [1.0, 0.0]),
            new_chunk(platform, [0.8, 0.6]),
        ])

        results = await store.search_by_similarity(TenantScope.for_tenant(TENANT), [1.0, 0.0], 0.4, 10)

        assert [r.document_id for r in results] == [own.id, platform.id]
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score == pytest.approx(0.8)

        platform_only = await store.search_by_similarity(TenantScope.platform(), [1.0, 0.0], 0.4, 10)
        assert [r.document_id for r in platform_only] == [platform.id]

    async def test_delete_all_for_document(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        store = SQLAlchemyChunkStore(session_factory)
        document = await repo.create(new_document())
        await store.insert_many([new_chunk(document, [1.0, 0.0], i) for i in range(3)])

        assert await store.delete_all_for_document(document.id) == 3
        assert await store.count(TENANT) == 0


class TestJobQueue:
    async def test_claim_is_exclusive(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        jobs = SQLAlchemyJobQueue(session_factory)
        document = await repo.create(new_document())
        job = await jobs.enqueue(document.id)

        claimed = await jobs.claim_one()

        assert claimed.id == job.id
        assert claimed.status == JobStatus.PROCESSING
        assert claimed.attempts == 1
        assert await jobs.claim_one() is None

    async def test_done_and_error_are_terminal(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        jobs = SQLAlchemyJobQueue(session_factory)
        first = await jobs.enqueue((await repo.create(new_document())).id)
        second = await jobs.enqueue((await repo.create(new_document())).id)

        await jobs.mark_done((await jobs.claim_one()).id)
        await jobs.mark_error((await jobs.claim_one()).id, "boom")

        assert await jobs.claim_one() is None
        async with session_factory() as session:
            done = await session.get(IngestJobModel, first.id)
            failed = await session.get(IngestJobModel, second.id)
        assert done.status == JobStatus.DONE
        assert failed.status == JobStatus.ERROR
        assert failed.last_error == "boom"

    async def test_stale_lease_is_reclaimed(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        jobs = SQLAlchemyJobQueue(session_factory, stale_after_seconds=600)
        job = await jobs.enqueue((await repo.create(new_document())).id, claimed=True)
        assert await jobs.claim_one() is None

        async with session_factory() as session, session.begin():
            await session.execute(
                update(IngestJobModel)
                .where(IngestJobModel.id == job.id)
                .values(updated_at=datetime.now(timezone.utc) - timedelta(hours=1))
            )

        reclaimed = await jobs.claim_one()

        assert reclaimed.id == job.id
        assert reclaimed.attempts == 2
        assert reclaimed.last_error == "Reclaimed after stale lease"

    async def test_concurrent_claims_are_exclusive(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        jobs = SQLAlchemyJobQueue(session_factory)
        for _ in range(3):
            await jobs.enqueue((await repo.create(new_document())).id)

        claimed = await asyncio.gather(*(jobs.claim_one() for _ in range(5)))

        taken = [job for job in claimed if job is not None]
        assert len(taken) == 3
        assert len({job.id for job in taken}) == 3
        assert all(job.attempts == 1 for job in taken)

    async def test_one_open_job_per_document(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        jobs = SQLAlchemyJobQueue(session_factory)
        document = await repo.create(new_document())

        first = await jobs.enqueue(document.id)
        assert await jobs.enqueue(document.id) is None

        taken = await jobs.enqueue(document.id, claimed=True)
        assert taken.id == first.id
        assert taken.status == JobStatus.PROCESSING
        assert await jobs.enqueue(document.id, claimed=True) is None

        await jobs.mark_done(taken.id)
        again = await jobs.enqueue(document.id)
        assert again.id != first.id

    async def test_concurrent_enqueues_open_one_job(self, session_factory):
        repo = SQLAlchemyDocumentRepository(session_factory)
        jobs = SQLAlchemyJobQueue(session_factory)
        document = await repo.create(new_document())

        results = await asyncio.gather(*(jobs.enqueue(document.id) for _ in range(4)))

        assert len([job for job in results if job is not None]) == 1
        async with session_factory() as session:
            count = (await session.execute(
                select(func.count()).select_from(IngestJobModel)
                .where(IngestJobModel.document_id == document.id)
            )).scalar_one()
        assert count == 1

    async def test_enqueue_for_missing_document_raises(self, session_factory):
        jobs = SQLAlchemyJobQueue(session_factory)

        with pytest.raises(IntegrityError):
            await jobs.enqueue("missing")


class TestIngestPipeline:
    async def test_reindex_before_worker_run_ingests_once(self, session_factory):
        documents = SQLAlchemyDocumentRepository(session_factory)
        chunks = SQLAlchemyChunkStore(session_factory)
        jobs = SQLAlchemyJobQueue(session_factory)
        blobs = InMemoryBlobStore()
        ingestion = IngestionService(
            documents, chunks, blobs, FakeEmbedder(), FakeExtractor(), chunk_size=1000, chunk_overlap=200
        )
        library = KnowledgeLibraryService(
            documents, chunks, blobs, jobs, ingestion,
            inline_ingestion=False, max_upload_bytes=1024 * 1024,
        )
        document, _ = await library.upload(
            is_admin=False,
            tenant_id=TENANT,
            category="policy",
            filename="retour.txt",
            content_type="text/plain",
            data=b"a" * 2500,
        )
        _, queued = await library.reindex(document.id, is_admin=False, tenant_id=TENANT)
        assert queued is True

        workers = [KnowledgeWorker(jobs, ingestion, max_jobs=1) for _ in range(2)]
        runs = await asyncio.gather(*(w.run_once() for w in workers))

        assert sum(run.processed for run in runs) == 1
        stored = await documents.get(document.id)
        assert stored.status == DocumentStatus.READY
        assert stored.chunk_count == 3
        assert await chunks.count(TENANT) == 3


class TestAgentConfigStore:
    async def test_upsert(self, session_factory):
        store = SQLAlchemyAgentConfigStore(session_factory)
        assert await store.get(TENANT) is None

        await store.put(TENANT, AgentConfig(company_name="Acme"))
        await store.put(TENANT, AgentConfig(company_name="Acme BV", tone="formal"))

        config = await store.get(TENANT)
        assert config.company_name == "Acme BV"
        assert config.tone == "formal"

    async def test_legacy_rows_are_migrated_on_read(self, session_factory):
        async with session_factory() as session, session.begin():
            session.add(AgentConfigModel(
                tenant_id=TENANT,
                config={"companyName": "Oud", "rules": {"allowDiscount": True, "maxDiscountAmount": 5}},
                schema_version=1,
                updated_at=datetime.now(timezone.utc),
            ))

        config = await SQLAlchemyAgentConfigStore(session_factory).get(TENANT)

        assert config.company_name == "Oud"
        assert config.allow_discount is True
        assert config.max_discount_amount == 5.0
        assert config.schema_version == 2


class TestSupportEventSink:
    async def test_stats(self, session_factory):
        sink = SQLAlchemySupportEventSink(session_factory)
        for outcome, confidence, latency, tenant in [
            (EventOutcome.AUTO, 0.8, 100, TENANT),
            (EventOutcome.HUMAN_REVIEW, 0.4, 300, TENANT),
            (EventOutcome.ERROR, None, 50, TENANT),
            (EventOutcome.AUTO, 0.9, 10, OTHER_TENANT),
        ]:
            await sink.append(SupportEvent(
                tenant_id=tenant,
                request_id=str(uuid.uuid4()),
                source="api",
                subject="Pakket",
                outcome=outcome,
                latency_ms=latency,
                confidence=confidence,
            ))

        stats = await sink.stats(TENANT)

        assert stats["events_total"] == 3
        assert stats["outcomes"] == {
            EventOutcome.AUTO: 1, EventOutcome.HUMAN_REVIEW: 1, EventOutcome.ERROR: 1
        }
        assert stats["average_confidence"] == pytest.approx(0.6)
        assert stats["average_latency_ms"] == pytest.approx(150.0)
        assert (await sink.stats(None))["events_total"] == 4

    async def test_empty(self, session_factory):
        stats = await SQLAlchemySupportEventSink(session_factory).stats(TENANT)
        assert stats == {
            "events_total": 0,
            "outcomes": {},
            "average_confidence": None,
            "average_latency_ms": None,
        }
