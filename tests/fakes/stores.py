"""In-memory implementations of the application-layer interfaces for testing."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from supportflow.config import JobStatus
from supportflow.core import EmbeddingException, ExtractionException, ResourceNotFoundException
from supportflow.infrastructure.storage import IBlobStore
from supportflow.knowledge.application import (
    IChunkStore,
    IDocumentRepository,
    IEmbeddingGateway,
    IJobQueue,
    ITextExtractor,
)
from supportflow.knowledge.domain import (
    Chunk,
    Document,
    IngestJob,
    ScoredChunk,
    TenantScope,
    cosine_similarity,
)
from supportflow.support.application import (
    IAgentConfigStore,
    IChatCompletionClient,
    ISupportEventSink,
)
from supportflow.support.domain import AgentConfig, SupportEvent


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Knowledge fakes

class InMemoryDocumentRepository(IDocumentRepository):
    """Document rows in a dict; keeps a history of status writes."""

    def __init__(self):
        self.documents: Dict[str, Document] = {}
        self.status_history: Dict[str, List[str]] = {}
        # Status whose write raises, to simulate a lost database connection
        self.fail_status: Optional[str] = None

    async def create(self, document: Document) -> Document:
        self.documents[document.id] = document
        self.status_history.setdefault(document.id, []).append(document.status)
        return document

    async def get(self, document_id: str) -> Optional[Document]:
        stored = self.documents.get(document_id)
        if stored is None:
            return None
        # Return a copy so callers cannot mutate the stored row
        return Document(**vars(stored))

    async def list_by_tenant_and_category(
        self,
        tenant_id: Optional[str],
        category: Optional[str] = None,
        all_tenants: bool = False
    ) -> List[Document]:
        docs = [
            d for d in self.documents.values()
            if (all_tenants or d.tenant_id == tenant_id)
            and (category is None or d.category == category)
        ]
        return sorted(docs, key=lambda d: d.created_at, reverse=True)

    async def update_status(
        self,
        document_id: str,
        status: str,
        chunk_count: Optional[int] = None,
        last_error: Optional[str] = None
    ) -> None:
        if status == self.fail_status:
            raise RuntimeError("database unavailable")
        document = self.documents.get(document_id)
        if document is None:
            return
        document.status = status
        document.last_error = last_error
        if chunk_count is not None:
            document.chunk_count = chunk_count
        document.updated_at = _now()
        self.status_history.setdefault(document_id, []).append(status)

    async def delete(self, document_id: str) -> bool:
        return self.documents.pop(document_id, None) is not None

    async def count_by_status(self, tenant_id: Optional[str], all_tenants: bool = False) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for d in self.documents.values():
            if all_tenants or d.tenant_id == tenant_id:
                counts[d.status] = counts.get(d.status, 0) + 1
        return counts


class InMemoryChunkStore(IChunkStore):
    """Chunks in a list; search is a real cosine scan honouring the tenant scope."""

    def __init__(self):
        self.chunks: List[Chunk] = []
        self.searches: List[TenantScope] = []

    async def delete_all_for_document(self, document_id: str) -> int:
        before = len(self.chunks)
        self.chunks = [c for c in self.chunks if c.document_id != document_id]
        return before - len(self.chunks)

    async def insert_many(self, chunks: List[Chunk]) -> int:
        self.chunks.extend(chunks)
        return len(chunks)

    async def search_by_similarity(
        self,
        scope: TenantScope,
        query_vector: List[float],
        threshold: float,
        limit: int
    ) -> List[ScoredChunk]:
        self.searches.append(scope)
        scored = []
        for chunk in self.chunks:
            if not scope.includes(chunk.tenant_id):
                continue
            score = cosine_similarity(query_vector, chunk.embedding)
            if score >= threshold:
                scored.append(ScoredChunk(chunk.id, chunk.document_id, chunk.content, score))
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored[:limit]

    async def count(self, tenant_id: Optional[str] = None) -> int:
        if tenant_id is None:
            return len(self.chunks)
        return len([c for c in self.chunks if c.tenant_id == tenant_id])

    def add(self, document_id: str, tenant_id: Optional[str], content: str, embedding: List[float]) -> Chunk:
        chunk = Chunk(
            id=str(uuid.uuid4()),
            document_id=document_id,
            tenant_id=tenant_id,
            category="policy",
            chunk_index=len(self.chunks),
            content=content,
            embedding=embedding,
        )
        self.chunks.append(chunk)
        return chunk


class InMemoryJobQueue(IJobQueue):
    """
    Job queue whose claim is atomic under an asyncio.Lock, with at most one
    open job per document.

    The yield inside the lock lets concurrent claimers interleave, so a
    missing lock would show up as a double claim.
    """

    def __init__(self, stale_after_seconds: int = 600):
        self.jobs: Dict[str, IngestJob] = {}
        self._lock = asyncio.Lock()
        self._stale_after = timedelta(seconds=stale_after_seconds)

    async def enqueue(self, document_id: str, claimed: bool = False) -> Optional[IngestJob]:
        async with self._lock:
            open_job = next(
                (j for j in self.jobs.values()
                 if j.document_id == document_id and j.status in (JobStatus.PENDING, JobStatus.PROCESSING)),
                None
            )
            if open_job is not None:
                if not claimed or open_job.status != JobStatus.PENDING:
                    return None
                open_job.status = JobStatus.PROCESSING
                open_job.attempts += 1
                open_job.updated_at = _now()
                return IngestJob(**vars(open_job))

            now = _now()
            job = IngestJob(
                id=str(uuid.uuid4()),
                document_id=document_id,
                status=JobStatus.PROCESSING if claimed else JobStatus.PENDING,
                attempts=1 if claimed else 0,
                created_at=now,
                updated_at=now,
            )
            self.jobs[job.id] = job
            return job

    async def claim_one(self) -> Optional[IngestJob]:
        async with self._lock:
            cutoff = _now() - self._stale_after
            for job in self.jobs.values():
                if job.status == JobStatus.PROCESSING and job.updated_at < cutoff:
                    job.status = JobStatus.PENDING
                    job.last_error = "Reclaimed after stale lease"

            pending = sorted(
                (j for j in self.jobs.values() if j.status == JobStatus.PENDING),
                key=lambda j: j.created_at
            )
            if not pending:
                return None
            await asyncio.sleep(0)
            job = pending[0]
            job.status = JobStatus.PROCESSING
            job.attempts += 1
            job.updated_at = _now()
            return IngestJob(**vars(job))

    async def mark_done(self, job_id: str) -> None:
        self.jobs[job_id].status = JobStatus.DONE
        self.jobs[job_id].last_error = None

    async def mark_error(self, job_id: str, message: str) -> None:
        self.jobs[job_id].status = JobStatus.ERROR
        self.jobs[job_id].last_error = message


class FailingJobQueue(InMemoryJobQueue):
    async def enqueue(self, document_id: str, claimed: bool = False) -> Optional[IngestJob]:
        raise RuntimeError("queue unavailable")


class InMemoryBlobStore(IBlobStore):
    def __init__(self, fail_uploads: bool = False):
        self.objects: Dict[str, bytes] = {}
        self.fail_uploads = fail_uploads

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if self.fail_uploads:
            raise RuntimeError("blob store down")
        self.objects[path] = data
        return path

    async def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise ResourceNotFoundException("Blob", path)
        return self.objects[path]

    async def remove(self, path: str) -> None:
        self.objects.pop(path, None)


class FakeEmbedder(IEmbeddingGateway):
    """Returns a fixed vector per text, or the default vector."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, default: Optional[List[float]] = None):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.calls: List[str] = []
        self.fail_on: Optional[str] = None

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail_on is not None and self.fail_on in text:
            raise EmbeddingException("rate limited")
        return list(self.vectors.get(text, self.default))


class FakeExtractor(ITextExtractor):
    """Decodes bytes as UTF-8; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail

    async def extract(self, data: bytes, mime_type: str, filename: str = "") -> str:
        if self.fail:
            raise ExtractionException("Corrupt file")
        return data.decode("utf-8")


# Support fakes

class InMemoryAgentConfigStore(IAgentConfigStore):
    def __init__(self, configs: Optional[Dict[str, AgentConfig]] = None):
        self.configs: Dict[str, AgentConfig] = dict(configs or {})

    async def get(self, tenant_id: str) -> Optional[AgentConfig]:
        return self.configs.get(tenant_id)

    async def put(self, tenant_id: str, config: AgentConfig) -> AgentConfig:
        self.configs[tenant_id] = config
        return config


class InMemorySupportEventSink(ISupportEventSink):
    def __init__(self, fail: bool = False):
        self.events: List[SupportEvent] = []
        self.fail = fail

    async def append(self, event: SupportEvent) -> None:
        if self.fail:
            raise RuntimeError("event store down")
        self.events.append(event)

    async def stats(self, tenant_id: Optional[str]) -> Dict:
        events = [e for e in self.events if tenant_id is None or e.tenant_id == tenant_id]
        outcomes: Dict[str, int] = {}
        for e in events:
            outcomes[e.outcome] = outcomes.get(e.outcome, 0) + 1
        confidences = [e.confidence for e in events if e.confidence is not None]
        return {
            "events_total": len(events),
            "outcomes": outcomes,
            "average_confidence": sum(confidences) / len(confidences) if confidences else None,
            "average_latency_ms": sum(e.latency_ms for e in events) / len(events) if events else None,
        }


class FakeChatClient(IChatCompletionClient):
    """Returns a canned raw completion and records the prompts it saw."""

    def __init__(self, raw: Optional[str] = None, model: str = "fake-model", error: Optional[Exception] = None):
        self.raw = raw
        self.model = model
        self.error = error
        self.calls: List[Tuple[str, str, int]] = []

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> Tuple[Optional[str], str]:
        self.calls.append((system_prompt, user_prompt, max_tokens))
        if self.error is not None:
            raise self.error
        return self.raw, self.model
