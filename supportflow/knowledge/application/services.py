"""
Knowledge Application Services
==============================

Application services for the knowledge library.

- IngestionService: pending -> processing -> ready | error
- RetrievalService: embed query, scoped similarity search, tier selection
- KnowledgeLibraryService: upload / list / delete / reindex use cases
- KnowledgeWorker: drains a bounded batch of ingest jobs per invocation
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Dict, List, Optional, Tuple

from supportflow.config import (
    DocumentCategory, DocumentStatus, JobStatus, DOCUMENT_CATEGORIES, settings
)
from supportflow.core import (
    ExtractionException,
    ForbiddenException,
    ResourceNotFoundException,
    ValidationException,
)
from supportflow.infrastructure.storage import IBlobStore
from supportflow.knowledge.domain import (
    Chunk,
    Document,
    IngestJob,
    RetrievalResult,
    ScoredChunk,
    TenantScope,
    chunk_text,
    resolve_mime_type,
    select_context,
)
from supportflow.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 2000


# ========== Repository Interfaces ==========

class IDocumentRepository(ABC):
    """Interface for document metadata storage."""

    @abstractmethod
    async def create(self, document: Document) -> Document:
        """Insert a new document row."""

    @abstractmethod
    async def get(self, document_id: str) -> Optional[Document]:
        """Load a document, or None if absent."""

    @abstractmethod
    async def list_by_tenant_and_category(
        self,
        tenant_id: Optional[str],
        category: Optional[str] = None,
        all_tenants: bool = False
    ) -> List[Document]:
        """List newest first. tenant_id None means platform documents unless all_tenants."""

    @abstractmethod
    async def update_status(
        self,
        document_id: str,
        status: str,
        chunk_count: Optional[int] = None,
        last_error: Optional[str] = None
    ) -> None:
        """Persist a status transition; last_error is always written (None clears it)."""

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        """Delete the row; chunks and jobs cascade."""

    @abstractmethod
    async def count_by_status(self, tenant_id: Optional[str], all_tenants: bool = False) -> Dict[str, int]:
        """Document counts keyed by status."""


class IChunkStore(ABC):
    """Interface for chunk + vector storage and similarity search."""

    @abstractmethod
    async def delete_all_for_document(self, document_id: str) -> int:
        """Remove every chunk of a document."""

    @abstractmethod
    async def insert_many(self, chunks: List[Chunk]) -> int:
        """Persist chunks with their embeddings."""

    @abstractmethod
    async def search_by_similarity(
        self,
        scope: TenantScope,
        query_vector: List[float],
        threshold: float,
        limit: int
    ) -> List[ScoredChunk]:
        """Candidates within scope scoring >= threshold, best first."""

    @abstractmethod
    async def count(self, tenant_id: Optional[str] = None) -> int:
        """Chunks owned by tenant_id (every chunk when None)."""


class IJobQueue(ABC):
    """Interface for the ingest job queue."""

    @abstractmethod
    async def enqueue(self, document_id: str, claimed: bool = False) -> Optional[IngestJob]:
        """
        Open a job for a document; claimed=True hands it to the caller already processing.

        A document has at most one open (pending or processing) job. When one
        exists this returns None, except that claimed=True takes over a
        pending job and returns it.
        """

    @abstractmethod
    async def claim_one(self) -> Optional[IngestJob]:
        """
        Atomically claim the oldest pending job, reclaiming stale ones first.

        At most one caller can receive a given job.
        """

    @abstractmethod
    async def mark_done(self, job_id: str) -> None:
        """Terminal success."""

    @abstractmethod
    async def mark_error(self, job_id: str, message: str) -> None:
        """Terminal failure with message."""


class IEmbeddingGateway(ABC):
    """Turns text into a fixed-dimension vector."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed text; raises EmbeddingException rather than returning a zero vector."""


class ITextExtractor(ABC):
    """Format-specific plain-text extraction."""

    @abstractmethod
    async def extract(self, data: bytes, mime_type: str, filename: str = "") -> str:
        """Return the plain text of the file; raises ExtractionException."""


# ========== Application Services ==========

class IngestionService:
    """
    Runs one document through extract, chunk, embed and persist.

    Every call that gets past the NotFound check ends with the document
    in ready or error; failures are recorded and re-raised.
    """

    def __init__(
        self,
        documents: IDocumentRepository,
        chunks: IChunkStore,
        blobs: IBlobStore,
        embedder: IEmbeddingGateway,
        extractor: ITextExtractor,
        chunk_size: int = settings.chunk_size,
        chunk_overlap: int = settings.chunk_overlap
    ):
        self._documents = documents
        self._chunks = chunks
        self._blobs = blobs
        self._embedder = embedder
        self._extractor = extractor
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap

    async def ingest(self, document_id: str, raw_bytes: Optional[bytes] = None) -> Document:
        """
        Ingest a document.

        Args:
            document_id: Document to (re)process
            raw_bytes: Freshly uploaded bytes; fetched from the blob store when None

        Returns:
            The document as persisted in ready status

        Raises:
            ResourceNotFoundException: If the document does not exist
            ExtractionException / ProviderException: After recording status error
        """
        document = await self._documents.get(document_id)
        if document is None:
            raise ResourceNotFoundException("Document", document_id)

        await self._documents.update_status(document_id, DocumentStatus.PROCESSING)

        try:
            with log_latency(logger, "ingest_document", document_id=document_id):
                chunk_count = await self._run(document, raw_bytes)
        except Exception as e:
            message = str(e)[:MAX_ERROR_LENGTH] or type(e).__name__
            try:
                await self._documents.update_status(
                    document_id, DocumentStatus.ERROR, last_error=message
                )
            except Exception:
                # The ingestion error below is the one callers must see
                logger.exception(
                    "Failed to record document error status",
                    extra={"document_id": document_id}
                )
            logger.error(
                "Document ingestion failed",
                extra={
                    "document_id": document_id,
                    "error_type": type(e).__name__,
                    "error_message": message,
                }
            )
            raise

        await self._documents.update_status(
            document_id, DocumentStatus.READY, chunk_count=chunk_count, last_error=None
        )
        logger.info(
            "Document ingested",
            extra={"document_id": document_id, "chunk_count": chunk_count}
        )

        document.status = DocumentStatus.READY
        document.chunk_count = chunk_count
        document.last_error = None
        return document

    async def _run(self, document: Document, raw_bytes: Optional[bytes]) -> int:
        data = raw_bytes if raw_bytes is not None else await self._blobs.download(document.storage_path)

        text = await self._extractor.extract(data, document.mime_type, document.source)
        if not text or not text.strip():
            raise ExtractionException(
                "No text could be extracted from document",
                {"document_id": document.id, "mime_type": document.mime_type}
            )

        await self._chunks.delete_all_for_document(document.id)

        count = 0
        for index, piece in enumerate(chunk_text(text, self._chunk_size, self._chunk_overlap)):
            vector = await self._embedder.embed(piece)
            await self._chunks.insert_many([
                Chunk(
                    id=str(uuid.uuid4()),
                    document_id=document.id,
                    tenant_id=document.tenant_id,
                    category=document.category,
                    chunk_index=index,
                    content=piece,
                    embedding=vector,
                )
            ])
            count += 1
        return count


class RetrievalService:
    """
    Finds grounding knowledge for a query.

    Candidates are fetched at or above the medium threshold and then
    bucketed into HIGH / MEDIUM / LOW by select_context.
    """

    def __init__(
        self,
        embedder: IEmbeddingGateway,
        chunks: IChunkStore,
        candidate_count: int = settings.retrieval_candidate_count
    ):
        self._embedder = embedder
        self._chunks = chunks
        self._candidate_count = candidate_count

    async def retrieve(
        self,
        scope: TenantScope,
        query_text: str,
        high_threshold: float = 0.6,
        medium_threshold: float = 0.4,
        limit: int = settings.retrieval_top_k
    ) -> RetrievalResult:
        if high_threshold <= medium_threshold:
            raise ValidationException("high_threshold must be greater than medium_threshold")
        if not query_text.strip():
            return RetrievalResult.empty()

        vector = await self._embedder.embed(query_text)
        candidates = await self._chunks.search_by_similarity(
            scope, vector, medium_threshold, self._candidate_count
        )
        result = select_context(candidates, high_threshold, medium_threshold, limit)

        logger.info(
            "Knowledge retrieved",
            extra={
                "tenant_id": scope.tenant_id,
                "candidates": len(candidates),
                "selected": len(result.selected),
                "tier": result.tier,
                "top_similarity": result.top_similarity,
            }
        )
        return result


@dataclass
class WorkerJobOutcome:
    job_id: str
    document_id: str
    status: str
    error: Optional[str] = None


@dataclass
class WorkerRun:
    outcomes: List[WorkerJobOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.outcomes)


class KnowledgeWorker:
    """
    One worker invocation: claim up to max_jobs jobs and ingest each.

    Meant to be triggered repeatedly by a scheduler; it never loops forever.
    """

    def __init__(
        self,
        jobs: IJobQueue,
        ingestion: IngestionService,
        max_jobs: int = settings.worker_max_jobs_per_run
    ):
        self._jobs = jobs
        self._ingestion = ingestion
        self._max_jobs = max_jobs

    async def run_once(self, max_jobs: Optional[int] = None) -> WorkerRun:
        run = WorkerRun()
        for _ in range(max_jobs or self._max_jobs):
            job = await self._jobs.claim_one()
            if job is None:
                break
            run.outcomes.append(await self._process(job))

        logger.info("Worker run finished", extra={"processed": run.processed})
        return run

    async def _process(self, job: IngestJob) -> WorkerJobOutcome:
        try:
            await self._ingestion.ingest(job.document_id)
        except Exception as e:
            message = str(e)[:MAX_ERROR_LENGTH] or type(e).__name__
            await self._jobs.mark_error(job.id, message)
            logger.error(
                "Ingest job failed",
                extra={"job_id": job.id, "document_id": job.document_id, "error_message": message}
            )
            return WorkerJobOutcome(job.id, job.document_id, JobStatus.ERROR, message)

        await self._jobs.mark_done(job.id)
        return WorkerJobOutcome(job.id, job.document_id, JobStatus.DONE)


class KnowledgeLibraryService:
    """
    Upload, list, delete and reindex use cases with ownership checks.

    Clients act on their own tenant only and never touch platform documents.
    """

    def __init__(
        self,
        documents: IDocumentRepository,
        chunks: IChunkStore,
        blobs: IBlobStore,
        jobs: IJobQueue,
        ingestion: IngestionService,
        inline_ingestion: bool = settings.inline_ingestion,
        max_upload_bytes: int = settings.max_upload_bytes
    ):
        self._documents = documents
        self._chunks = chunks
        self._blobs = blobs
        self._jobs = jobs
        self._ingestion = ingestion
        self._inline = inline_ingestion
        self._max_upload_bytes = max_upload_bytes

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    async def upload(
        self,
        *,
        is_admin: bool,
        tenant_id: Optional[str],
        category: str,
        filename: str,
        content_type: Optional[str],
        data: bytes,
        title: Optional[str] = None
    ) -> Tuple[Document, bool]:
        """
        Store a new document and queue it for ingestion.

        Blob failure rolls back the document row; a failed enqueue is logged
        and left for a manual reindex.
        """
        if category not in DOCUMENT_CATEGORIES:
            raise ValidationException("type must be policy | training | platform")
        if not filename:
            raise ValidationException("No file provided.")
        if not data:
            raise ValidationException("Uploaded file is empty")
        # Callers may hand over only the first max + 1 bytes, so the exact size is not reported
        if len(data) > self._max_upload_bytes:
            raise ValidationException(
                "Uploaded file is too large",
                {"max_bytes": self._max_upload_bytes}
            )
        if category == DocumentCategory.PLATFORM and not is_admin:
            raise ForbiddenException("Only admins can upload platform documents")

        mime_type = resolve_mime_type(filename, content_type)
        if mime_type is None:
            raise ValidationException(
                "Unsupported file type",
                {"filename": filename, "content_type": content_type}
            )

        source = PurePath(filename).name
        owner = None if category == DocumentCategory.PLATFORM else tenant_id
        if owner is None and category != DocumentCategory.PLATFORM and not is_admin:
            raise ForbiddenException("Client session has no tenant")

        document = await self._documents.create(Document(
            id=str(uuid.uuid4()),
            tenant_id=owner,
            category=category,
            title=(title or "").strip() or PurePath(source).stem,
            source=source,
            mime_type=mime_type,
        ))

        try:
            await self._blobs.upload(document.storage_path, data, mime_type)
        except Exception:
            await self._documents.delete(document.id)
            logger.error(
                "Blob upload failed, document rolled back",
                extra={"document_id": document.id, "path": document.storage_path}
            )
            raise

        logger.info(
            "Document uploaded",
            extra={
                "document_id": document.id,
                "tenant_id": owner,
                "category": category,
                "path": document.storage_path,
            }
        )

        return await self._queue(document, data)

    async def _queue(self, document: Document, data: Optional[bytes]) -> Tuple[Document, bool]:
        """
        Enqueue (or run inline) the ingestion of a document.

        Returns the document and whether a job is queued for it.
        """
        try:
            job = await self._jobs.enqueue(document.id, claimed=self._inline)
        except Exception as e:
            logger.error(
                "Failed to create ingest job; document can be reindexed manually",
                extra={"document_id": document.id, "error_message": str(e)}
            )
            return document, False

        # No job back means one is already open; its owner does the ingestion
        if job is None or not self._inline:
            return document, True

        try:
            ingested = await self._ingestion.ingest(document.id, data)
        except Exception as e:
            # Document already carries status error; report it through the result
            message = str(e)[:MAX_ERROR_LENGTH] or type(e).__name__
            await self._jobs.mark_error(job.id, message)
            document.status = DocumentStatus.ERROR
            document.last_error = message
            return document, True
        await self._jobs.mark_done(job.id)
        return ingested, True

    async def list_documents(
        self,
        *,
        is_admin: bool,
        tenant_id: Optional[str],
        category: Optional[str] = None
    ) -> List[Document]:
        """
        List library documents.

        Admins see every tenant (or one tenant when tenant_id is given);
        clients see their own documents and never platform ones.
        """
        if category is not None and category not in DOCUMENT_CATEGORIES:
            raise ValidationException("type must be policy | training | platform")

        if is_admin:
            if category == DocumentCategory.PLATFORM:
                return await self._documents.list_by_tenant_and_category(None, category)
            return await self._documents.list_by_tenant_and_category(
                tenant_id, category, all_tenants=tenant_id is None
            )

        if category == DocumentCategory.PLATFORM or not tenant_id:
            return []
        return await self._documents.list_by_tenant_and_category(tenant_id, category)

    async def _owned(self, document_id: str, is_admin: bool, tenant_id: Optional[str]) -> Document:
        document = await self._documents.get(document_id)
        if document is None:
            raise ResourceNotFoundException("Document", document_id)
        if is_admin:
            return document
        if document.category == DocumentCategory.PLATFORM or document.is_platform:
            raise ForbiddenException("Forbidden")
        if document.tenant_id != tenant_id:
            raise ForbiddenException("Forbidden")
        return document

    async def delete(self, document_id: str, *, is_admin: bool, tenant_id: Optional[str]) -> None:
        """Remove blob, chunks and the document row (jobs cascade)."""
        document = await self._owned(document_id, is_admin, tenant_id)

        await self._blobs.remove(document.storage_path)
        await self._chunks.delete_all_for_document(document.id)
        await self._documents.delete(document.id)

        logger.info("Document deleted", extra={"document_id": document.id})

    async def reindex(
        self,
        document_id: str,
        *,
        is_admin: bool,
        tenant_id: Optional[str]
    ) -> Tuple[Document, bool]:
        """Reset the document to pending and queue it again."""
        document = await self._owned(document_id, is_admin, tenant_id)

        await self._documents.update_status(
            document.id, DocumentStatus.PENDING, chunk_count=document.chunk_count
        )
        document.status = DocumentStatus.PENDING
        document.last_error = None

        logger.info("Document queued for reindex", extra={"document_id": document.id})
        return await self._queue(document, None)

    async def stats(self, *, is_admin: bool, tenant_id: Optional[str]) -> dict:
        """Counts per status plus total chunks, scoped like list_documents."""
        all_tenants = is_admin and tenant_id is None
        by_status = await self._documents.count_by_status(tenant_id, all_tenants=all_tenants)
        return {
            "documents_total": sum(by_status.values()),
            "documents_by_status": by_status,
            "chunks_total": await self._chunks.count(None if all_tenants else tenant_id),
        }
