"""
Knowledge Infrastructure Repositories
=====================================

SQLAlchemy implementations of the knowledge repositories.

Each method opens its own short transaction from the session factory,
so a status write is committed by the time the call returns.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportflow.config import JobStatus, settings
from supportflow.knowledge.application import IDocumentRepository, IChunkStore, IJobQueue
from supportflow.knowledge.domain import (
    Chunk, Document, IngestJob, ScoredChunk, TenantScope, cosine_similarity
)
from supportflow.knowledge.infrastructure.models import DocumentModel, ChunkModel, IngestJobModel
from supportflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Claim retries when another worker wins the compare-and-set
CLAIM_ATTEMPTS = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _document(model: DocumentModel) -> Document:
    return Document(
        id=model.id,
        tenant_id=model.tenant_id,
        category=model.category,
        title=model.title,
        source=model.source,
        mime_type=model.mime_type,
        status=model.status,
        chunk_count=model.chunk_count,
        last_error=model.last_error,
        created_at=_as_utc(model.created_at),
        updated_at=_as_utc(model.updated_at),
    )


def _job(model: IngestJobModel) -> IngestJob:
    return IngestJob(
        id=model.id,
        document_id=model.document_id,
        status=model.status,
        attempts=model.attempts,
        last_error=model.last_error,
        created_at=_as_utc(model.created_at),
        updated_at=_as_utc(model.updated_at),
    )


def scope_filter(column, scope: TenantScope):
    """Mandatory tenant filter: own rows plus platform rows, or platform only."""
    if scope.is_platform:
        return column.is_(None)
    return or_(column == scope.tenant_id, column.is_(None))


class SQLAlchemyDocumentRepository(IDocumentRepository):
    """SQLAlchemy implementation for knowledge documents."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, document: Document) -> Document:
        model = DocumentModel(
            id=document.id,
            tenant_id=document.tenant_id,
            category=document.category,
            title=document.title,
            source=document.source,
            mime_type=document.mime_type,
            status=document.status,
            chunk_count=document.chunk_count,
            last_error=document.last_error,
            created_at=document.created_at,
        )
        async with self._session_factory() as session, session.begin():
            session.add(model)
        return document

    async def get(self, document_id: str) -> Optional[Document]:
        async with self._session_factory() as session:
            model = await session.get(DocumentModel, document_id)
            return _document(model) if model else None

    async def list_by_tenant_and_category(
        self,
        tenant_id: Optional[str],
        category: Optional[str] = None,
        all_tenants: bool = False
    ) -> List[Document]:
        stmt = select(DocumentModel).order_by(DocumentModel.created_at.desc())
        if not all_tenants:
            if tenant_id is None:
                stmt = stmt.where(DocumentModel.tenant_id.is_(None))
            else:
                stmt = stmt.where(DocumentModel.tenant_id == tenant_id)
        if category:
            stmt = stmt.where(DocumentModel.category == category)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_document(m) for m in result.scalars().all()]

    async def update_status(
        self,
        document_id: str,
        status: str,
        chunk_count: Optional[int] = None,
        last_error: Optional[str] = None
    ) -> None:
        values = {"status": status, "last_error": last_error, "updated_at": _now()}
        if chunk_count is not None:
            values["chunk_count"] = chunk_count

        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(DocumentModel).where(DocumentModel.id == document_id).values(**values)
            )

    async def delete(self, document_id: str) -> bool:
        async with self._session_factory() as session, session.begin():
            # Explicit child deletes keep backends without FK enforcement consistent
            await session.execute(delete(ChunkModel).where(ChunkModel.document_id == document_id))
            await session.execute(delete(IngestJobModel).where(IngestJobModel.document_id == document_id))
            result = await session.execute(delete(DocumentModel).where(DocumentModel.id == document_id))
            return result.rowcount > 0

    async def count_by_status(self, tenant_id: Optional[str], all_tenants: bool = False) -> Dict[str, int]:
        stmt = select(DocumentModel.status, func.count()).group_by(DocumentModel.status)
        if not all_tenants:
            if tenant_id is None:
                stmt = stmt.where(DocumentModel.tenant_id.is_(None))
            else:
                stmt = stmt.where(DocumentModel.tenant_id == tenant_id)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return {status: count for status, count in result.all()}


class SQLAlchemyChunkStore(IChunkStore):
    """
    Chunk store with an in-process cosine scan.

    Suited to modest libraries; large deployments use the Milvus backend.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def delete_all_for_document(self, document_id: str) -> int:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(delete(ChunkModel).where(ChunkModel.document_id == document_id))
            return result.rowcount or 0

    async def insert_many(self, chunks: List[Chunk]) -> int:
        if not chunks:
            return 0
        async with self._session_factory() as session, session.begin():
            session.add_all([
                ChunkModel(
                    id=c.id,
                    document_id=c.document_id,
                    tenant_id=c.tenant_id,
                    category=c.category,
                    chunk_index=c.chunk_index,
                    content=c.content,
                    embedding=list(c.embedding),
                )
                for c in chunks
            ])
        return len(chunks)

    async def search_by_similarity(
        self,
        scope: TenantScope,
        query_vector: List[float],
        threshold: float,
        limit: int
    ) -> List[ScoredChunk]:
        stmt = select(
            ChunkModel.id, ChunkModel.document_id, ChunkModel.content, ChunkModel.embedding
        ).where(scope_filter(ChunkModel.tenant_id, scope))

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        scored = []
        for chunk_id, document_id, content, embedding in rows:
            score = cosine_similarity(query_vector, embedding)
            if score >= threshold:
                scored.append(ScoredChunk(chunk_id, document_id, content, score))

        scored.sort(key=lambda c: c.score, reverse=True)
        return scored[:limit]

    async def count(self, tenant_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(ChunkModel)
        if tenant_id is not None:
            stmt = stmt.where(ChunkModel.tenant_id == tenant_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())


class SQLAlchemyJobQueue(IJobQueue):
    """
    Ingest job queue on a relational table.

    Claiming is a compare-and-set UPDATE guarded by status = 'pending';
    the rowcount decides which caller won.
    A partial unique index keeps one open job per document, so enqueue
    for an already queued document is a no-op.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stale_after_seconds: int = settings.job_stale_after_seconds
    ):
        self._session_factory = session_factory
        self._stale_after = timedelta(seconds=stale_after_seconds)

    async def enqueue(self, document_id: str, claimed: bool = False) -> Optional[IngestJob]:
        now = _now()
        try:
            async with self._session_factory() as session, session.begin():
                existing = (await session.execute(
                    select(IngestJobModel)
                    .where(
                        IngestJobModel.document_id == document_id,
                        IngestJobModel.status.in_((JobStatus.PENDING, JobStatus.PROCESSING))
                    )
                    .limit(1)
                )).scalar_one_or_none()

                if existing is not None:
                    if not claimed or existing.status != JobStatus.PENDING:
                        logger.info(
                            "Ingest job already open for document",
                            extra={"document_id": document_id, "job_id": existing.id, "status": existing.status}
                        )
                        return None
                    # Take over the pending job instead of opening a second one
                    result = await session.execute(
                        update(IngestJobModel)
                        .where(IngestJobModel.id == existing.id, IngestJobModel.status == JobStatus.PENDING)
                        .values(
                            status=JobStatus.PROCESSING,
                            attempts=IngestJobModel.attempts + 1,
                            updated_at=now
                        )
                    )
                    if result.rowcount != 1:
                        return None
                    model = await session.get(IngestJobModel, existing.id, populate_existing=True)
                    return _job(model)

                model = IngestJobModel(
                    id=str(uuid.uuid4()),
                    document_id=document_id,
                    status=JobStatus.PROCESSING if claimed else JobStatus.PENDING,
                    attempts=1 if claimed else 0,
                    created_at=now,
                    updated_at=now,
                )
                session.add(model)
        except IntegrityError:
            # Only the open-job index is expected here; anything else (e.g. a missing document) propagates
            if not await self._has_open_job(document_id):
                raise
            logger.info("Ingest job opened concurrently", extra={"document_id": document_id})
            return None
        return _job(model)

    async def _has_open_job(self, document_id: str) -> bool:
        async with self._session_factory() as session:
            found = (await session.execute(
                select(IngestJobModel.id)
                .where(
                    IngestJobModel.document_id == document_id,
                    IngestJobModel.status.in_((JobStatus.PENDING, JobStatus.PROCESSING))
                )
                .limit(1)
            )).scalar_one_or_none()
        return found is not None

    async def _reset_stale(self) -> int:
        cutoff = _now() - self._stale_after
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(IngestJobModel)
                .where(IngestJobModel.status == JobStatus.PROCESSING, IngestJobModel.updated_at < cutoff)
                .values(status=JobStatus.PENDING, last_error="Reclaimed after stale lease", updated_at=_now())
            )
            reclaimed = result.rowcount or 0

        if reclaimed:
            logger.warning("Reclaimed stale ingest jobs", extra={"count": reclaimed})
        return reclaimed

    async def claim_one(self) -> Optional[IngestJob]:
        await self._reset_stale()

        for _ in range(CLAIM_ATTEMPTS):
            async with self._session_factory() as session, session.begin():
                candidate = (await session.execute(
                    select(IngestJobModel.id)
                    .where(IngestJobModel.status == JobStatus.PENDING)
                    .order_by(IngestJobModel.created_at)
                    .limit(1)
                )).scalar_one_or_none()
                if candidate is None:
                    return None

                result = await session.execute(
                    update(IngestJobModel)
                    .where(IngestJobModel.id == candidate, IngestJobModel.status == JobStatus.PENDING)
                    .values(
                        status=JobStatus.PROCESSING,
                        attempts=IngestJobModel.attempts + 1,
                        updated_at=_now()
                    )
                )
                if result.rowcount == 1:
                    model = await session.get(IngestJobModel, candidate, populate_existing=True)
                    return _job(model)

        return None

    async def _finish(self, job_id: str, status: str, message: Optional[str]) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(IngestJobModel)
                .where(IngestJobModel.id == job_id)
                .values(status=status, last_error=message, updated_at=_now())
            )

    async def mark_done(self, job_id: str) -> None:
        await self._finish(job_id, JobStatus.DONE, None)

    async def mark_error(self, job_id: str, message: str) -> None:
        await self._finish(job_id, JobStatus.ERROR, message)
