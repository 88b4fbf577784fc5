"""
Knowledge Infrastructure Layer
==============================

Infrastructure implementations for the knowledge library module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Document store, SQL chunk store, job queue
- External: Embedding gateway, text extractor, Milvus chunk store
- Scheduler: In-process worker trigger
"""

from supportflow.knowledge.infrastructure.models import DocumentModel, ChunkModel, IngestJobModel
from supportflow.knowledge.infrastructure.repositories import (
    SQLAlchemyDocumentRepository,
    SQLAlchemyChunkStore,
    SQLAlchemyJobQueue,
)
from supportflow.knowledge.infrastructure.external import (
    LLMEmbeddingGateway,
    DocumentTextExtractor,
    MilvusChunkStore,
)
from supportflow.knowledge.infrastructure.scheduler import WorkerScheduler

__all__ = [
    "DocumentModel",
    "ChunkModel",
    "IngestJobModel",
    "SQLAlchemyDocumentRepository",
    "SQLAlchemyChunkStore",
    "SQLAlchemyJobQueue",
    "LLMEmbeddingGateway",
    "DocumentTextExtractor",
    "MilvusChunkStore",
    "WorkerScheduler",
]
