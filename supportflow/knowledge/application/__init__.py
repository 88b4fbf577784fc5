"""
Knowledge Application Layer
===========================

Application layer for the knowledge library module.

Contains:
- Services: Business logic orchestration
- DTOs: Data transfer objects for API serialization
- Repository Interfaces: Abstractions implemented by the infrastructure layer
"""

from supportflow.knowledge.application.dto import (
    ReindexRequest,
    UploadResponse,
    DocumentInfo,
    DocumentListResponse,
    OkResponse,
    WorkerJobInfo,
    WorkerRunResponse,
    KnowledgeStatsResponse,
)
from supportflow.knowledge.application.services import (
    IngestionService,
    RetrievalService,
    KnowledgeLibraryService,
    KnowledgeWorker,
    WorkerRun,
    WorkerJobOutcome,
    IDocumentRepository,
    IChunkStore,
    IJobQueue,
    IEmbeddingGateway,
    ITextExtractor,
)

__all__ = [
    # DTOs
    "ReindexRequest",
    "UploadResponse",
    "DocumentInfo",
    "DocumentListResponse",
    "OkResponse",
    "WorkerJobInfo",
    "WorkerRunResponse",
    "KnowledgeStatsResponse",
    # Services
    "IngestionService",
    "RetrievalService",
    "KnowledgeLibraryService",
    "KnowledgeWorker",
    "WorkerRun",
    "WorkerJobOutcome",
    # Repository Interfaces
    "IDocumentRepository",
    "IChunkStore",
    "IJobQueue",
    "IEmbeddingGateway",
    "ITextExtractor",
]
