"""
Application Container
=====================

Explicit construction of every service from settings. The container is
built once during startup and stored on ``app.state.container``;
controllers read services from it through FastAPI dependencies.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportflow.config import Settings, settings
from supportflow.infrastructure.llm import ILLMClient
from supportflow.infrastructure.storage import IBlobStore, create_blob_store
from supportflow.infrastructure.vectorstore import MilvusVectorStore
from supportflow.knowledge.application import (
    IChunkStore,
    IngestionService,
    KnowledgeLibraryService,
    KnowledgeWorker,
    RetrievalService,
)
from supportflow.knowledge.infrastructure import (
    DocumentTextExtractor,
    LLMEmbeddingGateway,
    MilvusChunkStore,
    SQLAlchemyChunkStore,
    SQLAlchemyDocumentRepository,
    SQLAlchemyJobQueue,
)
from supportflow.shared.infrastructure.grafana import GrafanaOTLPExporter
from supportflow.support.application import (
    AgentConfigService,
    SupportAgentService,
    SupportStatsService,
)
from supportflow.support.infrastructure import (
    LLMChatCompletionAdapter,
    PolicyConfigManager,
    SQLAlchemyAgentConfigStore,
    SQLAlchemySupportEventSink,
)


@dataclass
class Container:
    """
    Services shared by all requests.

    Services that need the LLM client are None when it is unavailable;
    their routes then answer 503.
    """
    agent_configs: AgentConfigService
    support_stats: SupportStatsService
    policy_manager: PolicyConfigManager
    blob_store: IBlobStore
    chunk_store: IChunkStore
    llm_client: Optional[ILLMClient] = None
    vector_store: Optional[MilvusVectorStore] = None
    library: Optional[KnowledgeLibraryService] = None
    worker: Optional[KnowledgeWorker] = None
    retrieval: Optional[RetrievalService] = None
    agent: Optional[SupportAgentService] = None


def build_container(
    session_factory: async_sessionmaker[AsyncSession],
    policy_manager: PolicyConfigManager,
    llm_client: Optional[ILLMClient] = None,
    vector_store: Optional[MilvusVectorStore] = None,
    exporter: Optional[GrafanaOTLPExporter] = None,
    blob_store: Optional[IBlobStore] = None,
    config: Settings = settings
) -> Container:
    """
    Wire repositories, adapters and services.

    Args:
        session_factory: Session factory from init_database()
        policy_manager: Loaded routing policy manager
        llm_client: Chat-completion and embedding client, if configured
        vector_store: Initialized Milvus store when vector_backend is milvus
        exporter: Grafana exporter for routing metrics
        blob_store: Raw file store; built from config when omitted
        config: Settings to read tuning values from
    """
    documents = SQLAlchemyDocumentRepository(session_factory)
    jobs = SQLAlchemyJobQueue(session_factory, config.job_stale_after_seconds)
    chunks: IChunkStore = (
        MilvusChunkStore(vector_store) if vector_store is not None
        else SQLAlchemyChunkStore(session_factory)
    )
    blobs = blob_store or create_blob_store(config)
    config_store = SQLAlchemyAgentConfigStore(session_factory)
    events = SQLAlchemySupportEventSink(session_factory)

    container = Container(
        agent_configs=AgentConfigService(config_store),
        support_stats=SupportStatsService(events),
        policy_manager=policy_manager,
        blob_store=blobs,
        chunk_store=chunks,
        llm_client=llm_client,
        vector_store=vector_store,
    )
    if llm_client is None:
        return container

    embedder = LLMEmbeddingGateway(llm_client)
    ingestion = IngestionService(
        documents, chunks, blobs, embedder, DocumentTextExtractor(),
        chunk_size=config.chunk_size,
        chunk_overlap=config.chunk_overlap,
    )
    container.retrieval = RetrievalService(embedder, chunks, config.retrieval_candidate_count)
    container.library = KnowledgeLibraryService(
        documents, chunks, blobs, jobs, ingestion,
        inline_ingestion=config.inline_ingestion,
        max_upload_bytes=config.max_upload_bytes,
    )
    container.worker = KnowledgeWorker(jobs, ingestion, config.worker_max_jobs_per_run)
    container.agent = SupportAgentService(
        config_store,
        events,
        container.retrieval,
        LLMChatCompletionAdapter(llm_client, config.llm_temperature),
        policy_provider=policy_manager.current,
        exporter=exporter,
        max_tokens=config.llm_max_tokens,
    )
    return container
