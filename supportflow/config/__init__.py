"""
Configuration Module
====================

Environment-driven settings for the supportflow service, plus the closed
sets of document categories, statuses, routes and event outcomes.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Settings read from the environment or a .env file.

    Backends are picked by name (llm_provider, vector_backend,
    blob_backend); the routing constants live in the policy file.
    """

    # ========== Application ==========
    app_name: str = Field(default="supportflow", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/supportflow",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== LLM Provider ==========
    llm_provider: str = Field(
        default="openai",
        description="Chat-completion and embedding provider (openai | zai)"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    zai_api_key: Optional[str] = Field(default=None, description="Z.AI API key")
    llm_model: str = Field(
        default="gpt-4.1-mini",
        description="Model used for support draft generation"
    )
    llm_temperature: float = Field(
        default=0.3,
        description="Default temperature for LLM",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=600,
        description="Max tokens for a support draft",
        ge=1,
        le=8000
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model for chunks and queries"
    )
    embedding_dimension: int = Field(
        default=1536,
        description="Embedding vector dimension (fixed for the lifetime of the index)",
        ge=8
    )

    # ========== Vector Store ==========
    vector_backend: str = Field(
        default="sql",
        description="Chunk similarity backend (sql = in-process scan, milvus = delegated)"
    )
    zilliz_uri: str = Field(default="", description="Zilliz Cloud / Milvus URI")
    zilliz_api_key: str = Field(default="", description="Zilliz Cloud API key")
    milvus_collection_name: str = Field(
        default="knowledge_chunks",
        description="Milvus collection name"
    )

    # ========== Knowledge Pipeline ==========
    chunk_size: int = Field(
        default=1000,
        description="Character size for document chunks",
        ge=1
    )
    chunk_overlap: int = Field(
        default=200,
        description="Overlap between document chunks",
        ge=0
    )
    retrieval_top_k: int = Field(
        default=5,
        description="Maximum number of chunks selected as context",
        ge=1,
        le=20
    )
    retrieval_candidate_count: int = Field(
        default=10,
        description="Number of candidates fetched from the chunk store",
        ge=1,
        le=100
    )
    inline_ingestion: bool = Field(
        default=False,
        description="Run the ingestion pipeline inside the upload/reindex request"
    )

    # ========== Blob Storage ==========
    blob_backend: str = Field(default="local", description="Raw file storage (local | s3)")
    upload_dir: Path = Field(
        default=Path("uploads"),
        description="Root directory for the local blob store"
    )
    s3_bucket_name: str = Field(default="knowledge-uploads", description="S3 bucket for raw files")
    aws_region: str = Field(default="eu-west-1", description="AWS region for S3")
    max_upload_bytes: int = Field(
        default=20 * 1024 * 1024,
        description="Largest accepted upload",
        ge=1
    )

    # ========== Worker ==========
    worker_max_jobs_per_run: int = Field(
        default=2,
        description="Jobs processed per worker invocation",
        ge=1,
        le=50
    )
    job_stale_after_seconds: int = Field(
        default=600,
        description="A job left in processing longer than this is reclaimed",
        ge=30
    )
    worker_interval_seconds: int = Field(
        default=0,
        description="In-process worker trigger interval (0 = external cron only)",
        ge=0
    )
    cron_secret: Optional[str] = Field(default=None, description="Shared secret for the worker endpoint")

    # ========== Auth ==========
    admin_token: Optional[str] = Field(default=None, description="Bearer token granting admin access")
    client_token: Optional[str] = Field(default=None, description="Bearer token granting client access")
    default_client_id: Optional[str] = Field(
        default=None,
        description="Tenant bound to the client token"
    )

    # ========== Routing Policy ==========
    routing_policy_path: Path = Field(
        default=Path("routing_policy.yaml"),
        description="Path to routing policy YAML file"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-eu-west-2.grafana.net)"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        allowed = {"openai", "zai"}
        if v not in allowed:
            raise ValueError(f"llm_provider must be one of {allowed}")
        return v

    @field_validator("vector_backend")
    @classmethod
    def validate_vector_backend(cls, v: str) -> str:
        allowed = {"sql", "milvus"}
        if v not in allowed:
            raise ValueError(f"vector_backend must be one of {allowed}")
        return v

    @field_validator("blob_backend")
    @classmethod
    def validate_blob_backend(cls, v: str) -> str:
        allowed = {"local", "s3"}
        if v not in allowed:
            raise ValueError(f"blob_backend must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class DocumentCategory(str):
    """Knowledge document categories."""
    POLICY = "policy"
    TRAINING = "training"
    PLATFORM = "platform"


class DocumentStatus(str):
    """Knowledge document lifecycle statuses."""
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class JobStatus(str):
    """Ingest job statuses."""
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class RetrievalTier(str):
    """How well retrieved knowledge matches a query."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class DraftStatus(str):
    """Status values the model may report."""
    DRAFT_OK = "DRAFT_OK"
    NEEDS_HUMAN = "NEEDS_HUMAN"


class ActionType(str):
    """Follow-up actions the model may propose alongside a draft."""
    ASK_CLARIFYING_QUESTION = "ASK_CLARIFYING_QUESTION"
    REQUEST_ORDER_ID = "REQUEST_ORDER_ID"
    OFFER_DISCOUNT = "OFFER_DISCOUNT"
    REQUEST_RETURN = "REQUEST_RETURN"
    ESCALATE_TO_HUMAN = "ESCALATE_TO_HUMAN"


class Route(str):
    """Routing decisions for a support ticket."""
    AUTO = "AUTO"
    HUMAN_REVIEW = "HUMAN_REVIEW"
    AUTO_REPLY = "AUTO_REPLY"


class EventOutcome(str):
    """Outcome tags recorded on support events."""
    AUTO = "auto"
    AUTO_REPLY = "auto_reply"
    HUMAN_REVIEW = "human_review"
    ERROR = "error"


class UserRole(str):
    """Session roles."""
    ADMIN = "admin"
    CLIENT = "client"


# ========== Lists for validation ==========

DOCUMENT_CATEGORIES = [
    DocumentCategory.POLICY, DocumentCategory.TRAINING, DocumentCategory.PLATFORM
]
DOCUMENT_STATUSES = [
    DocumentStatus.PENDING, DocumentStatus.PROCESSING,
    DocumentStatus.READY, DocumentStatus.ERROR
]
JOB_STATUSES = [JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.DONE, JobStatus.ERROR]
DRAFT_STATUSES = [DraftStatus.DRAFT_OK, DraftStatus.NEEDS_HUMAN]
ACTION_TYPES = [
    ActionType.ASK_CLARIFYING_QUESTION, ActionType.REQUEST_ORDER_ID, ActionType.OFFER_DISCOUNT,
    ActionType.REQUEST_RETURN, ActionType.ESCALATE_TO_HUMAN,
]
EVENT_OUTCOMES = [
    EventOutcome.AUTO, EventOutcome.AUTO_REPLY,
    EventOutcome.HUMAN_REVIEW, EventOutcome.ERROR
]

# Text formats decoded directly; PDF goes through the extractor
TEXT_MIME_TYPES = [
    "text/plain", "text/markdown", "text/x-markdown", "text/csv", "application/csv"
]
PDF_MIME_TYPE = "application/pdf"
