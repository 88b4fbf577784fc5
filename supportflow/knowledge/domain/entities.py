"""
Knowledge Domain Entities
=========================

Pure Python business objects for the knowledge library.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List

from supportflow.config import DocumentStatus, JobStatus, RetrievalTier

PLATFORM_PREFIX = "platform"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TenantScope:
    """
    Visibility filter applied at the lowest data-access layer.

    A tenant scope sees the tenant's own chunks plus platform-wide chunks.
    The platform scope (tenant_id None) sees platform-wide chunks only.
    """
    tenant_id: Optional[str]

    @classmethod
    def platform(cls) -> "TenantScope":
        return cls(tenant_id=None)

    @classmethod
    def for_tenant(cls, tenant_id: Optional[str]) -> "TenantScope":
        return cls(tenant_id=tenant_id or None)

    @property
    def is_platform(self) -> bool:
        return self.tenant_id is None

    def includes(self, owner_tenant_id: Optional[str]) -> bool:
        """Whether a chunk owned by owner_tenant_id is visible in this scope."""
        if owner_tenant_id is None:
            return True
        return owner_tenant_id == self.tenant_id


@dataclass
class Document:
    """
    A unit of uploaded knowledge.

    Owned by the ingestion pipeline between pending and a terminal status.
    """
    id: str
    tenant_id: Optional[str]  # None = platform-wide
    category: str
    title: str
    source: str  # stored filename
    mime_type: str
    status: str = DocumentStatus.PENDING
    chunk_count: int = 0
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def is_platform(self) -> bool:
        return self.tenant_id is None

    @property
    def storage_path(self) -> str:
        """Blob path: tenant (or platform) / document id / stored filename."""
        return f"{self.tenant_id or PLATFORM_PREFIX}/{self.id}/{self.source}"

    @property
    def is_terminal(self) -> bool:
        return self.status in (DocumentStatus.READY, DocumentStatus.ERROR)


@dataclass
class Chunk:
    """A contiguous slice of a document's text plus its embedding."""
    id: str
    document_id: str
    tenant_id: Optional[str]
    category: str
    chunk_index: int
    content: str
    embedding: List[float]


@dataclass
class IngestJob:
    """A queued request to (re)process one document."""
    id: str
    document_id: str
    status: str = JobStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class ScoredChunk:
    """A chunk candidate returned by similarity search."""
    chunk_id: str
    document_id: str
    content: str
    score: float


@dataclass
class RetrievalResult:
    """
    Output of the retrieval engine.

    top_similarity is the best score seen among candidates, whether or not
    anything was selected.
    """
    selected: List[ScoredChunk]
    top_similarity: Optional[float]
    tier: str = RetrievalTier.LOW

    @property
    def used(self) -> bool:
        return len(self.selected) > 0

    @property
    def context(self) -> str:
        return "\n\n---\n\n".join(c.content for c in self.selected)

    @classmethod
    def empty(cls) -> "RetrievalResult":
        return cls(selected=[], top_similarity=None, tier=RetrievalTier.LOW)
