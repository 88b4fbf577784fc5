"""
Knowledge Application DTOs
==========================

Pydantic models for the knowledge library API.

Responses serialize with camelCase keys; requests accept either form.
"""

from datetime import datetime
from typing import Dict, List, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from supportflow.knowledge.domain import Document

DocumentCategoryStr = Literal["policy", "training", "platform"]
DocumentStatusStr = Literal["pending", "processing", "ready", "error"]


class CamelModel(BaseModel):
    """Base for API models exchanged with the admin panel."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========== Request DTOs ==========

class ReindexRequest(CamelModel):
    """Request model for re-ingesting a document."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    document_id: str = Field(..., min_length=1, description="Document to reindex")


# ========== Response DTOs ==========

class UploadResponse(CamelModel):
    """Response model for a document upload."""
    ok: bool = True
    document_id: str
    status: DocumentStatusStr
    job_queued: bool


class DocumentInfo(CamelModel):
    """Document metadata as shown in the library."""
    id: str
    tenant_id: Optional[str]
    category: DocumentCategoryStr
    title: str
    source: str
    mime_type: str
    status: DocumentStatusStr
    chunk_count: int
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, document: Document) -> "DocumentInfo":
        return cls(
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
            updated_at=document.updated_at,
        )


class DocumentListResponse(CamelModel):
    """Response model for the document list."""
    ok: bool = True
    documents: List[DocumentInfo]


class OkResponse(CamelModel):
    """Plain acknowledgement."""
    ok: bool = True
    document_id: Optional[str] = None
    job_queued: Optional[bool] = None


class WorkerJobInfo(CamelModel):
    """Outcome of one processed job."""
    job_id: str
    document_id: str
    status: Literal["done", "error"]
    error: Optional[str] = None


class WorkerRunResponse(CamelModel):
    """Response model for one worker invocation."""
    ok: bool = True
    processed: int
    jobs: List[WorkerJobInfo]


class KnowledgeStatsResponse(CamelModel):
    """Document and chunk counts for the dashboard."""
    documents_total: int
    documents_by_status: Dict[str, int]
    chunks_total: int
