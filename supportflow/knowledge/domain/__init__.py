"""
Knowledge Domain Layer
======================

Domain layer for the knowledge library module.

Contains:
- Entities: Document, Chunk, IngestJob, ScoredChunk, RetrievalResult, TenantScope
- Value Objects: chunk_text, cosine_similarity, select_context

This layer is framework-agnostic and contains pure business logic.
"""

from supportflow.knowledge.domain.entities import (
    Document,
    Chunk,
    IngestJob,
    ScoredChunk,
    RetrievalResult,
    TenantScope,
    utcnow,
)
from supportflow.knowledge.domain.value_objects import (
    chunk_text,
    cosine_similarity,
    select_context,
    resolve_mime_type,
)

__all__ = [
    "Document",
    "Chunk",
    "IngestJob",
    "ScoredChunk",
    "RetrievalResult",
    "TenantScope",
    "utcnow",
    "chunk_text",
    "cosine_similarity",
    "select_context",
    "resolve_mime_type",
]
