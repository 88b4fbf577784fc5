"""
Knowledge External Service Adapters
===================================

Adapters between the knowledge application layer and external systems:
- LLMEmbeddingGateway: embeddings through the shared LLM client
- DocumentTextExtractor: PDF via PyMuPDF, text formats by direct decode
- MilvusChunkStore: delegated vector search on Milvus / Zilliz Cloud
"""

import asyncio
from typing import List, Optional

import fitz  # PyMuPDF

from supportflow.config import PDF_MIME_TYPE, TEXT_MIME_TYPES
from supportflow.core import ExtractionException
from supportflow.infrastructure.llm import ILLMClient
from supportflow.infrastructure.vectorstore import MilvusVectorStore
from supportflow.knowledge.application import IChunkStore, IEmbeddingGateway, ITextExtractor
from supportflow.knowledge.domain import Chunk, ScoredChunk, TenantScope
from supportflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class LLMEmbeddingGateway(IEmbeddingGateway):
    """Embedding gateway backed by the injected LLM client."""

    def __init__(self, llm_client: ILLMClient):
        self._llm = llm_client

    async def embed(self, text: str) -> List[float]:
        result = await self._llm.generate_embedding(text)
        return result.embedding


class DocumentTextExtractor(ITextExtractor):
    """
    Plain-text extraction by declared MIME type.

    Scanned (image-only) PDFs produce no text; the ingestion pipeline
    turns that into an extraction error.
    """

    async def extract(self, data: bytes, mime_type: str, filename: str = "") -> str:
        if mime_type == PDF_MIME_TYPE:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._extract_pdf, data, filename)
        if mime_type in TEXT_MIME_TYPES:
            return self._decode(data, filename)
        raise ExtractionException(
            f"Unsupported document type: {mime_type}",
            {"filename": filename}
        )

    @staticmethod
    def _decode(data: bytes, filename: str) -> str:
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ExtractionException(
                "Document is not valid UTF-8 text",
                {"filename": filename, "position": e.start}
            ) from e

    @staticmethod
    def _extract_pdf(data: bytes, filename: str) -> str:
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                pages = [page.get_text("text") for page in doc]
        except Exception as e:
            raise ExtractionException(
                f"Could not read PDF: {str(e)}",
                {"filename": filename}
            ) from e

        logger.debug(
            "PDF text extracted",
            extra={"filename": filename, "pages": len(pages)}
        )
        return "\n".join(p for p in pages if p and not p.isspace())


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class MilvusChunkStore(IChunkStore):
    """
    Chunk store delegating similarity search to Milvus.

    Platform chunks carry an empty tenant_id in the collection; every
    search is built with the scope filter.
    """

    def __init__(self, vector_store: MilvusVectorStore):
        self._store = vector_store

    @staticmethod
    def scope_expression(scope: TenantScope) -> str:
        if scope.is_platform:
            return 'tenant_id == ""'
        return f'(tenant_id == {_quote(scope.tenant_id)} or tenant_id == "")'

    async def delete_all_for_document(self, document_id: str) -> int:
        return await self._store.delete(f"document_id == {_quote(document_id)}")

    async def insert_many(self, chunks: List[Chunk]) -> int:
        return await self._store.insert([
            {
                "id": c.id,
                "vector": c.embedding,
                "document_id": c.document_id,
                "tenant_id": c.tenant_id or "",
                "category": c.category,
                "chunk_index": c.chunk_index,
                "content": c.content,
            }
            for c in chunks
        ])

    async def search_by_similarity(
        self,
        scope: TenantScope,
        query_vector: List[float],
        threshold: float,
        limit: int
    ) -> List[ScoredChunk]:
        hits = await self._store.search(query_vector, self.scope_expression(scope), limit)
        scored = [
            ScoredChunk(
                chunk_id=str(hit["id"]),
                document_id=hit["document_id"],
                content=hit["content"],
                score=hit["score"],
            )
            for hit in hits
            if hit["score"] >= threshold
        ]
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored

    async def count(self, tenant_id: Optional[str] = None) -> int:
        if tenant_id is None:
            return await self._store.count("")
        return await self._store.count(f"tenant_id == {_quote(tenant_id)}")
