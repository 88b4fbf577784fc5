"""
Vector Store Infrastructure
============================

Milvus (Zilliz Cloud) collection wrapper for chunk vectors.

The collection uses the COSINE metric, so the returned distance is the
cosine similarity itself. Callers build the filter expression; the
knowledge chunk store always passes a tenant filter.
"""

import asyncio
import functools
from typing import List, Optional, Any, Dict

from pymilvus import MilvusClient, DataType

from supportflow.config import settings
from supportflow.core import VectorStoreException
from supportflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

OUTPUT_FIELDS = ["document_id", "tenant_id", "category", "chunk_index", "content"]


class MilvusVectorStore:
    """
    Zilliz Cloud (Managed Milvus) implementation of vector store.

    For correct connection, you need to find your cluster's Public Endpoint
    in the Zilliz Cloud Console. It should look like:
    https://inxxxxxxxxxxxxxxxxx.aws-us-west-2.vectordb-uat3.zillizcloud.com
    """

    def __init__(
        self,
        collection_name: Optional[str] = None,
        uri: Optional[str] = None,
        api_key: Optional[str] = None,
        dimension: Optional[int] = None
    ):
        self._collection_name = collection_name or settings.milvus_collection_name
        self._uri = uri or settings.zilliz_uri
        self._api_key = api_key or settings.zilliz_api_key
        self._dimension = dimension or settings.embedding_dimension
        self._client: Optional[MilvusClient] = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    def _create_collection(self) -> None:
        schema = MilvusClient.create_schema(auto_id=False, enable_dynamic_field=False)
        schema.add_field("id", DataType.VARCHAR, is_primary=True, max_length=64)
        schema.add_field("vector", DataType.FLOAT_VECTOR, dim=self._dimension)
        schema.add_field("document_id", DataType.VARCHAR, max_length=64)
        # Platform chunks are stored with an empty tenant
        schema.add_field("tenant_id", DataType.VARCHAR, max_length=128)
        schema.add_field("category", DataType.VARCHAR, max_length=32)
        schema.add_field("chunk_index", DataType.INT64)
        schema.add_field("content", DataType.VARCHAR, max_length=65535)

        index_params = self._client.prepare_index_params()
        index_params.add_index(field_name="vector", index_type="AUTOINDEX", metric_type="COSINE")

        self._client.create_collection(
            collection_name=self._collection_name,
            schema=schema,
            index_params=index_params
        )

    async def initialize(self) -> None:
        """Initialize Zilliz Cloud client and collection."""
        if self._initialized:
            return

        if not self._uri:
            raise VectorStoreException("ZILLIZ_URI not configured")

        try:
            self._client = MilvusClient(uri=self._uri, token=self._api_key or None)
            exists = await self._run(self._client.has_collection, self._collection_name)
            if not exists:
                await self._run(self._create_collection)
                logger.info(
                    "Milvus collection created",
                    extra={"collection": self._collection_name, "dimension": self._dimension}
                )
            self._initialized = True
        except VectorStoreException:
            raise
        except Exception as e:
            raise VectorStoreException(f"Failed to initialize Milvus: {str(e)}") from e

    async def _ensure(self) -> MilvusClient:
        if not self._initialized:
            await self.initialize()
        return self._client

    async def insert(self, rows: List[Dict[str, Any]]) -> int:
        """
        Insert rows (id, vector and the OUTPUT_FIELDS columns).

        Raises:
            VectorStoreException: If insert fails
        """
        if not rows:
            return 0
        client = await self._ensure()
        try:
            await self._run(client.insert, collection_name=self._collection_name, data=rows)
        except Exception as e:
            raise VectorStoreException(f"Failed to insert vectors: {str(e)}") from e
        return len(rows)

    async def search(
        self,
        query_embedding: List[float],
        filter_expr: str,
        limit: int
    ) -> List[Dict[str, Any]]:
        """
        Search the collection.

        Returns:
            Hits as dicts with id, score and the OUTPUT_FIELDS columns,
            best match first.

        Raises:
            VectorStoreException: If search fails
        """
        client = await self._ensure()
        try:
            results = await self._run(
                client.search,
                collection_name=self._collection_name,
                data=[query_embedding],
                filter=filter_expr,
                limit=limit,
                output_fields=OUTPUT_FIELDS,
                search_params={"metric_type": "COSINE"}
            )
        except Exception as e:
            raise VectorStoreException(f"Search failed: {str(e)}") from e

        hits = []
        if results and len(results) > 0:
            for hit in results[0]:
                entity = hit.get("entity", {})
                hits.append({
                    "id": hit.get("id"),
                    "score": float(hit["distance"]),
                    **{field: entity.get(field) for field in OUTPUT_FIELDS}
                })
        return hits

    async def delete(self, filter_expr: str) -> int:
        """Delete every row matching the filter; returns the deleted count when reported."""
        client = await self._ensure()
        try:
            result = await self._run(
                client.delete,
                collection_name=self._collection_name,
                filter=filter_expr
            )
        except Exception as e:
            raise VectorStoreException(f"Delete failed: {str(e)}") from e
        if isinstance(result, dict):
            return int(result.get("delete_count", 0))
        return 0

    async def count(self, filter_expr: str = "") -> int:
        """Count rows matching the filter."""
        client = await self._ensure()
        try:
            res = await self._run(
                client.query,
                collection_name=self._collection_name,
                filter=filter_expr,
                output_fields=["count(*)"]
            )
        except Exception as e:
            raise VectorStoreException(f"Count failed: {str(e)}") from e
        return int(res[0]["count(*)"]) if res else 0
