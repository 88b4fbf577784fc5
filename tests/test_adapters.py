"""Tests for infrastructure adapters that run without external services."""

import fitz
import pytest

from supportflow.core import BlobStoreException, ExtractionException, ResourceNotFoundException
from supportflow.infrastructure.llm import ChatCompletionResult, EmbeddingResult, ILLMClient
from supportflow.infrastructure.storage import LocalBlobStore
from supportflow.knowledge.domain import TenantScope
from supportflow.knowledge.infrastructure import DocumentTextExtractor, LLMEmbeddingGateway, MilvusChunkStore
from supportflow.support.infrastructure import LLMChatCompletionAdapter


class RecordingLLMClient(ILLMClient):
    def __init__(self):
        self.chat_calls = []

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        return EmbeddingResult(embedding=[0.1, 0.2], model="embed-test")

    async def chat_completion(self, messages, temperature=0.3, max_tokens=600, operation="chat_completion"):
        self.chat_calls.append((messages, temperature, max_tokens, operation))
        return ChatCompletionResult(
            content='{"status": "DRAFT_OK"}',
            model="chat-test",
            prompt_tokens=10,
            completion_tokens=5,
            latency_ms=12,
        )

    @property
    def model(self) -> str:
        return "chat-test"


class TestDocumentTextExtractor:
    async def test_text_with_bom(self):
        text = await DocumentTextExtractor().extract(b"\xef\xbb\xbfHallo wereld", "text/plain")
        assert text == "Hallo wereld"

    async def test_invalid_utf8(self):
        with pytest.raises(ExtractionException):
            await DocumentTextExtractor().extract(b"\xff\xfe\xfa", "text/plain", "bad.txt")

    async def test_unsupported_type(self):
        with pytest.raises(ExtractionException):
            await DocumentTextExtractor().extract(b"x", "image/png")

    async def test_pdf(self):
        doc = fitz.open()
        page = doc.new_page()
        page.insert_text((72, 72), "Retourneren kan binnen 30 dagen")
        data = doc.tobytes()
        doc.close()

        text = await DocumentTextExtractor().extract(data, "application/pdf", "beleid.pdf")

        assert "Retourneren kan binnen 30 dagen" in text

    async def test_corrupt_pdf(self):
        with pytest.raises(ExtractionException):
            await DocumentTextExtractor().extract(b"not a pdf", "application/pdf", "kapot.pdf")


class TestLocalBlobStore:
    async def test_round_trip_and_remove(self, tmp_path):
        store = LocalBlobStore(tmp_path)

        await store.upload("tenant-a/doc-1/retour.txt", b"data", "text/plain")
        assert await store.download("tenant-a/doc-1/retour.txt") == b"data"

        await store.remove("tenant-a/doc-1/retour.txt")
        await store.remove("tenant-a/doc-1/retour.txt")
        with pytest.raises(ResourceNotFoundException):
            await store.download("tenant-a/doc-1/retour.txt")

    @pytest.mark.parametrize("path", ["../escape.txt", "/etc/passwd", ""])
    async def test_rejects_unsafe_paths(self, tmp_path, path):
        with pytest.raises(BlobStoreException):
            await LocalBlobStore(tmp_path).upload(path, b"x", "text/plain")


class TestLLMAdapters:
    async def test_chat_adapter_sends_system_and_user(self):
        client = RecordingLLMClient()

        raw, model = await LLMChatCompletionAdapter(client, temperature=0.2).complete("sys", "usr", 300)

        assert raw == '{"status": "DRAFT_OK"}'
        assert model == "chat-test"
        messages, temperature, max_tokens, operation = client.chat_calls[0]
        assert messages == [{"role": "system", "content": "sys"}, {"role": "user", "content": "usr"}]
        assert temperature == 0.2
        assert max_tokens == 300
        assert operation == "support_draft"

    async def test_embedding_gateway(self):
        assert await LLMEmbeddingGateway(RecordingLLMClient()).embed("tekst") == [0.1, 0.2]


class TestMilvusScopeExpression:
    def test_tenant_scope(self):
        expr = MilvusChunkStore.scope_expression(TenantScope.for_tenant("tenant-a"))
        assert expr == '(tenant_id == "tenant-a" or tenant_id == "")'

    def test_platform_scope(self):
        assert MilvusChunkStore.scope_expression(TenantScope.platform()) == 'tenant_id == ""'

    def test_quotes_are_escaped(self):
        expr = MilvusChunkStore.scope_expression(TenantScope.for_tenant('a" or "1'))
        assert '\\"' in expr
