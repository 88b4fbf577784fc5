"""
LLM Client Infrastructure
==========================

Chat-completion and embedding clients for OpenAI and Z.AI.

The support agent drafts replies through chat_completion; the ingestion
pipeline and retrieval engine embed chunks and queries through
generate_embedding. Every embedding is checked against the index
dimension before it reaches a chunk store.

One client is built by the application lifespan and injected into the
knowledge and support services; nothing here is cached at module level.
"""

import asyncio
import functools
import time
from typing import List, Optional
from abc import ABC, abstractmethod

from openai import AsyncOpenAI
from zai import ZaiClient

from supportflow.config import Settings, settings
from supportflow.core import LLMException, EmbeddingException, ConfigurationException
from supportflow.shared.infrastructure.grafana import GrafanaOTLPExporter


class EmbeddingResult:
    """One embedding vector with the tokens it cost."""

    def __init__(self, embedding: List[float], model: str, prompt_tokens: int = 0):
        self.embedding = embedding
        self.model = model
        self.dimension = len(embedding)
        self.prompt_tokens = prompt_tokens


class ChatCompletionResult:
    """Raw model text plus usage for metrics; content may be None."""

    def __init__(
        self,
        content: Optional[str],
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class ILLMClient(ABC):
    """
    Provider-neutral client used behind the chat-completion adapter and
    the embedding gateway.
    """

    @abstractmethod
    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Generate embedding for text."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 600,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Generate chat completion."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Chat model name."""


def check_embedding(embedding: List[float], expected_dimension: int) -> List[float]:
    """
    Reject vectors that would corrupt the index.

    Raises:
        EmbeddingException: On an empty, all-zero or wrongly sized vector
    """
    if not embedding:
        raise EmbeddingException("Provider returned an empty embedding")
    if len(embedding) != expected_dimension:
        raise EmbeddingException(
            f"Embedding dimension {len(embedding)} does not match index dimension {expected_dimension}",
            {"expected": expected_dimension, "received": len(embedding)}
        )
    if not any(embedding):
        raise EmbeddingException("Provider returned a zero vector")
    return [float(x) for x in embedding]


class _BaseLLMClient(ILLMClient):
    """Shared plumbing: model names, dimension check and metrics export."""

    def __init__(self, config: Settings, exporter: Optional[GrafanaOTLPExporter] = None):
        self._model = config.llm_model
        self._embedding_model = config.embedding_model
        self._dimension = config.embedding_dimension
        self._exporter = exporter

    @property
    def model(self) -> str:
        return self._model

    async def _export(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int,
        operation: str
    ) -> None:
        if self._exporter and self._exporter.is_enabled():
            await self._exporter.export_llm_metrics(
                model=model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                latency_ms=latency_ms,
                operation=operation
            )


class ZAIILLMClient(_BaseLLMClient):
    """
    Z.AI SDK client implementation for GLM models.

    The Z.AI SDK is synchronous; calls run in the default executor so the
    event loop stays free.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Settings = settings,
        exporter: Optional[GrafanaOTLPExporter] = None
    ):
        super().__init__(config, exporter)
        self._api_key = api_key or config.zai_api_key
        if not self._api_key:
            raise ConfigurationException("Z.AI API key not configured")

        self._client = ZaiClient(api_key=self._api_key)

    async def _run(self, func, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, **kwargs))

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """
        Generate embedding for text using Z.AI embedding model.

        Raises:
            EmbeddingException: If embedding generation fails
        """
        start_time = time.perf_counter()
        try:
            response = await self._run(
                self._client.embeddings.create,
                model=self._embedding_model,
                input=text
            )
            raw = response.data[0].embedding
        except Exception as e:
            raise EmbeddingException(f"Embedding generation failed: {str(e)}") from e

        result = EmbeddingResult(
            embedding=check_embedding(raw, self._dimension),
            model=self._embedding_model
        )
        await self._export(
            self._embedding_model, 0, 0,
            int((time.perf_counter() - start_time) * 1000), "embedding"
        )
        return result

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 600,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate chat completion using GLM.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            operation: Operation type for metrics

        Raises:
            LLMException: If completion fails
        """
        start_time = time.perf_counter()

        try:
            response = await self._run(
                self._client.chat.completions.create,
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
            content = response.choices[0].message.content if response.choices else None
        except Exception as e:
            raise LLMException(f"Chat completion failed: {str(e)}") from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0

        await self._export(self._model, prompt_tokens, completion_tokens, latency_ms, operation)

        return ChatCompletionResult(
            content=content,
            model=getattr(response, "model", None) or self._model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=latency_ms
        )


class OpenAILLMClient(_BaseLLMClient):
    """
    OpenAI client implementation for GPT models.

    Provides async wrapper around OpenAI SDK operations.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Settings = settings,
        exporter: Optional[GrafanaOTLPExporter] = None
    ):
        super().__init__(config, exporter)
        self._api_key = api_key or config.openai_api_key
        if not self._api_key:
            raise ConfigurationException("OpenAI API key not configured")

        self._client = AsyncOpenAI(api_key=self._api_key)

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """
        Generate embedding for text using OpenAI embedding model.

        Raises:
            EmbeddingException: If embedding generation fails
        """
        start_time = time.perf_counter()
        try:
            response = await self._client.embeddings.create(
                model=self._embedding_model,
                input=text
            )
            raw = response.data[0].embedding
        except Exception as e:
            raise EmbeddingException(f"Embedding generation failed: {str(e)}") from e

        prompt_tokens = getattr(response.usage, "prompt_tokens", 0) or 0
        result = EmbeddingResult(
            embedding=check_embedding(raw, self._dimension),
            model=self._embedding_model,
            prompt_tokens=prompt_tokens
        )
        await self._export(
            self._embedding_model, prompt_tokens, 0,
            int((time.perf_counter() - start_time) * 1000), "embedding"
        )
        return result

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 600,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate chat completion using OpenAI GPT.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            operation: Operation type for metrics

        Returns:
            ChatCompletionResult; content is None when the model produced nothing

        Raises:
            LLMException: If completion fails
        """
        start_time = time.perf_counter()

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_completion_tokens=max_tokens
            )
        except Exception as e:
            raise LLMException(f"Chat completion failed: {str(e)}") from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        content = response.choices[0].message.content if response.choices else None
        prompt_tokens = response.usage.prompt_tokens if response.usage else 0
        completion_tokens = response.usage.completion_tokens if response.usage else 0

        await self._export(self._model, prompt_tokens, completion_tokens, latency_ms, operation)

        return ChatCompletionResult(
            content=content,
            model=response.model or self._model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=latency_ms
        )


def create_llm_client(
    config: Settings = settings,
    exporter: Optional[GrafanaOTLPExporter] = None
) -> ILLMClient:
    """
    Build the client for the configured provider.

    Raises:
        ConfigurationException: If the provider's API key is missing
    """
    if config.llm_provider == "zai":
        return ZAIILLMClient(config=config, exporter=exporter)
    return OpenAILLMClient(config=config, exporter=exporter)
