"""In-memory fakes for service-level tests."""

from tests.fakes.stores import (
    FailingJobQueue,
    FakeChatClient,
    FakeEmbedder,
    FakeExtractor,
    InMemoryAgentConfigStore,
    InMemoryBlobStore,
    InMemoryChunkStore,
    InMemoryDocumentRepository,
    InMemoryJobQueue,
    InMemorySupportEventSink,
)

__all__ = [
    "FailingJobQueue",
    "FakeChatClient",
    "FakeEmbedder",
    "FakeExtractor",
    "InMemoryAgentConfigStore",
    "InMemoryBlobStore",
    "InMemoryChunkStore",
    "InMemoryDocumentRepository",
    "InMemoryJobQueue",
    "InMemorySupportEventSink",
]
