"""
Infrastructure Layer
====================

Adapters to external systems shared by the bounded contexts:
- database: SQLAlchemy async engine and session lifecycle
- llm: chat-completion and embedding clients (OpenAI, Z.AI)
- vectorstore: Milvus / Zilliz Cloud collection wrapper
- storage: raw file blob stores (local filesystem, S3)
"""
