"""
Support Infrastructure Layer
============================

Infrastructure implementations for the support agent module.

Contains:
- Models: AgentConfigModel, SupportEventModel
- Repositories: SQLAlchemyAgentConfigStore, SQLAlchemySupportEventSink
- External: LLMChatCompletionAdapter, PolicyConfigManager
"""

from supportflow.support.infrastructure.models import AgentConfigModel, SupportEventModel
from supportflow.support.infrastructure.repositories import (
    SQLAlchemyAgentConfigStore,
    SQLAlchemySupportEventSink,
)
from supportflow.support.infrastructure.external import (
    LLMChatCompletionAdapter,
    PolicyConfigManager,
    PolicyFileHandler,
)

__all__ = [
    "AgentConfigModel",
    "SupportEventModel",
    "SQLAlchemyAgentConfigStore",
    "SQLAlchemySupportEventSink",
    "LLMChatCompletionAdapter",
    "PolicyConfigManager",
    "PolicyFileHandler",
]
