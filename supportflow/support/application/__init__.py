"""
Support Application Layer
=========================

Application services and DTOs for the support agent module.

Contains:
- DTOs: GenerateRequest, GenerateResponse, AgentConfigInput, AgentConfigResponse, SupportStatsResponse
- Services: SupportAgentService, AgentConfigService, SupportStatsService
- Interfaces: IAgentConfigStore, ISupportEventSink, IChatCompletionClient
"""

from supportflow.support.application.dto import (
    GenerateRequest,
    GenerateResponse,
    GenerateErrorResponse,
    CustomerInput,
    OrderInput,
    AgentConfigInput,
    AgentConfigResponse,
    SupportStatsResponse,
)
from supportflow.support.application.services import (
    SupportAgentService,
    AgentConfigService,
    SupportStatsService,
    IAgentConfigStore,
    ISupportEventSink,
    IChatCompletionClient,
)

__all__ = [
    "GenerateRequest",
    "GenerateResponse",
    "GenerateErrorResponse",
    "CustomerInput",
    "OrderInput",
    "AgentConfigInput",
    "AgentConfigResponse",
    "SupportStatsResponse",
    "SupportAgentService",
    "AgentConfigService",
    "SupportStatsService",
    "IAgentConfigStore",
    "ISupportEventSink",
    "IChatCompletionClient",
]
