"""
Support Interfaces Layer
========================

FastAPI routers for the support agent module.

Contains:
- support_router: /support/generate, /support/agent-config, /support/stats
"""

from supportflow.support.interfaces.controllers import support_router

__all__ = ["support_router"]
