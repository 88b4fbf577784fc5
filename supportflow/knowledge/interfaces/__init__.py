"""
Knowledge Interfaces Layer
==========================

Interface adapters (controllers) for the knowledge library module.

Contains:
- Controllers: FastAPI route handlers
"""

from supportflow.knowledge.interfaces.controllers import knowledge_router

__all__ = ["knowledge_router"]
