"""
SupportFlow
===========

Multi-tenant customer-support helpdesk backend.

Bounded contexts:
- knowledge: document library, ingestion pipeline, retrieval
- support: ticket routing, draft generation, support events
"""

__version__ = "1.0.0"
