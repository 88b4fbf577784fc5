"""
Knowledge Library Module
========================

Bounded context for tenant knowledge: document upload, ingestion
(extract, chunk, embed), retrieval with confidence tiers, and the
background worker that drains the ingest job queue.
"""
