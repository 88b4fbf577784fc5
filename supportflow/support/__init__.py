"""
Support Agent Module
====================

Bounded context for reply drafting: deterministic rules, prompt
construction, model output validation, confidence blending and routing,
per-tenant agent configuration and the support event log.
"""
