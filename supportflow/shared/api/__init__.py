"""
Shared API Layer
================

Middleware, exception handlers and session resolution.
"""
