"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded
contexts (Knowledge Library and Support Agent).

Architecture Pattern: Modular Monolith
- Each module (knowledge, support) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from Knowledge or Support to shared kernel.
"""
