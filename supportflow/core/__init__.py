"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from supportflow.core.exceptions import (
    ApplicationException,
    DomainException,
    ValidationException,
    ResourceNotFoundException,
    UnauthorizedException,
    ForbiddenException,
    ConfigurationException,
    ServiceUnavailableException,
    ExtractionException,
    SimilarityException,
    ExternalServiceException,
    ProviderException,
    LLMException,
    EmbeddingException,
    VectorStoreException,
    BlobStoreException,
    EmptyModelOutputException,
    MalformedModelOutputException,
    ModelOutputValidationException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "ValidationException",
    "ResourceNotFoundException",
    "UnauthorizedException",
    "ForbiddenException",
    "ConfigurationException",
    "ServiceUnavailableException",
    "ExtractionException",
    "SimilarityException",
    "ExternalServiceException",
    "ProviderException",
    "LLMException",
    "EmbeddingException",
    "VectorStoreException",
    "BlobStoreException",
    "EmptyModelOutputException",
    "MalformedModelOutputException",
    "ModelOutputValidationException",
]
