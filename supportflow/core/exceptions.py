"""
Core Exceptions
================

Exception taxonomy shared by the knowledge and support contexts.

Every exception carries the HTTP status it maps to; the API exception
handler turns it into a JSON error. The ingestion pipeline and worker
convert them into a terminal document or job status instead.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base of every error the service raises on purpose."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Raised by pure domain logic (chunking, scoring, extraction)."""


class ValidationException(ApplicationException):
    """Request or config input that fails validation."""

    status_code = 400


class ResourceNotFoundException(ApplicationException):
    """A document, job or tenant agent config does not exist."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class UnauthorizedException(ApplicationException):
    """No valid session could be resolved for the request."""

    status_code = 401


class ForbiddenException(ApplicationException):
    """The session is valid but may not touch the requested resource."""

    status_code = 403


class ConfigurationException(ApplicationException):
    """Invalid settings or routing policy file."""


class ServiceUnavailableException(ApplicationException):
    """A required collaborator was not configured at startup."""

    status_code = 503


class ExtractionException(DomainException):
    """
    Text could not be extracted from a document.

    Terminal for the ingestion attempt; reindex is the retry path.
    """

    status_code = 422


class SimilarityException(DomainException):
    """Vectors cannot be compared (zero-length or dimension mismatch)."""


# ========== External services ==========

class ExternalServiceException(ApplicationException):
    """A collaborator outside the process failed; message is prefixed with its name."""

    status_code = 502

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class ProviderException(ExternalServiceException):
    """An external model/storage provider was unavailable or answered garbage."""


class LLMException(ProviderException):
    """Exception for chat-completion API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class EmbeddingException(ProviderException):
    """Exception for embedding API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Embedding Service", message, details)


class VectorStoreException(ProviderException):
    """Exception for vector store failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Vector Store", message, details)


class BlobStoreException(ProviderException):
    """Exception for raw file storage failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Blob Store", message, details)


class EmptyModelOutputException(LLMException):
    """The chat-completion call returned no content."""

    def __init__(self, details: Optional[dict] = None):
        super().__init__("Model returned empty content", details)


class MalformedModelOutputException(LLMException):
    """The model output holds no parseable JSON object."""


class ModelOutputValidationException(ValidationException):
    """
    The parsed model output violates the draft output contract.

    Routed exactly like a provider failure: the request fails instead of
    patching the shape.
    """

    status_code = 500
