"""
EchoLog Backend — Custom Exception Hierarchy
==============================================

What:  Defines application-specific exceptions for different error scenarios.
How:   Each exception class carries a message, an optional context dict, an
       HTTP status and a stable error code. Global exception handlers
       (registered in main.py) catch these and return the JSON error envelope.
Who:   Raised by services, collaborators and middleware; caught by global handlers.
When:  During request processing when recoverable errors occur.

Exception Hierarchy:
    EchoLogError (base)                        → 500 server_error
    ├── ValidationError                        → 400 validation_error
    │   ├── UnsupportedFormatError             → 400 unsupported_format
    │   └── EmptyExtractionError               → 400 empty_extraction
    ├── UnauthenticatedError                   → 401 unauthenticated
    ├── NotFoundError                          → 404 not_found
    │   └── BlobNotFoundError                  → 404 not_found
    ├── RateLimitExceededError                 → 429 rate_limit_exceeded
    ├── ExternalServiceError                   → 500 external_service_error
    │   └── MalformedLLMResponseError          → 500 invalid_llm_response
    ├── FileStorageError                       → 500 server_error
    └── DatabaseError                          → 500 server_error
"""

from typing import Any, Dict, Optional


class EchoLogError(Exception):
    """
    Base exception for all EchoLog application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
        details:  Optional extra text returned in the envelope's `details` field
    """

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
        details: Optional[str] = None,
    ):
        self.message = message
        self.context = context or {}
        self.details = details
        super().__init__(self.message)


class ValidationError(EchoLogError):
    """
    Raised when client input fails validation.

    When:    Missing file, wrong extension, size exceeded, empty text, bad identifier.
    HTTP:    400 Bad Request
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UnsupportedFormatError(ValidationError):
    """
    Raised when an uploaded file's format is not accepted.

    Audio uploads accept WAV and MP3; document uploads accept PDF, DOC, DOCX and TXT.
    Raised before any external collaborator is called.
    """

    error_code = "unsupported_format"

    def __init__(
        self,
        extension: str,
        allowed: Optional[list] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        allowed = allowed or []
        message = f"Unsupported file format '{extension or 'unknown'}'."
        if allowed:
            message += f" Allowed: {', '.join(allowed)}"
        ctx = context or {}
        ctx["extension"] = extension
        ctx["allowed"] = allowed
        super().__init__(message=message, field="file", context=ctx)


class EmptyExtractionError(ValidationError):
    """Raised when a document yields no text after extraction."""

    error_code = "empty_extraction"

    def __init__(
        self,
        filename: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["filename"] = filename
        super().__init__(
            message="No text could be extracted from the document.",
            field="file",
            context=ctx,
        )


class UnauthenticatedError(EchoLogError):
    """
    Raised when a request carries no valid caller identity.

    HTTP:    401 Unauthorized
    """

    status_code = 401
    error_code = "unauthenticated"

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(EchoLogError):
    """
    Raised when a requested resource does not exist or is not owned by the caller.

    HTTP:    404 Not Found

    A record that belongs to another user is reported exactly like a missing one.
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class BlobNotFoundError(NotFoundError):
    """Raised by a blob store when the named blob does not exist."""

    def __init__(
        self,
        name: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(resource="Audio file", resource_id=name, context=context)
        self.name = name


class RateLimitExceededError(EchoLogError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class ExternalServiceError(EchoLogError):
    """
    Raised when a managed cloud service call fails.

    What:    Speech, blob storage, Gemini or the billing warehouse returned an error.
    HTTP:    500 Internal Server Error

    The upstream message is surfaced in `details`. Nothing is retried.
    """

    error_code = "external_service_error"

    def __init__(
        self,
        service: str,
        upstream_message: str = "",
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["service"] = service
        super().__init__(
            message=message or f"The {service} service request failed.",
            context=ctx,
            details=upstream_message or None,
        )
        self.service = service
        self.upstream_message = upstream_message


class MalformedLLMResponseError(ExternalServiceError):
    """
    Raised when the language model's reply is not the expected JSON document.

    The raw reply is kept in context for logging; it is never returned to the client.
    """

    error_code = "invalid_llm_response"

    def __init__(
        self,
        reason: str,
        raw_text: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["raw_text"] = raw_text[:2000]
        super().__init__(
            service="Gemini",
            upstream_message=reason,
            message="The AI analysis returned an invalid response.",
            context=ctx,
        )
        self.raw_text = raw_text


class FileStorageError(EchoLogError):
    """
    Raised when local file system operations fail.

    When:    Temp staging directory not writable, disk full, I/O error.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(EchoLogError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error

    The message returned to the client is always generic. SQL and constraint
    details go to the server log through `context` only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
