"""
DocBridge Backend — Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for the error kinds the services report.
Why:   Services stay free of HTTP concerns; global handlers in main.py map each
       type to a status code and a safe, structured JSON body.
How:   Each exception carries a client-safe message and a context dict that
       is logged server-side only.

Exception Hierarchy:
    DocBridgeError (base)
    ├── ValidationError              → 400 Bad Request (invalid input)
    ├── NotFoundError                → 404 Not Found
    ├── FileStorageError             → 500 Internal Server Error (backing store fault)
    ├── AuthenticationRequiredError  → 401 Unauthorized
    └── GoogleAPIError               → 502 Bad Gateway / 503 Service Unavailable
"""

from typing import Any, Dict, Optional


class DocBridgeError(Exception):
    """
    Base exception for all DocBridge application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(DocBridgeError):
    """
    Raised when client input fails validation.

    When:    Empty payload, unusable filename, non-PDF upload, page out of range.
    HTTP:    400 Bad Request
    """

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


class NotFoundError(DocBridgeError):
    """
    Raised when a requested resource does not exist.

    HTTP:    404 Not Found

    For stored files the message never includes the id and is identical for
    "never existed", "malformed" and "expired", so a client cannot probe
    which ids were once valid.
    """

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


class FileStorageError(DocBridgeError):
    """
    Raised when file system operations of the object store fail.

    When:    Disk full, permission denied, id collision, I/O error.
    HTTP:    500 Internal Server Error

    The context holds paths and OS errors for the logs; the client only sees
    the generic message.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationRequiredError(DocBridgeError):
    """
    Raised when a Google-backed endpoint is called for a user without stored
    credentials, or when Google rejects the stored credentials.

    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        user: str = "default",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["user"] = user
        super().__init__(
            message="User not authenticated. Complete the Google sign-in flow via /auth/url.",
            context=ctx,
        )
        self.user = user


class GoogleAPIError(DocBridgeError):
    """
    Raised when a Google API call fails.

    HTTP:    status_code (502 for rejected upstream requests, 503 when transient
             failures persisted through every retry)
    """

    def __init__(
        self,
        message: str = "Google API request failed",
        status_code: int = 502,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.status_code = status_code
        self.retry_after = retry_after
