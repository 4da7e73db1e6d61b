"""
DocBridge Backend — Shared Response Schemas
=============================================

What:  Response models shared across routes: stored-file links, errors, health.
Why:   One definition of the download-link contract for every PDF endpoint,
       and consistent OpenAPI docs for error bodies.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from app.services.object_store import StoredObject


class StoredFileResponse(BaseModel):
    """
    What:  Where to download a generated file, and until when.
    Who:   Returned by POST /pdf/create and POST /pdf/add-text when stored.
    """
    id: str = Field(description="Opaque file id (also the download capability)")
    filename: str = Field(description="Sanitized display name")
    url: str = Field(description="Download link; valid until expires_at")
    size: int = Field(description="Size in bytes")
    expires_at: datetime = Field(description="When the file is deleted (UTC)")

    @classmethod
    def from_stored(cls, stored: StoredObject) -> "StoredFileResponse":
        return cls(
            id=stored.id,
            filename=stored.display_name,
            url=stored.reference,
            size=stored.size,
            expires_at=datetime.fromtimestamp(stored.expires_at, tz=timezone.utc),
        )


class ErrorResponse(BaseModel):
    """Body of every error response produced by the global exception handlers."""
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable explanation")
    details: Optional[Dict[str, Any]] = Field(default=None)
    request_id: str = Field(default="", description="Correlation id (X-Request-ID)")


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or degraded")
    version: str
    object_store: str = Field(description="running, stopped")
    stored_files: int = Field(description="Active files in the object store")
    pending_expirations: int
    google_configured: bool = Field(description="Whether OAuth client credentials are set")
    uptime_seconds: float
