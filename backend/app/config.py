"""
DocBridge Backend — Application Configuration
===============================================

What:  Centralized configuration management using Pydantic Settings.
Why:   Type-safe environment variable loading with validation on startup.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Read by the composition root (main.create_app) and the services it builds.
When:  Loaded once at module import time; validated before the app starts.

Design Decision:
    Settings are read once and copied into immutable service configs
    (e.g. ObjectStoreConfig). Services never re-read the environment, so a
    test can build isolated instances from its own Settings object.
"""

import string
from typing import List, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have development defaults. Production deployments MUST set
    the Google OAuth client values and PUBLIC_BASE_URL.
    """

    # ── Google OAuth2 ─────────────────────────────────────────────────────
    # What: OAuth client registered in Google Cloud Console (type "Web application")
    google_client_id: str = Field(default="", description="Google OAuth2 client ID")
    google_client_secret: str = Field(default="", description="Google OAuth2 client secret")
    google_redirect_uri: str = Field(
        default="http://localhost:8000/auth/callback",
        description="Redirect URI registered for the OAuth client",
    )

    # What: Comma-separated OAuth scopes requested at consent time
    # Drive is read-only (listing); Sheets needs write access for /sheets/write
    google_scopes: str = Field(
        default=(
            "https://www.googleapis.com/auth/drive.readonly,"
            "https://www.googleapis.com/auth/spreadsheets"
        )
    )

    @property
    def google_scopes_list(self) -> List[str]:
        return [scope.strip() for scope in self.google_scopes.split(",") if scope.strip()]

    # ── Ephemeral Object Store ────────────────────────────────────────────
    # What: Directory exclusively owned by the object store
    # Why relative: Works in both Docker (mounted volume) and local development
    storage_root: str = Field(default="./storage")

    # What: How long a generated file stays downloadable
    # Why 300: Long enough for the plugin client to follow the link, short
    #          enough that generated documents do not pile up on disk
    retention_seconds: float = Field(default=300.0, gt=0, le=86400)

    # What: Randomness parameters of object ids
    # Why 32 chars of [A-Za-z0-9]: ~190 bits of entropy, so ids double as
    #          unguessable download capabilities
    id_alphabet: str = Field(default=string.ascii_letters + string.digits)
    id_length: int = Field(default=32, ge=16, le=128)

    # What: Display-name suffixes accepted as-is; anything else gets default_suffix
    allowed_suffixes: str = Field(default=".pdf")
    default_suffix: str = Field(default=".pdf")

    @property
    def allowed_suffixes_tuple(self) -> Tuple[str, ...]:
        return tuple(
            s.strip().lower() for s in self.allowed_suffixes.split(",") if s.strip()
        )

    # What: Read size used when streaming stored files back to clients
    chunk_size: int = Field(default=64 * 1024, ge=1024, le=8 * 1024 * 1024)

    # What: Delay before the single retry of a failed background deletion
    delete_retry_delay: float = Field(default=30.0, ge=0, le=3600)

    # What: Upper bound on how long the expiry loop sleeps between checks
    expiry_poll_interval: float = Field(default=5.0, gt=0, le=300)

    # What: Startup sweep of files left behind by a previous process
    sweep_on_startup: bool = Field(default=True)

    @field_validator("id_alphabet")
    @classmethod
    def validate_id_alphabet(cls, v: str) -> str:
        """Id characters must be URL- and filename-safe and unique."""
        allowed = set(string.ascii_letters + string.digits + "-_")
        if len(set(v)) != len(v) or not set(v) <= allowed or len(v) < 16:
            raise ValueError(
                "id_alphabet must hold at least 16 distinct characters from [A-Za-z0-9_-]"
            )
        return v

    @field_validator("default_suffix")
    @classmethod
    def validate_default_suffix(cls, v: str) -> str:
        v = v.strip().lower()
        if not v.startswith(".") or "/" in v or "\\" in v:
            raise ValueError("default_suffix must look like '.pdf'")
        return v

    # ── PDF ───────────────────────────────────────────────────────────────
    # What: Maximum accepted size of an uploaded PDF
    # Default: 20MB
    max_upload_size: int = Field(default=20 * 1024 * 1024, ge=1024, le=200 * 1024 * 1024)

    # What: Page size used for newly created documents ("A4" or "letter")
    pdf_page_size: str = Field(default="A4")

    # ── CORS ──────────────────────────────────────────────────────────────
    # What: Allowed origins; the plugin client runs on a different origin
    cors_origins: str = Field(default="*")

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # What: Prefix for download links handed to clients (e.g. https://docs.example.com)
    # Empty means links are relative ("/files/<id>/<name>")
    public_base_url: str = Field(default="")

    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Retry Configuration ───────────────────────────────────────────────
    # What: Tenacity retry settings for Google API calls
    # Why jitter: Prevents thundering herd when several requests retry together
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: float = Field(default=1.0, ge=0, le=30)
    retry_max_wait: float = Field(default=10.0, ge=0, le=120)

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        Why:   Clear message at boot instead of a cryptic OAuth failure later.
        """
        errors = []
        if not self.google_client_id:
            errors.append("GOOGLE_CLIENT_ID is not set.")
        if not self.google_client_secret:
            errors.append("GOOGLE_CLIENT_SECRET is not set.")
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Singleton instance, read by the composition root in main.py
settings = Settings()
