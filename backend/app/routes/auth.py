"""
DocBridge Backend — Google Sign-in Routes
===========================================

Flow:
    1. Plugin client calls GET /auth/url?user=<id> and opens the URL
    2. User consents; Google redirects to GET /auth/callback?code=...&state=<id>
    3. Credentials are stored for <id>; Drive/Sheets routes work for that user
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_google_service
from app.exceptions import ValidationError
from app.schemas.files import ErrorResponse
from app.schemas.google import AuthCallbackResponse, AuthUrlResponse
from app.services.google_service import DEFAULT_USER, GoogleWorkspaceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/url", response_model=AuthUrlResponse, summary="Get the Google consent URL")
async def auth_url(
    user: str = Query(default=DEFAULT_USER, min_length=1, max_length=128),
    google: GoogleWorkspaceService = Depends(get_google_service),
) -> AuthUrlResponse:
    return AuthUrlResponse(url=google.authorization_url(user))


@router.get(
    "/callback",
    response_model=AuthCallbackResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="OAuth2 redirect target",
)
async def auth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    user: Optional[str] = None,
    error: Optional[str] = None,
    google: GoogleWorkspaceService = Depends(get_google_service),
) -> AuthCallbackResponse:
    """
    Exchange the authorization code for credentials.

    The user id comes from `user` (explicit query parameter, as older clients
    send it) or from the OAuth `state` set by /auth/url.
    """
    if error:
        raise ValidationError(
            message=f"Google sign-in was not completed: {error}",
            field="code",
        )
    user_id = user or state or DEFAULT_USER
    await google.exchange_code(code or "", user_id)
    return AuthCallbackResponse(
        message="Authentication successful. You can now use the plugin.",
        user=user_id,
    )
