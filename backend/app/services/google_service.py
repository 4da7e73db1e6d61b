"""
DocBridge Backend — Google Workspace Service
==============================================

What:  OAuth2 consent/callback handling plus the Drive and Sheets calls the
       plugin client needs (list spreadsheets, read a range, write a range).
Why:   The plugin client holds no Google credentials; this service keeps
       per-user credentials server-side and proxies the calls.
How:   google-auth-oauthlib builds the consent URL and exchanges the code,
       google-api-python-client performs the API calls. Calls are blocking,
       so each runs in a worker thread with tenacity retries for transient
       failures (429, 5xx, connection errors).
Who:   Built by main.create_app() with a TokenStore; used by the auth,
       drive and sheets routes.

Error Translation:
    No stored credentials / refresh rejected / HTTP 401  → AuthenticationRequiredError (401)
    HTTP 400                                             → ValidationError (400)
    HTTP 404                                             → NotFoundError (404)
    Transient failure after all retries                  → GoogleAPIError (503)
    Any other HTTP error                                 → GoogleAPIError (502)
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from oauthlib.oauth2.rfc6749.errors import OAuth2Error
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.exceptions import (
    AuthenticationRequiredError,
    GoogleAPIError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
TRANSIENT_STATUSES = {429, 500, 502, 503, 504}
DEFAULT_USER = "default"

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"


class TokenStore:
    """
    In-memory per-user credential store.

    Owned by the composition root. Credentials are lost on restart, after
    which users repeat the consent flow.
    """

    def __init__(self) -> None:
        self._tokens: Dict[str, Credentials] = {}
        self._lock = threading.Lock()

    def get(self, user: str) -> Optional[Credentials]:
        with self._lock:
            return self._tokens.get(user)

    def set(self, user: str, credentials: Credentials) -> None:
        with self._lock:
            self._tokens[user] = credentials

    def delete(self, user: str) -> bool:
        with self._lock:
            return self._tokens.pop(user, None) is not None

    def __contains__(self, user: object) -> bool:
        with self._lock:
            return user in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, HttpError):
        return exc.resp.status in TRANSIENT_STATUSES
    return isinstance(exc, (ConnectionError, TimeoutError, TransportError))


class GoogleWorkspaceService:
    """
    Proxy for Google OAuth2, Drive v3 and Sheets v4.

    Args:
        settings:    Application settings (OAuth client, scopes, retry policy)
        token_store: Where credentials are kept per user
        retry_wait:  Tenacity wait strategy override (tests pass wait_none())
    """

    def __init__(self, settings, token_store: TokenStore, retry_wait=None):
        self._settings = settings
        self.token_store = token_store
        self._retry_wait = retry_wait or wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        )

    # ── OAuth2 ────────────────────────────────────────────────────────────

    def _flow(self) -> Flow:
        client_config = {
            "web": {
                "client_id": self._settings.google_client_id,
                "client_secret": self._settings.google_client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self._settings.google_redirect_uri],
            }
        }
        # A fresh Flow handles the callback, so no PKCE verifier can be carried over
        return Flow.from_client_config(
            client_config,
            scopes=self._settings.google_scopes_list,
            redirect_uri=self._settings.google_redirect_uri,
            autogenerate_code_verifier=False,
        )

    def authorization_url(self, user: str = DEFAULT_USER) -> str:
        """
        Consent URL requesting offline access.

        The user id travels through Google as the OAuth `state` parameter and
        comes back on the callback.
        """
        url, _ = self._flow().authorization_url(
            access_type="offline",
            prompt="consent",
            state=user,
        )
        return url

    async def exchange_code(self, code: str, user: str = DEFAULT_USER) -> Credentials:
        """Exchange an authorization code and remember the credentials for `user`."""
        if not code:
            raise ValidationError(message="Missing authorization code.", field="code")

        flow = self._flow()
        try:
            await asyncio.to_thread(flow.fetch_token, code=code)
        except OAuth2Error as e:
            logger.warning("OAuth code exchange rejected for user %s: %s", user, e)
            raise ValidationError(
                message="Google rejected the authorization code. Start the sign-in flow again.",
                field="code",
                context={"oauth_error": getattr(e, "error", str(e))},
            )
        except Exception as e:
            logger.error("OAuth code exchange failed for user %s: %s", user, e)
            raise GoogleAPIError(
                message="Could not reach Google to complete sign-in. Please try again.",
                status_code=503,
                context={"error_type": type(e).__name__},
            )

        self.token_store.set(user, flow.credentials)
        logger.info("Stored Google credentials for user %s", user)
        return flow.credentials

    async def _credentials(self, user: str) -> Credentials:
        creds = self.token_store.get(user)
        if creds is None:
            raise AuthenticationRequiredError(user=user)
        if creds.valid:
            return creds
        if not (creds.expired and creds.refresh_token):
            raise AuthenticationRequiredError(user=user, context={"reason": "no_refresh_token"})

        try:
            await asyncio.to_thread(creds.refresh, GoogleAuthRequest())
        except RefreshError as e:
            self.token_store.delete(user)
            logger.warning("Refreshing credentials failed for user %s: %s", user, e)
            raise AuthenticationRequiredError(user=user, context={"reason": "refresh_rejected"})
        except TransportError as e:
            raise GoogleAPIError(
                message="Could not reach Google to refresh credentials. Please try again.",
                status_code=503,
                context={"error": str(e)},
            )
        logger.info("Refreshed Google credentials for user %s", user)
        return creds

    # ── Drive / Sheets ────────────────────────────────────────────────────

    async def list_spreadsheets(self, user: str = DEFAULT_USER) -> List[Dict[str, Any]]:
        """Spreadsheets visible to `user` as [{"id": ..., "name": ...}]."""
        creds = await self._credentials(user)

        def call() -> Dict[str, Any]:
            drive = build("drive", "v3", credentials=creds, cache_discovery=False)
            return drive.files().list(
                q=f"mimeType='{SPREADSHEET_MIME_TYPE}'",
                fields="files(id, name)",
            ).execute()

        result = await self._execute("drive.files.list", user, call)
        return result.get("files", [])

    async def read_values(self, user: str, spreadsheet_id: str, range_: str) -> Dict[str, Any]:
        """Raw `spreadsheets.values.get` response (range, majorDimension, values)."""
        creds = await self._credentials(user)

        def call() -> Dict[str, Any]:
            sheets = build("sheets", "v4", credentials=creds, cache_discovery=False)
            return sheets.spreadsheets().values().get(
                spreadsheetId=spreadsheet_id,
                range=range_,
            ).execute()

        return await self._execute("sheets.values.get", user, call)

    async def write_values(
        self,
        user: str,
        spreadsheet_id: str,
        range_: str,
        values: List[List[Any]],
        value_input_option: str = "RAW",
    ) -> Dict[str, Any]:
        """Raw `spreadsheets.values.update` response (updatedRange, updatedCells, ...)."""
        creds = await self._credentials(user)

        def call() -> Dict[str, Any]:
            sheets = build("sheets", "v4", credentials=creds, cache_discovery=False)
            return sheets.spreadsheets().values().update(
                spreadsheetId=spreadsheet_id,
                range=range_,
                valueInputOption=value_input_option,
                body={"values": values},
            ).execute()

        return await self._execute("sheets.values.update", user, call)

    # ── Execution & error translation ─────────────────────────────────────

    async def _execute(self, operation: str, user: str, call: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        retrying = Retrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self._settings.retry_max_attempts),
            wait=self._retry_wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            return await asyncio.to_thread(retrying, call)
        except HttpError as e:
            raise self._translate_http_error(e, operation, user)
        except (ConnectionError, TimeoutError, TransportError) as e:
            logger.error("%s failed for user %s after retries: %s", operation, user, e)
            raise GoogleAPIError(
                message="Google is not reachable right now. Please try again later.",
                status_code=503,
                retry_after=int(self._settings.retry_max_wait) or None,
                context={"operation": operation, "error_type": type(e).__name__},
            )

    def _translate_http_error(self, error: HttpError, operation: str, user: str) -> Exception:
        status = error.resp.status
        reason = getattr(error, "reason", None) or str(error)
        context = {"operation": operation, "status": status}

        if status == 401:
            self.token_store.delete(user)
            return AuthenticationRequiredError(user=user, context=context)
        if status == 400:
            return ValidationError(message=f"Google rejected the request: {reason}", context=context)
        if status == 404:
            return NotFoundError(resource="Google resource", context=context)
        if status in TRANSIENT_STATUSES:
            logger.error("%s still failing after retries (HTTP %d)", operation, status)
            return GoogleAPIError(
                message="Google is temporarily unavailable. Please try again later.",
                status_code=503,
                retry_after=int(self._settings.retry_max_wait) or None,
                context=context,
            )
        logger.warning("%s failed with HTTP %d: %s", operation, status, reason)
        return GoogleAPIError(message=f"Google API request failed: {reason}", context=context)
