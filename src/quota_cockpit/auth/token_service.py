"""OAuth token service for the Cloud Code identity provider.

Refreshes access tokens, resolves account emails and runs the browser-based
authorization-code (PKCE) login. Each token exchange is a single attempt;
retry policy lives in the Cloud Code client, not here.
"""

import asyncio
import base64
import hashlib
import secrets
import time
import urllib.parse
import webbrowser
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from threading import Thread
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
from pydantic import ValidationError
from structlog import get_logger

from quota_cockpit.auth.credential_store import CredentialStore
from quota_cockpit.auth.models import Credential, TokenResponse, TokenStatus, UserInfo
from quota_cockpit.config.oauth import OAuthSettings
from quota_cockpit.exceptions import (
    EmailResolutionError,
    OAuthCallbackError,
    OAuthLoginError,
    TokenExchangeError,
)


logger = get_logger(__name__)


@dataclass
class OAuthCallbackResult:
    """Container for OAuth callback results."""

    authorization_code: str | None = None
    error: str | None = None


def _create_oauth_callback_handler(
    expected_state: str, result: OAuthCallbackResult
) -> type[BaseHTTPRequestHandler]:
    """Create the callback handler that captures the authorization code.

    Args:
        expected_state: Expected state parameter for CSRF protection
        result: Mutable container to store callback results
    """

    class OAuthCallbackHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            parsed_url = urlparse(self.path)
            if parsed_url.path == "/favicon.ico":
                self.send_response(404)
                self.end_headers()
                return

            query_params = parse_qs(parsed_url.query)
            received_state = query_params.get("state", [None])[0]

            if received_state != expected_state:
                result.error = "Invalid state parameter"
                self._send_error("Invalid state parameter")
            elif "code" in query_params:
                result.authorization_code = query_params["code"][0]
                self._send_success()
            elif "error" in query_params:
                result.error = query_params.get(
                    "error_description", query_params["error"]
                )[0]
                self._send_error(result.error)
            else:
                result.error = "No authorization code received"
                self._send_error("No authorization code received")

        def _send_success(self) -> None:
            self.send_response(200)
            self.end_headers()
            self.wfile.write(b"Login successful! You can close this window.")

        def _send_error(self, message: str | None) -> None:
            self.send_response(400)
            self.end_headers()
            self.wfile.write(f"Error: {message}".encode())

        def log_message(self, format: str, *args: Any) -> None:
            pass  # keep the terminal quiet

    return OAuthCallbackHandler


def _truncate_error_text(response_text: str) -> str:
    """Truncate response text for compact error logging."""
    if len(response_text) > 200:
        return f"{response_text[:100]}...{response_text[-50:]}"
    if len(response_text) > 100:
        return f"{response_text[:100]}..."
    return response_text


class OAuthTokenService:
    """Produces usable access tokens and new credentials.

    Supports connection pooling by reusing a shared httpx.AsyncClient.
    """

    def __init__(
        self,
        settings: OAuthSettings,
        store: CredentialStore,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self._shared_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._shared_client is not None:
            yield self._shared_client
            return
        async with httpx.AsyncClient(timeout=self.settings.request_timeout) as client:
            yield client

    def _client_fields(self) -> dict[str, str]:
        fields = {}
        if self.settings.client_id:
            fields["client_id"] = self.settings.client_id
        if self.settings.client_secret:
            fields["client_secret"] = self.settings.client_secret
        return fields

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    async def _post_token(self, form: dict[str, str], operation: str) -> TokenResponse:
        try:
            async with self._client() as client, asyncio.timeout(
                self.settings.request_timeout
            ):
                response = await client.post(
                    self.settings.token_url,
                    data=form,
                    headers={"Accept": "application/json"},
                )
        except TimeoutError as e:
            logger.warning("oauth_token_request_timeout", operation=operation)
            raise TokenExchangeError(f"{operation} timed out") from e
        except httpx.HTTPError as e:
            logger.warning("oauth_token_request_failed", operation=operation, error=str(e))
            raise TokenExchangeError(f"{operation} failed: {e}") from e

        if response.status_code != HTTPStatus.OK:
            error_text = _truncate_error_text(response.text)
            logger.error(
                "oauth_token_request_rejected",
                operation=operation,
                status_code=response.status_code,
                response_preview=error_text,
            )
            raise TokenExchangeError(
                f"{operation} failed: {response.status_code} - {error_text}",
                status_code=response.status_code,
                response_text=response.text,
            )

        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenExchangeError(
                f"{operation} returned an unreadable response",
                status_code=response.status_code,
                response_text=response.text,
            ) from e

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Exchange a refresh token for a new access token (one attempt).

        Raises:
            TokenExchangeError: On any HTTP, network or parse failure
        """
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            **self._client_fields(),
        }
        return await self._post_token(form, "Token refresh")

    async def fetch_user_email(self, access_token: str) -> str | None:
        """Resolve the account email; any failure yields None."""
        try:
            async with self._client() as client, asyncio.timeout(
                self.settings.request_timeout
            ):
                response = await client.get(
                    self.settings.userinfo_url,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            if response.status_code != HTTPStatus.OK:
                logger.debug(
                    "userinfo_request_rejected", status_code=response.status_code
                )
                return None
            return UserInfo.model_validate(response.json()).email or None
        except (TimeoutError, httpx.HTTPError, ValueError, ValidationError) as e:
            logger.debug("userinfo_request_failed", error=str(e))
            return None

    # ------------------------------------------------------------------
    # Token status
    # ------------------------------------------------------------------

    async def get_access_token_status(
        self, credential: Credential | None = None
    ) -> TokenStatus:
        """Return a usable access token for `credential` (default: active).

        Refreshes at most once. A successful refresh updates the credential
        in place and persists it when it is stored.
        """
        if credential is None:
            credential = self.store.get_credential()
            if credential is None:
                return TokenStatus.unauthenticated()

        if credential.has_fresh_access_token(self.settings.refresh_margin_seconds):
            return TokenStatus.ok(credential.access_token or "")

        if not credential.refresh_token:
            return TokenStatus.expired()

        if credential.is_invalid:
            return TokenStatus.invalid_grant()

        try:
            token_response = await self.refresh(credential.refresh_token)
        except TokenExchangeError as e:
            if e.is_invalid_grant:
                logger.warning("token_refresh_invalid_grant", email=credential.email)
                credential.is_invalid = True
                if self.store.has_account(credential.email):
                    self.store.mark_account_invalid(credential.email)
                return TokenStatus.invalid_grant()
            logger.warning(
                "token_refresh_failed", email=credential.email, error=e.message
            )
            return TokenStatus.refresh_failed(e.message)

        if not token_response.access_token:
            return TokenStatus.refresh_failed(
                "Token response did not include an access token"
            )

        credential.access_token = token_response.access_token
        credential.access_token_expiry = token_response.expiry_from()
        if token_response.refresh_token:
            credential.refresh_token = token_response.refresh_token

        if self.store.has_account(credential.email):
            self.store.save_credential(credential)

        logger.debug(
            "token_refreshed",
            email=credential.email,
            expires_at=credential.access_token_expiry.isoformat(),
        )
        return TokenStatus.ok(credential.access_token)

    async def build_credential_from_refresh_token(
        self, refresh_token: str, fallback_email: str | None = None
    ) -> Credential:
        """Create a credential from a bare refresh token.

        Raises:
            TokenExchangeError: If the refresh exchange fails
            EmailResolutionError: If no email can be determined
        """
        token_response = await self.refresh(refresh_token)
        if not token_response.access_token:
            raise TokenExchangeError("Token response did not include an access token")

        email = await self.fetch_user_email(token_response.access_token)
        if not email:
            email = fallback_email
        if not email:
            raise EmailResolutionError()

        return Credential(
            email=email,
            refresh_token=token_response.refresh_token or refresh_token,
            access_token=token_response.access_token,
            access_token_expiry=token_response.expiry_from(),
        )

    # ------------------------------------------------------------------
    # Authorization-code login
    # ------------------------------------------------------------------

    def generate_pkce_pair(self) -> tuple[str, str]:
        """Generate PKCE code verifier and challenge pair using SHA256.

        Returns:
            Tuple of (code_verifier, code_challenge)
        """
        code_verifier = secrets.token_urlsafe(32)
        code_challenge = (
            base64.urlsafe_b64encode(hashlib.sha256(code_verifier.encode()).digest())
            .decode()
            .rstrip("=")
        )
        return code_verifier, code_challenge

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.settings.client_id or "",
            "redirect_uri": self.settings.redirect_uri,
            "scope": " ".join(self.settings.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            # offline access is required to receive a refresh token
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{self.settings.authorize_url}?{urllib.parse.urlencode(params)}"

    async def exchange_authorization_code(
        self, code: str, code_verifier: str
    ) -> Credential:
        """Exchange an authorization code for a new credential.

        Raises:
            OAuthLoginError: If the exchange fails or no refresh token is issued
            EmailResolutionError: If the account email cannot be resolved
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.redirect_uri,
            "code_verifier": code_verifier,
            **self._client_fields(),
        }
        try:
            token_response = await self._post_token(form, "Token exchange")
        except TokenExchangeError as e:
            raise OAuthLoginError(e.message) from e

        if not token_response.access_token or not token_response.refresh_token:
            raise OAuthLoginError("Token exchange did not return a refresh token")

        email = await self.fetch_user_email(token_response.access_token)
        if not email:
            raise EmailResolutionError()

        return Credential(
            email=email,
            refresh_token=token_response.refresh_token,
            access_token=token_response.access_token,
            access_token_expiry=token_response.expiry_from(),
        )

    async def login(self, open_browser: bool = True) -> Credential:
        """Run the browser login and store the resulting credential as active.

        Raises:
            OAuthLoginError: If login fails
            OAuthCallbackError: If callback processing fails or times out
        """
        if not self.settings.client_id:
            raise OAuthLoginError("OAuth client id is not configured")

        state = secrets.token_urlsafe(32)
        code_verifier, code_challenge = self.generate_pkce_pair()

        result = OAuthCallbackResult()
        handler_class = _create_oauth_callback_handler(state, result)

        try:
            server = HTTPServer(("localhost", self.settings.callback_port), handler_class)
        except OSError as e:
            raise OAuthLoginError(
                f"Cannot listen on port {self.settings.callback_port}: {e}"
            ) from e
        server_thread = Thread(target=server.serve_forever, daemon=True)
        server_thread.start()

        try:
            auth_url = self.build_authorization_url(state, code_challenge)
            logger.info("oauth_login_started", auth_url=auth_url)
            if open_browser:
                webbrowser.open(auth_url)

            code = await self._wait_for_callback(result, time.monotonic())
            credential = await self.exchange_authorization_code(code, code_verifier)
        finally:
            server.shutdown()
            server.server_close()
            server_thread.join(timeout=1)

        self.store.save_credential(credential)
        self.store.clear_account_invalid(credential.email)
        self.store.set_active_account(credential.email)
        logger.info(
            "oauth_login_completed",
            email=credential.email,
            logged_in_at=datetime.now(UTC).isoformat(),
        )
        return credential

    async def _wait_for_callback(
        self, result: OAuthCallbackResult, start_time: float
    ) -> str:
        """Wait for the OAuth callback with timeout."""
        while result.authorization_code is None and result.error is None:
            if time.monotonic() - start_time > self.settings.callback_timeout:
                raise OAuthCallbackError("OAuth callback failed: Login timeout")
            await asyncio.sleep(0.1)

        if result.error:
            raise OAuthCallbackError(f"OAuth callback failed: {result.error}")

        if not result.authorization_code:
            raise OAuthLoginError("No authorization code received")

        return result.authorization_code
