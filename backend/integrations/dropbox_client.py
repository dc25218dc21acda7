"""Dropbox OAuth2 (PKCE) client."""

import base64
import hashlib
import logging
import secrets
from urllib.parse import urlencode

import httpx

from integrations.exceptions import (
    InvalidGrantError,
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
)
from integrations.oauth_protocol import TokenSet

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Dropbox"

AUTHORIZATION_URL = "https://www.dropbox.com/oauth2/authorize"
TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
CURRENT_ACCOUNT_URL = "https://api.dropboxapi.com/2/users/get_current_account"


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE ``(code_verifier, code_challenge)`` pair (S256)."""
    verifier = secrets.token_urlsafe(64)[:128]
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


class DropboxClient:
    """HTTP client for the Dropbox OAuth2 endpoints."""

    def __init__(
        self,
        app_key: str,
        app_secret: str = "",
        redirect_uri: str = "",
        timeout: float = 30.0,
    ):
        self._app_key = app_key
        self._app_secret = app_secret
        self._redirect_uri = redirect_uri
        self._client = httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        return bool(self._app_key and self._redirect_uri)

    def authorization_url(self, state: str, code_challenge: str) -> str:
        """Build the consent URL requesting offline (refreshable) access."""
        params = {
            "client_id": self._app_key,
            "response_type": "code",
            "redirect_uri": self._redirect_uri,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "token_access_type": "offline",
        }
        return f"{AUTHORIZATION_URL}?{urlencode(params)}"

    def exchange_code(self, code: str, code_verifier: str) -> TokenSet:
        """Exchange an authorization code plus its PKCE verifier for tokens."""
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier,
                "client_id": self._app_key,
                "redirect_uri": self._redirect_uri,
            }
        )

    def refresh_tokens(self, refresh_token: str) -> TokenSet:
        """Run the refresh-token grant. Dropbox does not rotate refresh tokens."""
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._app_key,
        }
        if self._app_secret:
            form["client_secret"] = self._app_secret
        return self._token_request(form)

    def get_current_account(self, access_token: str) -> dict:
        """Return the linked account, used to validate a stored token."""
        response = self._send(
            "POST",
            CURRENT_ACCOUNT_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if response.status_code in (401, 403):
            raise ProviderAuthError(
                f"Dropbox rejected the access token (HTTP {response.status_code})",
                provider_name=PROVIDER_NAME,
            )
        if response.status_code >= 400:
            raise ProviderAPIError(
                f"Dropbox API error (HTTP {response.status_code})",
                provider_name=PROVIDER_NAME,
                status_code=response.status_code,
            )
        return self._json(response)

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderConnectionError(
                f"Dropbox request timed out: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc
        except httpx.RequestError as exc:
            raise ProviderConnectionError(
                f"Dropbox connection failed: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc

    def _json(self, response: httpx.Response) -> dict:
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderDataError(
                "Dropbox response was not valid JSON",
                provider_name=PROVIDER_NAME,
            ) from exc

    def _token_request(self, form: dict[str, str]) -> TokenSet:
        response = self._send("POST", TOKEN_URL, data=form)
        if response.status_code >= 400:
            error_code = ""
            try:
                body = response.json()
                if isinstance(body, dict):
                    error_code = body.get("error", "")
            except ValueError:
                pass
            logger.warning(
                "Dropbox token request failed: HTTP %d error=%s grant_type=%s",
                response.status_code,
                error_code or "unknown",
                form.get("grant_type"),
            )
            if error_code == "invalid_grant":
                raise InvalidGrantError(
                    "Dropbox rejected the grant (invalid_grant)",
                    provider_name=PROVIDER_NAME,
                )
            raise ProviderAPIError(
                f"Dropbox token request failed (HTTP {response.status_code})",
                provider_name=PROVIDER_NAME,
                status_code=response.status_code,
            )
        return TokenSet.from_response(self._json(response), provider_name=PROVIDER_NAME)
