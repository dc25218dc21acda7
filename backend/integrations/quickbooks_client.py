"""QuickBooks Online (Intuit) OAuth2 and accounting API client.

Covers the three calls the backend makes against Intuit: building the
authorization URL, the token endpoint (authorization-code and
refresh-token grants, HTTP Basic client authentication), and the
company-info lookup used for health checks and client naming.
"""

import logging
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

PROVIDER_NAME = "QuickBooks"

AUTHORIZATION_URL = "https://appcenter.intuit.com/connect/oauth2"
TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
DEFAULT_SCOPE = "com.intuit.quickbooks.accounting"

_API_BASE_URLS: dict[str, str] = {
    "sandbox": "https://sandbox-quickbooks.api.intuit.com/v3",
    "production": "https://quickbooks.api.intuit.com/v3",
}

_REDACTED_FIELDS = frozenset({"code", "refresh_token"})


def _redact_form(form: dict[str, str]) -> dict[str, str]:
    """Return a copy of a token request body safe for logging."""
    return {k: ("***" if k in _REDACTED_FIELDS else v) for k, v in form.items()}


class QuickBooksClient:
    """HTTP client for Intuit OAuth2 and the QBO accounting API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        environment: str = "sandbox",
        timeout: float = 30.0,
    ):
        if environment not in _API_BASE_URLS:
            raise ValueError(f"Unknown Intuit environment: {environment!r}")
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._environment = environment
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

    @property
    def environment(self) -> str:
        return self._environment

    @property
    def api_base_url(self) -> str:
        return _API_BASE_URLS[self._environment]

    def authorization_url(self, state: str, scope: str = DEFAULT_SCOPE) -> str:
        """Build the Intuit consent URL for the authorization-code flow."""
        params = {
            "client_id": self._client_id,
            "scope": scope,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "state": state,
            "access_type": "offline",
        }
        return f"{AUTHORIZATION_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> TokenSet:
        """Exchange an authorization code for tokens."""
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            }
        )

    def refresh_tokens(self, refresh_token: str) -> TokenSet:
        """Run the refresh-token grant.

        Raises:
            InvalidGrantError: The refresh token was revoked or expired.
        """
        return self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )

    def get_company_info(self, access_token: str, realm_id: str) -> dict:
        """Fetch the CompanyInfo entity for a realm.

        Raises:
            ProviderAuthError: HTTP 401, the token was rejected.
            ProviderAPIError: Any other non-2xx response.
            ProviderConnectionError: Network failure or timeout.
        """
        url = f"{self.api_base_url}/company/{realm_id}/companyinfo/{realm_id}"
        try:
            response = self._client.request(
                "GET",
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.TimeoutException as exc:
            raise ProviderConnectionError(
                f"QuickBooks company info timed out: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc
        except httpx.RequestError as exc:
            raise ProviderConnectionError(
                f"QuickBooks connection failed: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc

        status = response.status_code
        if status == 401:
            raise ProviderAuthError(
                f"QuickBooks rejected the access token (HTTP {status})",
                provider_name=PROVIDER_NAME,
            )
        if status >= 400:
            raise ProviderAPIError(
                f"QuickBooks API error (HTTP {status})",
                provider_name=PROVIDER_NAME,
                status_code=status,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderDataError(
                "QuickBooks company info was not valid JSON",
                provider_name=PROVIDER_NAME,
            ) from exc
        return data.get("CompanyInfo", data)

    def get_company_name(self, access_token: str, realm_id: str) -> str | None:
        """Return the company's display name, or ``None`` if absent."""
        info = self.get_company_info(access_token, realm_id)
        return info.get("CompanyName") or info.get("LegalName")

    def _token_request(self, form: dict[str, str]) -> TokenSet:
        """POST to the token endpoint and parse the response."""
        try:
            response = self._client.request(
                "POST",
                TOKEN_URL,
                data=form,
                auth=(self._client_id, self._client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException as exc:
            raise ProviderConnectionError(
                f"QuickBooks token endpoint timed out: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc
        except httpx.RequestError as exc:
            raise ProviderConnectionError(
                f"QuickBooks token endpoint unreachable: {exc}",
                provider_name=PROVIDER_NAME,
            ) from exc

        status = response.status_code
        if status >= 400:
            error_code = ""
            try:
                body = response.json()
                error_code = body.get("error", "") if isinstance(body, dict) else ""
            except ValueError:
                pass

            logger.warning(
                "QuickBooks token request failed: HTTP %d error=%s request=%s",
                status,
                error_code or "unknown",
                _redact_form(form),
            )
            if error_code == "invalid_grant":
                raise InvalidGrantError(
                    "QuickBooks rejected the grant (invalid_grant)",
                    provider_name=PROVIDER_NAME,
                )
            if status in (401, 403) or error_code == "invalid_client":
                raise ProviderAuthError(
                    f"QuickBooks rejected the client credentials (HTTP {status})",
                    provider_name=PROVIDER_NAME,
                )
            raise ProviderAPIError(
                f"QuickBooks token request failed (HTTP {status})",
                provider_name=PROVIDER_NAME,
                status_code=status,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderDataError(
                "QuickBooks token response was not valid JSON",
                provider_name=PROVIDER_NAME,
            ) from exc
        return TokenSet.from_response(data, provider_name=PROVIDER_NAME)
