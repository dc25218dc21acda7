"""Provider-neutral OAuth data types shared by the integration clients."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from integrations.exceptions import ProviderDataError


@dataclass
class TokenSet:
    """Tokens returned by an OAuth2 token endpoint.

    Attributes:
        access_token: Bearer token for API calls.
        refresh_token: Long-lived token for the refresh grant. Some
            providers omit it on refresh; callers keep the previous one.
        expires_in: Access-token lifetime in seconds.
        token_type: Usually ``"bearer"``.
        scope: Granted scope, when the provider reports it.
        refresh_expires_in: Refresh-token lifetime in seconds (Intuit only).
        account_id: Provider account identifier (Dropbox only).
    """

    access_token: str
    refresh_token: str | None
    expires_in: int
    token_type: str = "bearer"
    scope: str | None = None
    refresh_expires_in: int | None = None
    account_id: str | None = None

    def expires_at(self, now: datetime) -> datetime:
        """Absolute access-token expiry relative to ``now``."""
        return now + timedelta(seconds=self.expires_in)

    @classmethod
    def from_response(cls, data: dict, provider_name: str = "") -> "TokenSet":
        """Build a TokenSet from a token-endpoint JSON body.

        Raises:
            ProviderDataError: If ``access_token`` is missing or
                ``expires_in`` is not an integer.
        """
        access_token = data.get("access_token")
        if not access_token:
            raise ProviderDataError(
                "Token response did not include an access_token",
                provider_name=provider_name,
            )
        try:
            expires_in = int(data.get("expires_in", 3600))
        except (TypeError, ValueError) as e:
            raise ProviderDataError(
                f"Invalid expires_in in token response: {data.get('expires_in')!r}",
                provider_name=provider_name,
            ) from e

        refresh_expires_in = data.get("x_refresh_token_expires_in")
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_in=expires_in,
            token_type=data.get("token_type", "bearer"),
            scope=data.get("scope"),
            refresh_expires_in=int(refresh_expires_in) if refresh_expires_in is not None else None,
            account_id=data.get("account_id"),
        )
