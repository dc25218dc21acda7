"""Dropbox service - firm-level Dropbox connection via OAuth2 PKCE."""

import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from integrations.dropbox_client import DropboxClient, generate_pkce_pair
from integrations.exceptions import InvalidGrantError, ProviderAuthError, ProviderError
from models import Firm, Profile, utc_now
from services.audit_service import AuditService
from services.connection_service import CallbackResult, frontend_redirect
from services.exceptions import CryptoError, IntegrationNotConfigured, InvalidOAuthState
from services.oauth_state_service import OAuthStateService
from services.token_vault import TokenVault

logger = logging.getLogger(__name__)

_REFRESH_MARGIN = timedelta(minutes=5)


class DropboxService:
    """Connects a firm's Dropbox account. Tokens are vault-encrypted on the firm."""

    REDIRECT_PATH = "/settings"

    def __init__(
        self,
        client: DropboxClient,
        vault: TokenVault | None = None,
        state_service: OAuthStateService | None = None,
    ):
        self._client = client
        self._vault = vault or TokenVault()
        self._states = state_service or OAuthStateService()

    def begin_auth(self, db: Session, profile: Profile) -> str:
        """Issue a PKCE-bound state and return the Dropbox consent URL.

        Raises:
            IntegrationNotConfigured: No app key/redirect URI, or no firm.
        """
        if not self._client.is_configured():
            raise IntegrationNotConfigured("Dropbox integration is not configured")
        if not profile.firm_id:
            raise IntegrationNotConfigured("User is not associated with a firm")

        verifier, challenge = generate_pkce_pair()
        state = self._states.issue(
            db, profile.id, environment=None, provider="dropbox", code_verifier=verifier
        )
        return self._client.authorization_url(state, challenge)

    def handle_callback(
        self,
        db: Session,
        code: str | None,
        state: str | None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> CallbackResult:
        if error:
            logger.warning("Dropbox OAuth denied: %s (%s)", error, error_description)
            return self._fail(error, error_description or "Authorization was not granted")
        if not code or not state:
            return self._fail("invalid_request", "Missing required OAuth parameters")

        try:
            context = self._states.validate_and_consume(db, state, provider="dropbox")
        except InvalidOAuthState as e:
            return self._fail("invalid_state", str(e))
        db.commit()

        profile = db.get(Profile, context.user_id)
        firm = db.get(Firm, profile.firm_id) if profile and profile.firm_id else None
        if firm is None or not context.code_verifier:
            return self._fail("invalid_request", "OAuth session is incomplete")

        try:
            tokens = self._client.exchange_code(code, context.code_verifier)
        except ProviderError as e:
            logger.error("Dropbox token exchange failed for firm %s: %s", firm.id, e)
            return self._fail("token_exchange_failed", "Could not exchange the authorization code for tokens")

        try:
            self._store_tokens(firm, tokens.access_token, tokens.refresh_token, tokens.expires_in)
        except (CryptoError, IntegrationNotConfigured) as e:
            db.rollback()
            logger.error("Could not store Dropbox tokens for firm %s: %s", firm.id, e)
            return self._fail("token_storage_failed", "Tokens could not be stored securely")
        firm.dropbox_account_id = tokens.account_id
        AuditService.record(
            db,
            "dropbox_connected",
            "OAuth Event: dropbox_connected",
            user_id=context.user_id,
        )
        db.commit()
        logger.info("Dropbox connected for firm %s", firm.id)
        return CallbackResult(
            redirect_url=frontend_redirect(self.REDIRECT_PATH, {"dropbox_connected": "true"}),
            success=True,
        )

    def disconnect(self, db: Session, firm: Firm) -> None:
        """Forget the firm's Dropbox tokens (flushes, does not commit)."""
        firm.dropbox_connected = False
        firm.dropbox_access_token = None
        firm.dropbox_refresh_token = None
        firm.dropbox_token_expires_at = None
        firm.dropbox_account_id = None
        AuditService.record(db, "dropbox_disconnected", "OAuth Event: dropbox_disconnected")
        db.flush()

    def validate(self, db: Session, firm: Firm) -> bool:
        """Check the stored token, refreshing it when expired.

        Returns False (and marks the firm disconnected) when Dropbox no
        longer accepts the grant.
        """
        if not firm.dropbox_connected or not firm.dropbox_access_token:
            return False

        try:
            if firm.dropbox_token_expires_at and firm.dropbox_token_expires_at - utc_now() < _REFRESH_MARGIN:
                self._refresh(firm)
            self._client.get_current_account(self._vault.decrypt(firm.dropbox_access_token))
        except ProviderAuthError:
            try:
                self._refresh(firm)
                self._client.get_current_account(self._vault.decrypt(firm.dropbox_access_token))
            except (InvalidGrantError, ProviderAuthError) as e:
                logger.warning("Dropbox grant rejected for firm %s: %s", firm.id, e)
                self.disconnect(db, firm)
                return False
        db.flush()
        return True

    def _refresh(self, firm: Firm) -> None:
        refresh_token = self._vault.decrypt(firm.dropbox_refresh_token or "")
        if not refresh_token:
            raise InvalidGrantError("No Dropbox refresh token stored", provider_name="Dropbox")
        tokens = self._client.refresh_tokens(refresh_token)
        self._store_tokens(firm, tokens.access_token, tokens.refresh_token or refresh_token, tokens.expires_in)

    def _store_tokens(
        self, firm: Firm, access_token: str, refresh_token: str | None, expires_in: int
    ) -> None:
        firm.dropbox_access_token = self._vault.encrypt(access_token)
        firm.dropbox_refresh_token = self._vault.encrypt(refresh_token) if refresh_token else None
        firm.dropbox_token_expires_at = utc_now() + timedelta(seconds=expires_in)
        firm.dropbox_connected = True

    def _fail(self, error: str, description: str) -> CallbackResult:
        return CallbackResult(
            redirect_url=frontend_redirect(
                self.REDIRECT_PATH, {"error": error, "error_description": description}
            ),
            success=False,
            error=error,
        )
