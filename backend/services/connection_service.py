"""Connection orchestrator - the QuickBooks three-legged OAuth flow.

Builds the authorization URL, handles the provider redirect, exchanges
the code for tokens, and records the connection. Every callback outcome
is a redirect to the frontend; failures carry ``error`` and
``error_description`` query parameters.
"""

import logging
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import ProviderError
from integrations.quickbooks_client import DEFAULT_SCOPE, QuickBooksClient
from models import Client, Profile, QBOConnection, utc_now
from services.audit_service import AuditService
from services.client_service import ClientService
from services.exceptions import (
    ClientNotFound,
    CryptoError,
    IntegrationNotConfigured,
    InvalidOAuthState,
)
from services.firm_integration_service import (
    FirmIntegrationService,
    IntuitCredentials,
    default_qbo_client_factory,
)
from services.oauth_state_service import OAuthStateContext, OAuthStateService
from services.token_vault import TokenVault

logger = logging.getLogger(__name__)

QBOClientFactory = Callable[[IntuitCredentials, str | None], QuickBooksClient]


@dataclass
class CallbackResult:
    """Outcome of an OAuth callback: always a redirect."""

    redirect_url: str
    success: bool
    error: str | None = None
    client_id: str | None = None


def frontend_redirect(path: str, params: dict[str, str]) -> str:
    base = settings.FRONTEND_URL.rstrip("/")
    return f"{base}{path}?{urlencode(params)}"


class ConnectionService:
    """Drives QuickBooks connections for a firm's clients."""

    REDIRECT_PATH = "/dashboard"

    def __init__(
        self,
        vault: TokenVault | None = None,
        state_service: OAuthStateService | None = None,
        integrations: FirmIntegrationService | None = None,
        client_factory: QBOClientFactory | None = None,
    ):
        self._vault = vault or TokenVault()
        self._states = state_service or OAuthStateService()
        self._integrations = integrations or FirmIntegrationService(self._vault)
        self._client_factory = client_factory or default_qbo_client_factory

    def begin_auth(
        self,
        db: Session,
        profile: Profile,
        client_id: str | None = None,
        environment: str | None = None,
    ) -> str:
        """Issue a state and return the Intuit authorization URL.

        Raises:
            IntegrationNotConfigured: The user has no firm, or the firm has
                no Intuit app credentials.
            ClientNotFound: ``client_id`` is not one of the firm's clients.
        """
        if not profile.firm_id:
            raise IntegrationNotConfigured("User is not associated with a firm")
        credentials = self._integrations.resolve(db, profile.firm_id)
        if client_id is not None:
            ClientService.get(db, profile.firm_id, client_id)

        env = environment or credentials.environment
        state = self._states.issue(db, profile.id, env, client_id=client_id)
        with self._client_factory(credentials, env) as qbo:
            url = qbo.authorization_url(state, scope=settings.INTUIT_SCOPE or DEFAULT_SCOPE)
        logger.info("Started QuickBooks OAuth for user %s (env=%s)", profile.id, env)
        return url

    def handle_callback(
        self,
        db: Session,
        code: str | None,
        state: str | None,
        realm_id: str | None,
        error: str | None = None,
        error_description: str | None = None,
    ) -> CallbackResult:
        """Complete the OAuth flow. Never raises for expected failures."""
        if error:
            logger.warning("QuickBooks OAuth denied: %s (%s)", error, error_description)
            return self._fail(error, error_description or "Authorization was not granted")

        if not code or not state or not realm_id:
            return self._fail("invalid_request", "Missing required OAuth parameters")

        try:
            context = self._states.validate_and_consume(db, state)
        except InvalidOAuthState as e:
            return self._fail("invalid_state", str(e))
        db.commit()

        profile = db.get(Profile, context.user_id)
        firm_id = profile.firm_id if profile else None
        if not firm_id:
            return self._fail(
                "integration_not_configured", "User is not associated with a firm", db=db
            )

        try:
            credentials = self._integrations.resolve(db, firm_id)
        except (IntegrationNotConfigured, CryptoError) as e:
            return self._fail("integration_not_configured", str(e), db=db)

        with self._client_factory(credentials, context.environment) as qbo:
            return self._connect(db, qbo, code, realm_id, firm_id, context, credentials)

    def _connect(
        self,
        db: Session,
        qbo: QuickBooksClient,
        code: str,
        realm_id: str,
        firm_id: str,
        context: OAuthStateContext,
        credentials: IntuitCredentials,
    ) -> CallbackResult:
        try:
            tokens = qbo.exchange_code(code)
        except ProviderError as e:
            logger.error("QuickBooks token exchange failed for realm %s: %s", realm_id, e)
            return self._fail(
                "token_exchange_failed",
                "Could not exchange the authorization code for tokens",
                db=db,
                user_id=context.user_id,
            )

        client = self._find_or_create_client(
            db, firm_id, realm_id, context.client_id, context.user_id, qbo, tokens.access_token
        )
        now = utc_now()
        try:
            self._vault.store(
                db,
                client.id,
                tokens.access_token,
                tokens.refresh_token or "",
                tokens.expires_at(now),
                realm_id,
                environment=context.environment or credentials.environment,
                scope=tokens.scope,
            )
        except (CryptoError, IntegrationNotConfigured) as e:
            db.rollback()
            logger.error("Could not store QuickBooks tokens for realm %s: %s", realm_id, e)
            return self._fail("token_storage_failed", "Tokens could not be stored securely")

        client.realm_id = realm_id
        client.connection_status = "connected"
        client.last_sync_at = now
        AuditService.record(
            db,
            "oauth_connected",
            "OAuth Event: oauth_connected",
            message=f"QuickBooks company {realm_id} connected",
            client_id=client.id,
            user_id=context.user_id,
        )
        db.commit()
        logger.info("QuickBooks connected: client %s realm %s", client.id, realm_id)

        return CallbackResult(
            redirect_url=frontend_redirect(
                self.REDIRECT_PATH,
                {"qb_connected": "true", "code": code, "realmId": realm_id, "clientId": client.id},
            ),
            success=True,
            client_id=client.id,
        )

    def disconnect(self, db: Session, firm_id: str, client_id: str) -> bool:
        """Revoke the client's tokens. Returns False if it had no connection."""
        ClientService.get(db, firm_id, client_id)
        return self._vault.revoke(db, client_id)

    def connection_status(self, db: Session, firm_id: str, client_id: str) -> dict:
        """Summarize a client's connection without exposing tokens."""
        client = ClientService.get(db, firm_id, client_id)
        conn = db.query(QBOConnection).filter(QBOConnection.client_id == client_id).first()
        if conn is None:
            return {
                "client_id": client.id,
                "connected": False,
                "connection_status": client.connection_status,
                "realm_id": client.realm_id,
                "token_expires_at": None,
                "refresh_token_updated_at": None,
                "needs_refresh": False,
                "environment": None,
                "last_error": None,
            }

        needs_refresh = False
        if conn.connection_status == "connected":
            needs_refresh = self._vault.ensure_valid(db, client_id).needs_refresh
        return {
            "client_id": client.id,
            "connected": conn.connection_status == "connected",
            "connection_status": conn.connection_status,
            "realm_id": conn.realm_id,
            "token_expires_at": conn.token_expires_at,
            "refresh_token_updated_at": conn.refresh_token_updated_at,
            "needs_refresh": needs_refresh,
            "environment": conn.environment,
            "last_error": conn.last_error,
        }

    def _find_or_create_client(
        self,
        db: Session,
        firm_id: str,
        realm_id: str,
        requested_client_id: str | None,
        user_id: str,
        qbo: QuickBooksClient,
        access_token: str,
    ) -> Client:
        """Resolve the client for a realm, creating one if needed.

        The client that already holds ``realm_id`` always wins. The client
        named when the flow started is bound only if no client in the firm
        owns the realm yet and it has no other realm of its own.
        """
        owner = ClientService.find_by_realm(db, firm_id, realm_id)
        if owner is not None:
            if requested_client_id and requested_client_id != owner.id:
                logger.warning(
                    "Realm %s already belongs to client %s; ignoring requested client %s",
                    realm_id, owner.id, requested_client_id,
                )
            if not owner.is_active:
                owner.is_active = True
            return owner

        if requested_client_id:
            try:
                client = ClientService.get(db, firm_id, requested_client_id)
            except ClientNotFound:
                client = None
            if client is not None and client.realm_id is None:
                return client

        name = self._lookup_company_name(qbo, access_token, realm_id)
        return ClientService.create(
            db, firm_id, name or f"QuickBooks Company {realm_id}", created_by=user_id, realm_id=realm_id
        )

    @staticmethod
    def _lookup_company_name(qbo: QuickBooksClient, access_token: str, realm_id: str) -> str | None:
        try:
            return qbo.get_company_name(access_token, realm_id)
        except ProviderError as e:
            logger.warning("Could not fetch company name for realm %s: %s", realm_id, e)
            return None

    def _fail(
        self,
        error: str,
        description: str,
        db: Session | None = None,
        user_id: str | None = None,
    ) -> CallbackResult:
        if db is not None:
            AuditService.record(
                db,
                "oauth_failed",
                "OAuth Event: oauth_failed",
                message=f"{error}: {description}",
                user_id=user_id,
            )
            db.commit()
        return CallbackResult(
            redirect_url=frontend_redirect(
                self.REDIRECT_PATH, {"error": error, "error_description": description}
            ),
            success=False,
            error=error,
        )
