"""Firm integration service - per-firm Intuit app credentials."""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from config import settings
from integrations.quickbooks_client import QuickBooksClient
from models import FirmIntegration
from services.exceptions import IntegrationNotConfigured
from services.token_vault import TokenVault

logger = logging.getLogger(__name__)

VALID_ENVIRONMENTS = frozenset({"sandbox", "production"})


@dataclass
class IntuitCredentials:
    """Resolved Intuit app credentials for one firm."""

    client_id: str
    client_secret: str
    redirect_uri: str
    environment: str
    source: str  # "firm" | "settings"


def default_redirect_uri() -> str:
    """Callback URL used when neither the firm nor settings name one."""
    return settings.INTUIT_REDIRECT_URI or (
        f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/quickbooks/callback"
    )


def default_qbo_client_factory(
    credentials: IntuitCredentials, environment: str | None = None
) -> QuickBooksClient:
    """Build a QuickBooks client for a firm's credentials."""
    return QuickBooksClient(
        client_id=credentials.client_id,
        client_secret=credentials.client_secret,
        redirect_uri=credentials.redirect_uri,
        environment=environment or credentials.environment,
    )


def mask_secret(value: str | None) -> str | None:
    """Show only the last four characters of a secret."""
    if not value:
        return None
    if len(value) <= 4:
        return "****"
    return "*" * (len(value) - 4) + value[-4:]


class FirmIntegrationService:
    """Reads, writes, and resolves a firm's Intuit app credentials."""

    def __init__(self, vault: TokenVault | None = None):
        self._vault = vault or TokenVault()

    @staticmethod
    def get(db: Session, firm_id: str) -> FirmIntegration | None:
        return db.query(FirmIntegration).filter(FirmIntegration.firm_id == firm_id).first()

    def resolve(self, db: Session, firm_id: str | None) -> IntuitCredentials:
        """Resolve credentials: the firm's own app first, then settings.

        Raises:
            IntegrationNotConfigured: Neither source has a client id and
                secret.
        """
        integration = self.get(db, firm_id) if firm_id else None
        if (
            integration is not None
            and integration.is_configured
            and integration.intuit_client_id
            and integration.intuit_client_secret_encrypted
        ):
            return IntuitCredentials(
                client_id=integration.intuit_client_id,
                client_secret=self._vault.decrypt(integration.intuit_client_secret_encrypted),
                redirect_uri=integration.redirect_uri or default_redirect_uri(),
                environment=integration.intuit_environment or "sandbox",
                source="firm",
            )

        if settings.INTUIT_CLIENT_ID and settings.INTUIT_CLIENT_SECRET:
            return IntuitCredentials(
                client_id=settings.INTUIT_CLIENT_ID,
                client_secret=settings.INTUIT_CLIENT_SECRET,
                redirect_uri=default_redirect_uri(),
                environment=settings.INTUIT_ENVIRONMENT,
                source="settings",
            )

        raise IntegrationNotConfigured(
            "QuickBooks integration is not configured. "
            "Add your Intuit app credentials in firm settings."
        )

    def upsert(
        self,
        db: Session,
        firm_id: str,
        client_id: str,
        client_secret: str | None = None,
        environment: str = "sandbox",
        redirect_uri: str | None = None,
        app_name: str | None = None,
    ) -> FirmIntegration:
        """Create or update the firm's Intuit app (flushes, does not commit).

        A ``None`` secret keeps the stored one.
        """
        if environment not in VALID_ENVIRONMENTS:
            raise ValueError(f"environment must be one of {sorted(VALID_ENVIRONMENTS)}")

        integration = self.get(db, firm_id)
        if integration is None:
            integration = FirmIntegration(firm_id=firm_id)
            db.add(integration)

        integration.intuit_client_id = client_id
        integration.intuit_environment = environment
        integration.redirect_uri = redirect_uri
        integration.intuit_app_name = app_name
        if client_secret:
            integration.intuit_client_secret_encrypted = self._vault.encrypt(client_secret)
        integration.is_configured = bool(
            integration.intuit_client_id and integration.intuit_client_secret_encrypted
        )
        db.flush()
        logger.info(
            "Saved Intuit integration for firm %s (env=%s, configured=%s)",
            firm_id,
            environment,
            integration.is_configured,
        )
        return integration

    def masked_secret(self, integration: FirmIntegration) -> str | None:
        """The stored client secret, masked for display.

        Raises:
            CryptoError: The stored secret cannot be decrypted.
        """
        if not integration.intuit_client_secret_encrypted:
            return None
        return mask_secret(self._vault.decrypt(integration.intuit_client_secret_encrypted))
