"""Health & refresh scheduler - keeps QuickBooks connections alive.

Both passes are idempotent and commit per connection, so an interrupted
run leaves already-processed connections in their updated state.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import InvalidGrantError, ProviderAuthError, ProviderError
from models import Client, QBOConnection, utc_now
from services.audit_service import AuditService
from services.connection_service import QBOClientFactory
from services.exceptions import ConnectionNotFound, CryptoError, IntegrationNotConfigured
from services.firm_integration_service import (
    FirmIntegrationService,
    IntuitCredentials,
    default_qbo_client_factory,
)
from services.token_vault import TokenVault

logger = logging.getLogger(__name__)


@dataclass
class RefreshOutcome:
    connection_id: str
    client_id: str
    status: str  # "refreshed" | "needs_reconnect" | "error" | "skipped"
    error: str | None = None
    expires_at: datetime | None = None


@dataclass
class RefreshReport:
    checked: int = 0
    refreshed: int = 0
    needs_reconnect: int = 0
    errors: int = 0
    outcomes: list[RefreshOutcome] = field(default_factory=list)


@dataclass
class HealthOutcome:
    connection_id: str
    client_id: str
    client_name: str
    realm_id: str
    status: str  # "healthy" | "needs_reconnect" | "error"
    detail: str | None = None


@dataclass
class HealthReport:
    checked: int = 0
    healthy: int = 0
    needs_reconnect: int = 0
    errors: int = 0
    outcomes: list[HealthOutcome] = field(default_factory=list)
    alert_id: str | None = None


class TokenRefreshService:
    """Proactive token refresh and provider health probing."""

    def __init__(
        self,
        vault: TokenVault | None = None,
        integrations: FirmIntegrationService | None = None,
        client_factory: QBOClientFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
        refresh_delay: float | None = None,
        health_delay: float | None = None,
        lookahead: timedelta | None = None,
    ):
        self._vault = vault or TokenVault()
        self._integrations = integrations or FirmIntegrationService(self._vault)
        self._client_factory = client_factory or default_qbo_client_factory
        self._sleep = sleep
        self._refresh_delay = (
            refresh_delay if refresh_delay is not None else settings.REFRESH_DELAY_SECONDS
        )
        self._health_delay = (
            health_delay if health_delay is not None else settings.HEALTH_CHECK_DELAY_SECONDS
        )
        self._lookahead = lookahead or timedelta(days=settings.REFRESH_LOOKAHEAD_DAYS)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh_expiring(self, db: Session, now: datetime | None = None) -> RefreshReport:
        """Refresh every connected token that expires within the look-ahead."""
        now = now or utc_now()
        cutoff = now + self._lookahead
        connection_ids = [
            row.id
            for row in db.query(QBOConnection.id)
            .filter(
                QBOConnection.connection_status == "connected",
                QBOConnection.token_expires_at.isnot(None),
                QBOConnection.token_expires_at <= cutoff,
            )
            .order_by(QBOConnection.token_expires_at)
            .all()
        ]
        logger.info("Refreshing %d QuickBooks connections expiring before %s", len(connection_ids), cutoff)

        report = RefreshReport()
        for i, connection_id in enumerate(connection_ids):
            if i > 0 and self._refresh_delay > 0:
                self._sleep(self._refresh_delay)
            outcome = self.refresh_one(db, connection_id)
            report.checked += 1
            report.outcomes.append(outcome)
            if outcome.status == "refreshed":
                report.refreshed += 1
            elif outcome.status == "needs_reconnect":
                report.needs_reconnect += 1
            elif outcome.status == "error":
                report.errors += 1

        logger.info(
            "Token refresh pass: %d refreshed, %d need reconnect, %d errors",
            report.refreshed, report.needs_reconnect, report.errors,
        )
        return report

    def refresh_one(self, db: Session, connection_id: str) -> RefreshOutcome:
        """Refresh a single connection and commit the result.

        ``invalid_grant`` marks the connection ``needs_reconnect``; any
        other failure is recorded and leaves the status unchanged.

        Raises:
            ConnectionNotFound: No connection with this id.
        """
        conn = db.get(QBOConnection, connection_id)
        if conn is None:
            raise ConnectionNotFound(f"Connection not found: {connection_id}")

        if conn.connection_status != "connected":
            logger.info(
                "Skipping refresh for connection %s (status=%s)", conn.id, conn.connection_status
            )
            return RefreshOutcome(conn.id, conn.client_id, "skipped")

        try:
            tokens = self._vault.decrypt_connection(conn)
            if not tokens.refresh_token:
                raise CryptoError("No refresh token stored")
            with self._client_factory(self._credentials_for(db, conn), conn.environment) as qbo:
                new_tokens = qbo.refresh_tokens(tokens.refresh_token)
        except InvalidGrantError as e:
            return self._mark_needs_reconnect(db, conn, str(e))
        except (ProviderError, CryptoError, IntegrationNotConfigured) as e:
            conn.last_error = str(e)
            AuditService.record(
                db,
                "token_refresh_failed",
                "OAuth Event: token_refresh_failed",
                message=str(e),
                client_id=conn.client_id,
            )
            db.commit()
            logger.warning("Token refresh failed for connection %s: %s", conn.id, e)
            return RefreshOutcome(conn.id, conn.client_id, "error", error=str(e))

        expires_at = new_tokens.expires_at(utc_now())
        self._vault.store(
            db,
            conn.client_id,
            new_tokens.access_token,
            new_tokens.refresh_token or tokens.refresh_token,
            expires_at,
            conn.realm_id,
            audit_event="token_refreshed",
        )
        db.commit()
        logger.info("Refreshed tokens for connection %s", conn.id)
        return RefreshOutcome(conn.id, conn.client_id, "refreshed", expires_at=expires_at)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_check(self, db: Session) -> HealthReport:
        """Check every connected company with a company-info lookup.

        HTTP 401 moves the connection and client to ``needs_reconnect``.
        Other failures are reported without a status change. One alert
        lists every company that needs reconnection.
        """
        connections = (
            db.query(QBOConnection)
            .filter(QBOConnection.connection_status == "connected")
            .order_by(QBOConnection.created_at)
            .all()
        )
        report = HealthReport()
        for i, conn in enumerate(connections):
            if i > 0 and self._health_delay > 0:
                self._sleep(self._health_delay)
            outcome = self._check_company(db, conn)
            db.commit()
            report.checked += 1
            report.outcomes.append(outcome)
            if outcome.status == "healthy":
                report.healthy += 1
            elif outcome.status == "needs_reconnect":
                report.needs_reconnect += 1
            else:
                report.errors += 1

        AuditService.record(
            db,
            "health_check",
            "Health Check Completed",
            message=(
                f"{report.checked} checked, {report.healthy} healthy, "
                f"{report.needs_reconnect} need reconnection, {report.errors} errors"
            ),
        )

        if report.needs_reconnect:
            affected = [o for o in report.outcomes if o.status == "needs_reconnect"]
            lines = "\n".join(f"- {o.client_name} (Realm: {o.realm_id})" for o in affected)
            alert = AuditService.alert(
                db,
                f"{len(affected)} QuickBooks Companies Need Reconnection",
                "The following QuickBooks companies need to be reconnected:\n" + lines,
                event_type="needs_reconnect",
            )
            report.alert_id = alert.id
        db.commit()

        logger.info(
            "Health check: %d healthy, %d need reconnect, %d errors",
            report.healthy, report.needs_reconnect, report.errors,
        )
        return report

    def _check_company(self, db: Session, conn: QBOConnection) -> HealthOutcome:
        client = db.get(Client, conn.client_id)
        client_name = client.client_name if client else conn.client_id
        outcome = HealthOutcome(conn.id, conn.client_id, client_name, conn.realm_id, "healthy")

        try:
            tokens = self._vault.decrypt_connection(conn)
            with self._client_factory(self._credentials_for(db, conn), conn.environment) as qbo:
                qbo.get_company_info(tokens.access_token, conn.realm_id)
        except ProviderAuthError as e:
            conn.connection_status = "needs_reconnect"
            conn.last_error = str(e)
            if client is not None:
                client.connection_status = "needs_reconnect"
            logger.warning("Connection %s rejected by QuickBooks: %s", conn.id, e)
            outcome.status = "needs_reconnect"
            outcome.detail = str(e)
            return outcome
        except (ProviderError, CryptoError, IntegrationNotConfigured) as e:
            logger.warning("Health check failed for connection %s: %s", conn.id, e)
            outcome.status = "error"
            outcome.detail = str(e)
            return outcome

        if client is not None:
            client.last_sync_at = utc_now()
        return outcome

    def _mark_needs_reconnect(self, db: Session, conn: QBOConnection, reason: str) -> RefreshOutcome:
        conn.connection_status = "needs_reconnect"
        conn.last_error = reason
        client = db.get(Client, conn.client_id)
        if client is not None:
            client.connection_status = "needs_reconnect"
        AuditService.record(
            db,
            "token_refresh_failed",
            "OAuth Event: token_refresh_failed",
            message=f"Refresh token rejected, reconnection required: {reason}",
            client_id=conn.client_id,
        )
        db.commit()
        logger.warning("Connection %s needs reconnection: %s", conn.id, reason)
        return RefreshOutcome(conn.id, conn.client_id, "needs_reconnect", error=reason)

    def _credentials_for(self, db: Session, conn: QBOConnection) -> IntuitCredentials:
        client = db.get(Client, conn.client_id)
        return self._integrations.resolve(db, client.firm_id if client else None)
