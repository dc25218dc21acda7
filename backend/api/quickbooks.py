"""QuickBooks OAuth and connection API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from api.helpers import (
    get_current_profile,
    get_qbo_client_factory,
    get_sleep,
    get_token_vault,
    require_firm_id,
)
from database import get_db
from models import Profile, QBOConnection
from schemas import (
    AuthorizationUrlResponse,
    ConnectionStatusResponse,
    ConnectRequest,
    RefreshResultResponse,
)
from services.connection_service import ConnectionService, QBOClientFactory, frontend_redirect
from services.exceptions import ClientNotFound, CryptoError, IntegrationNotConfigured
from services.token_refresh_service import TokenRefreshService
from services.token_vault import TokenVault

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quickbooks", tags=["quickbooks"])


def get_connection_service(
    vault: TokenVault = Depends(get_token_vault),
    client_factory: QBOClientFactory = Depends(get_qbo_client_factory),
) -> ConnectionService:
    return ConnectionService(vault=vault, client_factory=client_factory)


def get_refresh_service(
    vault: TokenVault = Depends(get_token_vault),
    client_factory: QBOClientFactory = Depends(get_qbo_client_factory),
    sleep=Depends(get_sleep),
) -> TokenRefreshService:
    return TokenRefreshService(vault=vault, client_factory=client_factory, sleep=sleep)


@router.post("/connect", response_model=AuthorizationUrlResponse)
def connect(
    body: ConnectRequest,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
    service: ConnectionService = Depends(get_connection_service),
):
    """Start the QuickBooks OAuth flow and return the consent URL."""
    try:
        url = service.begin_auth(db, profile, client_id=body.client_id, environment=body.environment)
    except IntegrationNotConfigured as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CryptoError:
        logger.error("Stored Intuit credentials could not be decrypted", exc_info=True)
        raise HTTPException(status_code=500, detail="Stored Intuit credentials are unreadable")
    except ClientNotFound:
        raise HTTPException(status_code=404, detail="Client not found")
    db.commit()
    return AuthorizationUrlResponse(authorization_url=url)


@router.get("/callback")
def oauth_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    realm_id: str | None = Query(None, alias="realmId"),
    error: str | None = Query(None),
    error_description: str | None = Query(None),
    db: Session = Depends(get_db),
    service: ConnectionService = Depends(get_connection_service),
):
    """Intuit redirect target. Always answers with a redirect to the frontend."""
    try:
        result = service.handle_callback(db, code, state, realm_id, error, error_description)
        url = result.redirect_url
    except Exception:
        logger.exception("Unexpected error handling QuickBooks callback")
        db.rollback()
        url = frontend_redirect(
            ConnectionService.REDIRECT_PATH,
            {"error": "server_error", "error_description": "Unexpected error completing the connection"},
        )
    return RedirectResponse(url=url, status_code=302)


@router.get("/connections/{client_id}", response_model=ConnectionStatusResponse)
def get_connection_status(
    client_id: str,
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
    service: ConnectionService = Depends(get_connection_service),
):
    try:
        return service.connection_status(db, firm_id, client_id)
    except ClientNotFound:
        raise HTTPException(status_code=404, detail="Client not found")
    except CryptoError:
        logger.error("Tokens for client %s could not be decrypted", client_id, exc_info=True)
        raise HTTPException(status_code=500, detail="Stored tokens are unreadable")


@router.delete("/connections/{client_id}")
def disconnect(
    client_id: str,
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
    service: ConnectionService = Depends(get_connection_service),
):
    """Revoke the client's tokens locally and mark it disconnected."""
    try:
        revoked = service.disconnect(db, firm_id, client_id)
    except ClientNotFound:
        raise HTTPException(status_code=404, detail="Client not found")
    db.commit()
    return {"status": "ok", "client_id": client_id, "revoked": revoked}


@router.post("/connections/{client_id}/refresh", response_model=RefreshResultResponse)
def refresh_connection(
    client_id: str,
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
    service: TokenRefreshService = Depends(get_refresh_service),
):
    """Refresh one client's tokens now."""
    conn = (
        db.query(QBOConnection)
        .join(QBOConnection.client)
        .filter(QBOConnection.client_id == client_id)
        .first()
    )
    if conn is None or conn.client.firm_id != firm_id:
        raise HTTPException(status_code=404, detail="Connection not found")
    outcome = service.refresh_one(db, conn.id)
    return RefreshResultResponse(
        connection_id=outcome.connection_id,
        client_id=outcome.client_id,
        status=outcome.status,
        error=outcome.error,
        expires_at=outcome.expires_at,
    )
