"""Dropbox OAuth (PKCE) endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from api.helpers import get_current_profile, get_dropbox_client, get_token_vault, require_firm_id
from database import get_db
from integrations.dropbox_client import DropboxClient
from integrations.exceptions import ProviderError
from models import Firm, Profile
from schemas import AuthorizationUrlResponse, DropboxStatusResponse
from services.connection_service import frontend_redirect
from services.dropbox_service import DropboxService
from services.exceptions import CryptoError, IntegrationNotConfigured
from services.token_vault import TokenVault

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dropbox", tags=["dropbox"])


def get_dropbox_service(
    client: DropboxClient = Depends(get_dropbox_client),
    vault: TokenVault = Depends(get_token_vault),
) -> DropboxService:
    return DropboxService(client, vault=vault)


@router.post("/connect", response_model=AuthorizationUrlResponse)
def connect(
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
    service: DropboxService = Depends(get_dropbox_service),
):
    """Start the Dropbox PKCE flow and return the consent URL."""
    try:
        url = service.begin_auth(db, profile)
    except IntegrationNotConfigured as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    return AuthorizationUrlResponse(authorization_url=url)


@router.get("/callback")
def oauth_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    error_description: str | None = Query(None),
    db: Session = Depends(get_db),
    service: DropboxService = Depends(get_dropbox_service),
):
    """Dropbox redirect target. Always answers with a redirect to the frontend."""
    try:
        url = service.handle_callback(db, code, state, error, error_description).redirect_url
    except Exception:
        logger.exception("Unexpected error handling Dropbox callback")
        db.rollback()
        url = frontend_redirect(
            DropboxService.REDIRECT_PATH,
            {"error": "server_error", "error_description": "Unexpected error completing the connection"},
        )
    return RedirectResponse(url=url, status_code=302)


@router.get("", response_model=DropboxStatusResponse)
def get_status(
    validate: bool = Query(False),
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
    service: DropboxService = Depends(get_dropbox_service),
):
    """Dropbox connection state for the firm; ``validate`` calls Dropbox."""
    firm = db.get(Firm, firm_id)
    if firm is None:
        raise HTTPException(status_code=404, detail="Firm not found")
    connected = bool(firm.dropbox_connected)
    if validate and connected:
        try:
            connected = service.validate(db, firm)
        except CryptoError:
            logger.error("Dropbox tokens for firm %s could not be decrypted", firm_id, exc_info=True)
            raise HTTPException(status_code=500, detail="Stored Dropbox tokens are unreadable")
        except ProviderError as e:
            logger.warning("Dropbox validation failed for firm %s: %s", firm_id, e)
            raise HTTPException(status_code=502, detail="Dropbox is unavailable")
        db.commit()
    return DropboxStatusResponse(
        connected=connected,
        account_id=firm.dropbox_account_id,
        token_expires_at=firm.dropbox_token_expires_at,
    )


@router.delete("")
def disconnect(
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
    service: DropboxService = Depends(get_dropbox_service),
):
    firm = db.get(Firm, firm_id)
    if firm is None:
        raise HTTPException(status_code=404, detail="Firm not found")
    service.disconnect(db, firm)
    db.commit()
    return {"status": "ok"}
