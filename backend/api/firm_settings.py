"""Firm integration settings endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.helpers import get_token_vault, require_firm_id
from config import settings
from database import get_db
from models import FirmIntegration
from schemas import FirmIntegrationRequest, FirmIntegrationResponse
from services.exceptions import CryptoError, IntegrationNotConfigured
from services.firm_integration_service import FirmIntegrationService
from services.token_vault import TokenVault

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/firm", tags=["firm"])


def get_firm_integration_service(
    vault: TokenVault = Depends(get_token_vault),
) -> FirmIntegrationService:
    return FirmIntegrationService(vault)


def _response(
    firm_id: str,
    integration: FirmIntegration | None,
    service: FirmIntegrationService,
) -> FirmIntegrationResponse:
    uses_default = bool(settings.INTUIT_CLIENT_ID and settings.INTUIT_CLIENT_SECRET)
    if integration is None:
        return FirmIntegrationResponse(firm_id=firm_id, uses_default_credentials=uses_default)

    try:
        masked = service.masked_secret(integration)
    except (CryptoError, IntegrationNotConfigured):
        logger.warning("Intuit secret for firm %s could not be decrypted", firm_id)
        masked = "(unreadable)"
    return FirmIntegrationResponse(
        firm_id=firm_id,
        intuit_client_id=integration.intuit_client_id,
        intuit_client_secret_masked=masked,
        intuit_environment=integration.intuit_environment,
        redirect_uri=integration.redirect_uri,
        intuit_app_name=integration.intuit_app_name,
        is_configured=integration.is_configured,
        uses_default_credentials=uses_default and not integration.is_configured,
    )


@router.get("/integrations", response_model=FirmIntegrationResponse)
def get_integration(
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
    service: FirmIntegrationService = Depends(get_firm_integration_service),
):
    """The firm's Intuit app settings with the secret masked."""
    return _response(firm_id, service.get(db, firm_id), service)


@router.put("/integrations", response_model=FirmIntegrationResponse)
def save_integration(
    body: FirmIntegrationRequest,
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
    service: FirmIntegrationService = Depends(get_firm_integration_service),
):
    """Create or update the firm's Intuit app credentials."""
    try:
        integration = service.upsert(
            db,
            firm_id,
            client_id=body.intuit_client_id,
            client_secret=body.intuit_client_secret,
            environment=body.intuit_environment,
            redirect_uri=body.redirect_uri,
            app_name=body.intuit_app_name,
        )
    except IntegrationNotConfigured as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    return _response(firm_id, integration, service)
