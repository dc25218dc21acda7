"""Scheduler endpoints for token refresh, health checks, and cleanup.

Meant for a cron caller; protected by ``X-Internal-Secret`` when
``INTERNAL_API_SECRET`` is set.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.helpers import require_internal_secret
from api.quickbooks import get_refresh_service
from database import get_db
from schemas import HealthReportResponse, PurgeResponse, RefreshReportResponse
from services.oauth_state_service import OAuthStateService
from services.token_refresh_service import TokenRefreshService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/maintenance",
    tags=["maintenance"],
    dependencies=[Depends(require_internal_secret)],
)


@router.post("/refresh-tokens", response_model=RefreshReportResponse)
def refresh_tokens(
    db: Session = Depends(get_db),
    service: TokenRefreshService = Depends(get_refresh_service),
):
    """Refresh every QuickBooks token expiring within the look-ahead window."""
    try:
        report = service.refresh_expiring(db)
    except Exception:
        logger.exception("Token refresh pass failed")
        raise HTTPException(status_code=500, detail="Token refresh failed")
    return RefreshReportResponse(
        checked=report.checked,
        refreshed=report.refreshed,
        needs_reconnect=report.needs_reconnect,
        errors=report.errors,
    )


@router.post("/health-check", response_model=HealthReportResponse)
def health_check(
    db: Session = Depends(get_db),
    service: TokenRefreshService = Depends(get_refresh_service),
):
    """Check every connected QuickBooks company."""
    try:
        report = service.health_check(db)
    except Exception:
        logger.exception("Health check pass failed")
        raise HTTPException(status_code=500, detail="Health check failed")
    return HealthReportResponse(
        checked=report.checked,
        healthy=report.healthy,
        needs_reconnect=report.needs_reconnect,
        errors=report.errors,
        alert_id=report.alert_id,
    )


@router.post("/purge-oauth-states", response_model=PurgeResponse)
def purge_oauth_states(db: Session = Depends(get_db)):
    """Delete expired, unconsumed OAuth states."""
    removed = OAuthStateService().purge_expired(db)
    db.commit()
    return PurgeResponse(removed=removed)
