"""Client management API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.helpers import get_current_profile, require_firm_id
from database import get_db
from models import Profile
from schemas import ClientCreate, ClientResponse, ClientUpdate, RunResponse
from services.client_service import ClientService
from services.exceptions import ClientNotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clients", tags=["clients"])


def _get_client_or_404(db: Session, firm_id: str, client_id: str):
    try:
        return ClientService.get(db, firm_id, client_id)
    except ClientNotFound:
        raise HTTPException(status_code=404, detail="Client not found")


@router.get("", response_model=list[ClientResponse])
def list_clients(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
):
    """List the firm's clients, active only unless ``include_inactive``."""
    return ClientService.list_clients(db, firm_id, include_inactive=include_inactive)


@router.post("", response_model=ClientResponse, status_code=201)
def create_client(
    body: ClientCreate,
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
    profile: Profile = Depends(get_current_profile),
):
    """Add a client manually."""
    if body.realm_id and ClientService.find_by_realm(db, firm_id, body.realm_id):
        raise HTTPException(
            status_code=409, detail=f"A client for realm {body.realm_id} already exists"
        )
    client = ClientService.create(
        db, firm_id, body.client_name, created_by=profile.id, **body.model_dump(exclude={"client_name"})
    )
    db.commit()
    db.refresh(client)
    return client


@router.get("/{client_id}", response_model=ClientResponse)
def get_client(
    client_id: str,
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
):
    return _get_client_or_404(db, firm_id, client_id)


@router.patch("/{client_id}", response_model=ClientResponse)
def update_client(
    client_id: str,
    body: ClientUpdate,
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
):
    """Update name, Dropbox folder, or sheet URL."""
    client = _get_client_or_404(db, firm_id, client_id)
    ClientService.update(db, client, **body.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(client)
    return client


@router.delete("/{client_id}")
def deactivate_client(
    client_id: str,
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
):
    """Soft-delete a client. Run history is kept."""
    client = _get_client_or_404(db, firm_id, client_id)
    ClientService.deactivate(db, client)
    db.commit()
    return {"status": "ok", "client_id": client_id}


@router.get("/{client_id}/runs", response_model=list[RunResponse])
def list_client_runs(
    client_id: str,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
):
    """Most recent runs for a client, newest first."""
    _get_client_or_404(db, firm_id, client_id)
    return ClientService.list_runs(db, client_id, limit=limit)
