"""Review dispatch and workflow-engine callback endpoints."""

import logging

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from api.helpers import (
    get_current_profile,
    get_or_404,
    get_sleep,
    get_token_vault,
    get_workflow_client,
    require_firm_id,
    require_internal_secret,
)
from database import get_db
from integrations.workflow_client import WorkflowClient
from models import Client, Profile, ReconciliationRun
from schemas import (
    BatchTriggerRequest,
    BatchTriggerResponse,
    CallbackAck,
    DispatchResultResponse,
    JobCallback,
    RunResponse,
    TriggerReviewRequest,
)
from services.callback_service import CallbackCorrelator, verify_callback_secret
from services.dispatch_service import BatchResult, DispatchService
from services.exceptions import (
    AlreadyInProgress,
    CallbackAuthError,
    ClientNotFound,
    IllegalRunTransition,
    IntegrationNotConfigured,
    RunNotFound,
)
from services.token_vault import TokenVault
from utils.query_params import parse_client_ids

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


def get_dispatch_service(
    workflow_client: WorkflowClient = Depends(get_workflow_client),
    vault: TokenVault = Depends(get_token_vault),
    sleep=Depends(get_sleep),
) -> DispatchService:
    return DispatchService(workflow_client=workflow_client, vault=vault, sleep=sleep)


def _batch_response(result: BatchResult) -> BatchTriggerResponse:
    return BatchTriggerResponse(
        total=result.total,
        success=result.success,
        error=result.error,
        skipped=result.skipped,
        results=[
            DispatchResultResponse(
                client_id=r.client_id,
                client_name=r.client_name,
                run_id=r.run_id,
                status=r.status,
                error=r.error,
            )
            for r in result.results
        ],
    )


@router.post("", response_model=RunResponse, status_code=202)
def trigger_review(
    body: TriggerReviewRequest,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
    firm_id: str = Depends(require_firm_id),
    service: DispatchService = Depends(get_dispatch_service),
):
    """Dispatch a review for one client.

    Raises:
        HTTPException:
            - 400: Workflow engine or QuickBooks not configured
            - 404: Client not found
            - 409: A review is already in progress for this client
            - 502: The workflow engine did not accept the job
    """
    try:
        run = service.trigger_one(db, body.client_id, firm_id=firm_id, triggered_by=profile.id)
    except IntegrationNotConfigured as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ClientNotFound:
        raise HTTPException(status_code=404, detail="Client not found")
    except AlreadyInProgress as e:
        raise HTTPException(
            status_code=409, detail={"message": str(e), "run_id": e.run_id}
        )

    if run.status == "failed":
        raise HTTPException(
            status_code=502,
            detail={"message": f"Failed to dispatch review: {run.error_message}", "run_id": run.id},
        )
    return run


@router.post("/batch", response_model=BatchTriggerResponse)
def trigger_batch(
    body: BatchTriggerRequest,
    db: Session = Depends(get_db),
    profile: Profile = Depends(get_current_profile),
    firm_id: str = Depends(require_firm_id),
    service: DispatchService = Depends(get_dispatch_service),
):
    """Dispatch reviews for several clients in rate-limited batches."""
    try:
        result = service.trigger_many(
            db, body.client_ids, firm_id=firm_id, triggered_by=profile.id
        )
    except IntegrationNotConfigured as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _batch_response(result)


@router.post(
    "/scheduled",
    response_model=BatchTriggerResponse,
    dependencies=[Depends(require_internal_secret)],
)
def trigger_scheduled(
    db: Session = Depends(get_db),
    service: DispatchService = Depends(get_dispatch_service),
):
    """Dispatch a scheduled review for every connected client (cron entry point)."""
    try:
        result = service.trigger_scheduled(db)
    except IntegrationNotConfigured as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _batch_response(result)


@router.get("", response_model=list[RunResponse])
def list_reviews(
    client_ids: str | None = Query(None, description="Comma-separated client IDs"),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
):
    """Recent runs across the firm's clients, newest first."""
    ids = parse_client_ids(client_ids)
    query = (
        db.query(ReconciliationRun)
        .join(Client, ReconciliationRun.client_id == Client.id)
        .filter(Client.firm_id == firm_id)
    )
    if ids:
        query = query.filter(ReconciliationRun.client_id.in_(ids))
    return query.order_by(ReconciliationRun.started_at.desc()).limit(limit).all()


def _apply_callback(db: Session, payload: dict, secret: str | None) -> CallbackAck:
    try:
        verify_callback_secret(secret)
    except CallbackAuthError as e:
        raise HTTPException(status_code=401, detail=str(e))

    try:
        callback = JobCallback.model_validate(payload)
    except ValidationError as e:
        logger.warning("Rejected malformed review callback: %s", e.errors(include_url=False))
        raise HTTPException(
            status_code=400,
            detail=[
                {"loc": list(err["loc"]), "msg": err["msg"]}
                for err in e.errors(include_url=False)
            ],
        )

    try:
        run = CallbackCorrelator().handle_callback(db, callback)
    except RunNotFound:
        raise HTTPException(status_code=404, detail=f"Run not found: {callback.run_id}")
    except IllegalRunTransition as e:
        db.rollback()
        logger.warning("Rejected review callback for run %s: %s", callback.run_id, e)
        raise HTTPException(status_code=409, detail=str(e))
    db.commit()
    return CallbackAck(run_id=run.id, status=run.status, status_color=run.status_color)


@router.post("/callback", response_model=CallbackAck)
def review_callback(
    payload: dict = Body(...),
    x_callback_secret: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    """Workflow-engine completion callback (JSON body)."""
    return _apply_callback(db, payload, x_callback_secret)


@router.get("/callback", response_model=CallbackAck)
def review_callback_query(
    request: Request,
    x_callback_secret: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    """Workflow-engine completion callback (query string)."""
    params = dict(request.query_params)
    secret = x_callback_secret or params.pop("secret", None)
    return _apply_callback(db, params, secret)


@router.get("/{run_id}", response_model=RunResponse)
def get_review(
    run_id: str,
    db: Session = Depends(get_db),
    firm_id: str = Depends(require_firm_id),
):
    run = get_or_404(db, ReconciliationRun, run_id, detail="Run not found")
    if run.client.firm_id != firm_id:
        raise HTTPException(status_code=404, detail="Run not found")
    return run
