"""Job dispatcher - submits reconciliation reviews to the workflow engine.

Every dispatch first creates a ``processing`` run and commits it, so a
failed acknowledgement is recorded against a real row. Database work
stays on the calling thread; only the webhook calls of a batch window
run in parallel.
"""

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import DateTime, Integer, String, insert, literal, select
from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import ProviderError
from integrations.workflow_client import WorkflowClient
from models import Client, QBOConnection, ReconciliationRun, generate_uuid, utc_now
from schemas.job import JobRequest
from services.audit_service import AuditService
from services.exceptions import (
    AlreadyInProgress,
    ClientNotFound,
    ConnectionNotFound,
    CryptoError,
    IntegrationNotConfigured,
)
from services.rate_limiter import RateLimiter, execute_with_backoff
from services.run_state import RunStatus, is_terminal, transition
from services.token_vault import TokenVault

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    client_id: str
    client_name: str | None = None
    run_id: str | None = None
    status: str = "processing"  # "processing" | "failed" | "skipped"
    error: str | None = None


@dataclass
class BatchResult:
    results: list[DispatchResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success(self) -> int:
        return sum(1 for r in self.results if r.status == "processing")

    @property
    def error(self) -> int:
        return sum(1 for r in self.results if r.status == "failed")

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == "skipped")


@dataclass
class _SendOutcome:
    acknowledged: bool
    retries: int = 0
    error: str | None = None


@dataclass
class _PreparedJob:
    client: Client
    run: ReconciliationRun
    payload: dict | None
    delay: float = 0.0
    outcome: _SendOutcome | None = None


def default_callback_url() -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/reviews/callback"


def default_workflow_client() -> WorkflowClient:
    return WorkflowClient(settings.N8N_WEBHOOK_URL, timeout=settings.DISPATCH_TIMEOUT_SECONDS)


class DispatchService:
    """Creates runs and hands them to the workflow engine."""

    def __init__(
        self,
        workflow_client: WorkflowClient,
        vault: TokenVault | None = None,
        rate_limiter: RateLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[], float] = random.random,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        dedup_window: timedelta | None = None,
        include_tokens: bool | None = None,
    ):
        self._workflow = workflow_client
        self._vault = vault or TokenVault()
        self._limiter = rate_limiter or RateLimiter(sleep=sleep)
        self._sleep = sleep
        self._jitter = jitter
        self._batch_size = batch_size or settings.DISPATCH_BATCH_SIZE
        self._batch_delay = (
            batch_delay if batch_delay is not None else settings.DISPATCH_BATCH_DELAY_SECONDS
        )
        self._dedup_window = dedup_window or timedelta(minutes=settings.DEDUP_WINDOW_MINUTES)
        self._include_tokens = (
            include_tokens if include_tokens is not None else settings.N8N_INCLUDE_TOKENS
        )

    def trigger_one(
        self,
        db: Session,
        client_id: str,
        firm_id: str | None = None,
        triggered_by: str | None = None,
        run_type: str = "manual",
        now: datetime | None = None,
    ) -> ReconciliationRun:
        """Dispatch a review for one client and return its run.

        The run comes back ``processing`` when the engine acknowledged
        and ``failed`` (with ``error_message``) when it did not.

        Raises:
            IntegrationNotConfigured: No webhook URL, or no linked company.
            ClientNotFound: Unknown or inactive client.
            AlreadyInProgress: A run is processing inside the dedup window.
        """
        self._require_configured()
        query = db.query(Client).filter(Client.id == client_id, Client.is_active.is_(True))
        if firm_id is not None:
            query = query.filter(Client.firm_id == firm_id)
        client = query.first()
        if client is None:
            raise ClientNotFound(f"Client not found: {client_id}")
        if not client.realm_id:
            raise IntegrationNotConfigured(
                f"Client {client.client_name} has no QuickBooks company linked"
            )

        job = self._prepare(db, client, run_type, triggered_by, now)
        outcome = job.outcome or self._send(job.payload, job.delay)
        return self._finish(db, job, outcome)

    def trigger_many(
        self,
        db: Session,
        client_ids: list[str],
        firm_id: str | None = None,
        triggered_by: str | None = None,
        run_type: str = "bulk",
    ) -> BatchResult:
        """Dispatch reviews in fixed-size windows with a pause between windows.

        Clients that are missing, inactive, or not connected are skipped,
        as are clients that already have a run in progress.
        """
        self._require_configured()
        ordered_ids = list(dict.fromkeys(client_ids))
        query = db.query(Client).filter(Client.id.in_(ordered_ids))
        if firm_id is not None:
            query = query.filter(Client.firm_id == firm_id)
        clients = {c.id: c for c in query.all()}

        results: dict[str, DispatchResult] = {}
        eligible: list[Client] = []
        for cid in ordered_ids:
            client = clients.get(cid)
            if client is None or not client.is_active:
                results[cid] = DispatchResult(cid, status="skipped", error="Client not found")
            elif client.connection_status != "connected" or not client.realm_id:
                results[cid] = DispatchResult(
                    cid, client.client_name, status="skipped", error="QuickBooks is not connected"
                )
            else:
                eligible.append(client)

        logger.info(
            "Batch dispatch: %d eligible of %d requested (batch size %d)",
            len(eligible), len(ordered_ids), self._batch_size,
        )

        for start in range(0, len(eligible), self._batch_size):
            if start > 0 and self._batch_delay > 0:
                self._sleep(self._batch_delay)
            window = eligible[start:start + self._batch_size]

            jobs: list[_PreparedJob] = []
            for client in window:
                try:
                    jobs.append(self._prepare(db, client, run_type, triggered_by))
                except AlreadyInProgress as e:
                    results[client.id] = DispatchResult(
                        client.id, client.client_name, run_id=e.run_id, status="skipped", error=str(e)
                    )

            pending = [job for job in jobs if job.outcome is None]
            if pending:
                with ThreadPoolExecutor(max_workers=len(pending)) as pool:
                    futures = [(job, pool.submit(self._send, job.payload, job.delay)) for job in pending]
                    for job, future in futures:
                        job.outcome = future.result()

            for job in jobs:
                run = self._finish(db, job, job.outcome)
                results[job.client.id] = DispatchResult(
                    job.client.id,
                    job.client.client_name,
                    run_id=run.id,
                    status=run.status if run.status == RunStatus.FAILED.value else "processing",
                    error=run.error_message,
                )

        return BatchResult([results[cid] for cid in ordered_ids])

    def trigger_scheduled(self, db: Session) -> BatchResult:
        """Dispatch a scheduled review for every active, connected client."""
        client_ids = [
            row.id
            for row in db.query(Client.id)
            .filter(
                Client.is_active.is_(True),
                Client.connection_status == "connected",
                Client.realm_id.isnot(None),
            )
            .order_by(Client.client_name)
            .all()
        ]
        logger.info("Scheduled dispatch for %d clients", len(client_ids))
        return self.trigger_many(db, client_ids, run_type="scheduled")

    def _require_configured(self) -> None:
        if not self._workflow.is_configured():
            raise IntegrationNotConfigured("N8N_WEBHOOK_URL is not configured")

    def _create_run(
        self,
        db: Session,
        client: Client,
        run_type: str,
        triggered_by: str | None,
        now: datetime,
    ) -> ReconciliationRun:
        """Insert a processing run unless one is already active in the window.

        The existence check and the insert are a single statement.
        """
        cutoff = now - self._dedup_window
        active = select(ReconciliationRun.id).where(
            ReconciliationRun.client_id == client.id,
            ReconciliationRun.status == RunStatus.PROCESSING.value,
            ReconciliationRun.started_at >= cutoff,
        )
        run_id = generate_uuid()
        source = select(
            literal(run_id, String),
            literal(client.id, String),
            literal(triggered_by, String),
            literal(run_type, String),
            literal(RunStatus.PROCESSING.value, String),
            literal(now, DateTime),
            literal(0, Integer),
            literal(now, DateTime),
            literal(now, DateTime),
        ).where(~active.exists())
        result = db.execute(
            insert(ReconciliationRun).from_select(
                [
                    "id",
                    "client_id",
                    "triggered_by",
                    "run_type",
                    "status",
                    "started_at",
                    "retry_count",
                    "created_at",
                    "updated_at",
                ],
                source,
            )
        )
        if result.rowcount == 0:
            existing_id = db.execute(
                active.order_by(ReconciliationRun.started_at.desc()).limit(1)
            ).scalar()
            logger.info("Review for client %s already in progress (run %s)", client.id, existing_id)
            raise AlreadyInProgress(client.id, existing_id)
        return db.get(ReconciliationRun, run_id)

    def _prepare(
        self,
        db: Session,
        client: Client,
        run_type: str,
        triggered_by: str | None,
        now: datetime | None = None,
    ) -> _PreparedJob:
        """Create the run, build the payload, book a rate-limit slot, commit."""
        now = now or utc_now()
        run = self._create_run(db, client, run_type, triggered_by, now)
        client.last_review_at = now

        conn = db.query(QBOConnection).filter(QBOConnection.client_id == client.id).first()
        request = JobRequest(
            run_id=run.id,
            client_id=client.id,
            client_name=client.client_name,
            realm_id=client.realm_id,
            run_type=run_type,
            environment=(conn.environment if conn else None) or settings.INTUIT_ENVIRONMENT,
            callback_url=default_callback_url(),
        )
        job = _PreparedJob(client=client, run=run, payload=None)

        if self._include_tokens:
            try:
                tokens = self._vault.retrieve(db, client.id)
                request.access_token = tokens.access_token
                request.refresh_token = tokens.refresh_token
            except (ConnectionNotFound, CryptoError, IntegrationNotConfigured) as e:
                job.outcome = _SendOutcome(acknowledged=False, error=f"Cannot load tokens: {e}")

        if job.outcome is None:
            job.payload = request.to_payload()
            job.delay = self._limiter.reserve(db, client.realm_id, now=now)
        db.commit()
        return job

    def _send(self, payload: dict, delay: float) -> _SendOutcome:
        """Wait for the booked slot, then POST with retry. Touches no session."""
        if delay > 0:
            self._sleep(delay)
        retries = 0

        def on_retry(attempt: int, exc: Exception) -> None:
            nonlocal retries
            retries = attempt

        try:
            execute_with_backoff(
                lambda: self._workflow.dispatch(payload),
                sleep=self._sleep,
                jitter=self._jitter,
                on_retry=on_retry,
            )
        except ProviderError as e:
            return _SendOutcome(acknowledged=False, retries=retries, error=str(e))
        return _SendOutcome(acknowledged=True, retries=retries)

    def _finish(self, db: Session, job: _PreparedJob, outcome: _SendOutcome) -> ReconciliationRun:
        """Record the dispatch outcome against the run and commit."""
        run, client = job.run, job.client
        db.refresh(run)
        run.retry_count = outcome.retries

        if is_terminal(run.status):
            # The engine already called back; its result stands.
            logger.info("Run %s already %s before dispatch settled", run.id, run.status)
        elif outcome.acknowledged:
            AuditService.record(
                db,
                "reconciliation_started",
                f"Reconciliation started: {client.client_name}",
                client_id=client.id,
                run_id=run.id,
            )
            logger.info("Dispatched run %s for client %s", run.id, client.id)
        else:
            transition(run, RunStatus.FAILED)
            run.error_message = outcome.error
            run.completed_at = utc_now()
            AuditService.record(
                db,
                "reconciliation_failed",
                f"Reconciliation failed: {client.client_name}",
                message=outcome.error,
                client_id=client.id,
                run_id=run.id,
            )
            logger.warning("Dispatch failed for run %s: %s", run.id, outcome.error)

        db.commit()
        return run
