"""Callback correlator - applies workflow-engine results to runs."""

import hmac
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from config import settings
from models import Client, ReconciliationRun, utc_now
from schemas.job import JobCallback
from services.audit_service import AuditService
from services.exceptions import CallbackAuthError, RunNotFound
from services.run_state import RunStatus, derive_status_color, is_terminal, transition

logger = logging.getLogger(__name__)


def verify_callback_secret(provided: str | None, expected: str | None = None) -> None:
    """Check the shared callback secret when one is configured.

    Raises:
        CallbackAuthError: A secret is configured and ``provided`` differs.
    """
    expected = settings.N8N_CALLBACK_SECRET if expected is None else expected
    if not expected:
        return
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise CallbackAuthError("Invalid callback secret")


class CallbackCorrelator:
    """Correlates engine callbacks with runs by run id.

    A repeat callback overwrites the earlier terminal result (last write
    wins). The overwrite is logged and audited so it is never silent.
    """

    def handle_callback(
        self, db: Session, callback: JobCallback, now: datetime | None = None
    ) -> ReconciliationRun:
        """Apply a callback to its run (flushes, does not commit).

        Raises:
            RunNotFound: No run with ``callback.run_id``.
        """
        now = now or utc_now()
        run = db.get(ReconciliationRun, callback.run_id)
        if run is None:
            logger.warning("Callback for unknown run %s", callback.run_id)
            raise RunNotFound(f"Run not found: {callback.run_id}")

        previous = run.status
        transition(run, callback.status, via_callback=True)
        if is_terminal(previous):
            logger.warning(
                "Run %s received a repeat callback: %s overwritten by %s",
                run.id, previous, callback.status,
            )
            AuditService.record(
                db,
                "callback_overwrite",
                f"Run result overwritten ({previous} -> {callback.status})",
                client_id=run.client_id,
                run_id=run.id,
            )

        run.completed_at = now
        run.result_url = callback.result_url
        run.action_items_count = callback.action_items_count
        if callback.status == RunStatus.COMPLETED.value:
            run.status_color = derive_status_color(callback.action_items_count).value
            run.error_message = None
        else:
            run.status_color = None
            run.error_message = callback.error_message or "Review failed"

        client = db.get(Client, run.client_id)
        if client is not None:
            client.last_review_at = now
            if callback.result_url:
                client.sheet_url = callback.result_url
            if callback.status == RunStatus.COMPLETED.value:
                client.action_items_count = callback.action_items_count or 0
                client.status_color = run.status_color

        AuditService.record(
            db,
            f"reconciliation_{callback.status}",
            f"Reconciliation {callback.status}: {client.client_name if client else run.client_id}",
            message=run.error_message,
            client_id=run.client_id,
            run_id=run.id,
        )
        db.flush()
        logger.info(
            "Run %s %s (action items=%s, color=%s)",
            run.id, run.status, run.action_items_count, run.status_color,
        )
        return run
