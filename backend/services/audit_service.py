"""Audit service - appends lifecycle events and alerts to the notification log."""

import logging

from sqlalchemy.orm import Session

from models.notification_log import NotificationLog

logger = logging.getLogger(__name__)


class AuditService:
    """Writes append-only NotificationLog rows.

    Audit entries are recorded as already delivered to ``system``;
    alerts are queued as ``pending`` for an outbound notifier.
    """

    @staticmethod
    def record(
        db: Session,
        event_type: str,
        subject: str,
        message: str | None = None,
        client_id: str | None = None,
        run_id: str | None = None,
        user_id: str | None = None,
    ) -> NotificationLog:
        """Record an audit event (flushes, does not commit)."""
        entry = NotificationLog(
            notification_type="audit",
            event_type=event_type,
            recipient="system",
            subject=subject,
            message=message,
            status="delivered",
            client_id=client_id,
            reconciliation_run_id=run_id,
            user_id=user_id,
        )
        db.add(entry)
        db.flush()
        logger.debug("Audit %s: %s", event_type, subject)
        return entry

    @staticmethod
    def alert(
        db: Session,
        subject: str,
        message: str,
        recipient: str = "admin",
        event_type: str = "alert",
    ) -> NotificationLog:
        """Queue an alert notification (flushes, does not commit)."""
        entry = NotificationLog(
            notification_type="alert",
            event_type=event_type,
            recipient=recipient,
            subject=subject,
            message=message,
            status="pending",
        )
        db.add(entry)
        db.flush()
        logger.info("Alert queued for %s: %s", recipient, subject)
        return entry
