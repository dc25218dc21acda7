"""NotificationLog model - append-only audit and alert trail."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text

from database import Base
from models.utils import generate_uuid, utc_now


class NotificationLog(Base):
    """An audit event or outbound alert. Never updated after insert."""

    __tablename__ = "notification_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    notification_type = Column(String, nullable=False)  # "audit" | "alert"
    event_type = Column(String, nullable=True, index=True)  # e.g. "token_refreshed"
    recipient = Column(String, nullable=False)  # "system" | "admin" | email
    subject = Column(String, nullable=False)
    message = Column(Text, nullable=True)
    status = Column(String, nullable=False)  # "delivered" | "pending" | "failed"
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    reconciliation_run_id = Column(String(36), nullable=True)
    user_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utc_now, index=True)
