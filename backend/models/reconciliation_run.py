"""ReconciliationRun model - one dispatch of the external review job."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now


class ReconciliationRun(Base):
    """A single run of the reconciliation/review workflow for one client.

    Created in ``processing`` before the engine is called; moved to a
    terminal state by the dispatcher (on dispatch failure) or by the
    engine's callback.
    """

    __tablename__ = "reconciliation_runs"
    __table_args__ = (
        Index("ix_runs_client_status", "client_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False)
    triggered_by = Column(String(36), nullable=True)
    run_type = Column(String, default="manual", nullable=False)  # "scheduled" | "manual" | "bulk"
    # "pending" | "running" | "processing" | "completed" | "failed"
    status = Column(String, default="pending", nullable=False)
    started_at = Column(DateTime, default=utc_now, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    result_url = Column(String, nullable=True)
    action_items_count = Column(Integer, nullable=True)
    status_color = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    client = relationship("Client", back_populates="runs")
