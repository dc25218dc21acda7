"""Client model - a firm's monitored QuickBooks company."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now


class Client(Base):
    """A company file the firm reviews.

    ``status_color`` and ``action_items_count`` are denormalized from the
    latest completed run so dashboard queries need no join.
    """

    __tablename__ = "clients"
    __table_args__ = (
        UniqueConstraint("firm_id", "realm_id", name="uix_firm_realm"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    firm_id = Column(String(36), ForeignKey("firms.id"), nullable=False, index=True)
    created_by = Column(String(36), ForeignKey("profiles.id"), nullable=True)
    client_name = Column(String, nullable=False)
    realm_id = Column(String, nullable=True)  # QBO company id
    # "connected" | "disconnected" | "needs_reconnect" | "pending"
    connection_status = Column(String, default="pending", nullable=False)
    dropbox_folder_url = Column(String, nullable=True)
    dropbox_folder_path = Column(String, nullable=True)
    sheet_url = Column(String, nullable=True)
    status_color = Column(String, nullable=True)  # "green" | "yellow" | "red"
    action_items_count = Column(Integer, nullable=True)
    last_sync_at = Column(DateTime, nullable=True)
    last_review_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    firm = relationship("Firm", back_populates="clients")
    connection = relationship(
        "QBOConnection", back_populates="client", uselist=False, cascade="all, delete-orphan"
    )
    runs = relationship("ReconciliationRun", back_populates="client", cascade="all, delete-orphan")
