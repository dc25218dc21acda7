"""FirmIntegration model - per-firm Intuit app credentials."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now


class FirmIntegration(Base):
    """Intuit developer app credentials registered by a firm.

    The client secret is stored vault-encrypted. A firm without a row
    (or with ``is_configured`` false) falls back to the application-wide
    Intuit settings.
    """

    __tablename__ = "firm_integrations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    firm_id = Column(String(36), ForeignKey("firms.id"), nullable=False, unique=True)
    intuit_app_name = Column(String, nullable=True)
    intuit_client_id = Column(String, nullable=True)
    intuit_client_secret_encrypted = Column(Text, nullable=True)
    intuit_environment = Column(String, default="sandbox", nullable=False)  # "sandbox" | "production"
    redirect_uri = Column(String, nullable=True)
    is_configured = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    firm = relationship("Firm", back_populates="integration")
