"""QBOConnection model - encrypted OAuth tokens for a client's QBO company."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now


class QBOConnection(Base):
    """One-to-one token record for a Client.

    ``access_token`` and ``refresh_token`` hold vault ciphertext only.
    Revocation blanks both to the empty string.
    """

    __tablename__ = "qbo_connections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, unique=True)
    realm_id = Column(String, nullable=False, index=True)
    access_token = Column(Text, nullable=False, default="")
    refresh_token = Column(Text, nullable=False, default="")
    token_expires_at = Column(DateTime, nullable=True)
    refresh_token_updated_at = Column(DateTime, nullable=True)
    # "connected" | "disconnected" | "needs_reconnect" | "pending"
    connection_status = Column(String, default="connected", nullable=False, index=True)
    connection_method = Column(String, default="oauth", nullable=False)  # "oauth" | "qboa"
    environment = Column(String, default="sandbox", nullable=False)
    scope = Column(String, nullable=True)
    last_error = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    client = relationship("Client", back_populates="connection")
