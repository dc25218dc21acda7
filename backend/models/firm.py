"""Firm model - an accounting firm (the tenant)."""

from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now


class Firm(Base):
    """An accounting firm that owns clients and users.

    The firm's Dropbox connection lives here because Dropbox is linked
    once per firm rather than per client. Tokens are vault-encrypted.
    """

    __tablename__ = "firms"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)

    dropbox_connected = Column(Boolean, default=False, nullable=False)
    dropbox_access_token = Column(Text, nullable=True)
    dropbox_refresh_token = Column(Text, nullable=True)
    dropbox_token_expires_at = Column(DateTime, nullable=True)
    dropbox_account_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    profiles = relationship("Profile", back_populates="firm")
    clients = relationship("Client", back_populates="firm")
    integration = relationship("FirmIntegration", back_populates="firm", uselist=False)
