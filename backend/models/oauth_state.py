"""OAuthState model - single-use CSRF state for OAuth redirects."""

from sqlalchemy import Column, DateTime, String

from database import Base
from models.utils import generate_uuid, utc_now


class OAuthState(Base):
    """An issued, not yet consumed OAuth state token.

    Rows are deleted on successful validation and swept after expiry.
    """

    __tablename__ = "qbo_oauth_states"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    state = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(String(36), nullable=False)
    provider = Column(String, default="quickbooks", nullable=False)  # "quickbooks" | "dropbox"
    environment = Column(String, nullable=True)  # "sandbox" | "production"
    client_id = Column(String(36), nullable=True)  # optional client being (re)connected
    code_verifier = Column(String, nullable=True)  # PKCE flows only
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utc_now)
