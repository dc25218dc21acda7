"""Profile model - a user belonging to a firm."""

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utc_now


class Profile(Base):
    """An authenticated user. The id is the identity provider's user id."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    firm_id = Column(String(36), ForeignKey("firms.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=utc_now)

    firm = relationship("Firm", back_populates="profiles")
