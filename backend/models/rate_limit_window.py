"""RateLimitWindow model - shared per-company call budget."""

from sqlalchemy import Column, DateTime, Integer, String

from database import Base


class RateLimitWindow(Base):
    """Sliding one-minute call window for a QBO company.

    ``next_slot_at`` is the earliest time the next call may start; it is
    advanced with a conditional UPDATE so concurrent handlers never book
    the same slot.
    """

    __tablename__ = "rate_limit_windows"

    company_id = Column(String, primary_key=True)
    window_start = Column(DateTime, nullable=False)
    call_count = Column(Integer, default=0, nullable=False)
    next_slot_at = Column(DateTime, nullable=False)
    version = Column(Integer, default=0, nullable=False)
