"""Per-company rate limiting and retry with exponential backoff.

Call budgets live in the ``rate_limit_windows`` table so every worker
process shares them. A slot is booked with a version-checked UPDATE;
losing the race re-reads the row and tries again.
"""

import logging
import random
import time
from datetime import datetime, timedelta
from typing import Callable, TypeVar

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import ProviderError
from models import RateLimitWindow, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

_WINDOW = timedelta(minutes=1)
_MAX_BOOKING_ATTEMPTS = 10


class RateLimiter:
    """Books call slots per company: a minimum spacing plus a per-minute cap."""

    def __init__(
        self,
        max_calls_per_minute: int | None = None,
        min_interval: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._max_calls = max_calls_per_minute or settings.RATE_LIMIT_MAX_CALLS_PER_MINUTE
        self._min_interval = timedelta(
            seconds=min_interval if min_interval is not None else settings.RATE_LIMIT_MIN_INTERVAL_SECONDS
        )
        self._sleep = sleep

    def reserve(self, db: Session, company_id: str, now: datetime | None = None) -> float:
        """Book the next free slot and return how many seconds to wait for it."""
        now = now or utc_now()
        self._ensure_row(db, company_id, now)

        for _ in range(_MAX_BOOKING_ATTEMPTS):
            row = (
                db.query(RateLimitWindow)
                .filter(RateLimitWindow.company_id == company_id)
                .populate_existing()
                .one()
            )
            slot = max(now, row.next_slot_at)
            window_start = row.window_start
            call_count = row.call_count

            if slot - window_start >= _WINDOW:
                window_start, call_count = slot, 0
            if call_count >= self._max_calls:
                slot = max(slot, window_start + _WINDOW)
                window_start, call_count = slot, 0

            updated = (
                db.query(RateLimitWindow)
                .filter(
                    RateLimitWindow.company_id == company_id,
                    RateLimitWindow.version == row.version,
                )
                .update(
                    {
                        RateLimitWindow.window_start: window_start,
                        RateLimitWindow.call_count: call_count + 1,
                        RateLimitWindow.next_slot_at: slot + self._min_interval,
                        RateLimitWindow.version: row.version + 1,
                    },
                    synchronize_session=False,
                )
            )
            if updated == 1:
                db.flush()
                delay = (slot - now).total_seconds()
                if delay > 0:
                    logger.debug("Rate limit: company %s waits %.2fs", company_id, delay)
                return delay

        raise RuntimeError(f"Could not book a rate-limit slot for company {company_id}")

    def wait(self, db: Session, company_id: str) -> None:
        """Reserve a slot and sleep until it arrives."""
        delay = self.reserve(db, company_id)
        if delay > 0:
            self._sleep(delay)

    @staticmethod
    def _ensure_row(db: Session, company_id: str, now: datetime) -> None:
        values = {
            "company_id": company_id,
            "window_start": now,
            "call_count": 0,
            "next_slot_at": now,
            "version": 0,
        }
        dialect = db.get_bind().dialect.name
        if dialect == "sqlite":
            stmt = sqlite_insert(RateLimitWindow).values(**values).on_conflict_do_nothing(
                index_elements=["company_id"]
            )
        elif dialect == "postgresql":
            stmt = pg_insert(RateLimitWindow).values(**values).on_conflict_do_nothing(
                index_elements=["company_id"]
            )
        else:
            if db.get(RateLimitWindow, company_id) is None:
                db.add(RateLimitWindow(**values))
                db.flush()
            return
        db.execute(stmt)


def is_retriable(exc: Exception) -> bool:
    """Retriable provider errors: 429/5xx and connection failures (not timeouts)."""
    return isinstance(exc, ProviderError) and exc.retriable


def execute_with_backoff(
    fn: Callable[[], T],
    max_attempts: int | None = None,
    base_delay: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    jitter: Callable[[], float] = random.random,
    on_retry: Callable[[int, Exception], None] | None = None,
) -> T:
    """Call ``fn``, retrying retriable provider errors.

    The wait before retry ``n`` (0-based) is ``base_delay * 2**n`` plus up
    to one second of jitter. Non-retriable errors, and the last error
    once attempts run out, propagate unchanged.
    """
    max_attempts = max_attempts or settings.DISPATCH_MAX_RETRIES
    base_delay = base_delay if base_delay is not None else settings.DISPATCH_BASE_DELAY_SECONDS

    for attempt in range(max_attempts):
        try:
            return fn()
        except Exception as e:
            if not is_retriable(e) or attempt == max_attempts - 1:
                raise
            delay = base_delay * (2 ** attempt) + jitter()
            logger.warning(
                "Retriable error, retrying in %.1fs (attempt %d/%d): %s",
                delay, attempt + 1, max_attempts, e,
            )
            if on_retry is not None:
                on_retry(attempt + 1, e)
            sleep(delay)

    raise RuntimeError("execute_with_backoff called with max_attempts < 1")
