"""OAuth state guard - single-use CSRF tokens for OAuth redirects."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from config import settings
from models import OAuthState, utc_now
from services.exceptions import InvalidOAuthState

logger = logging.getLogger(__name__)


@dataclass
class OAuthStateContext:
    """Context bound to a state when it was issued."""

    user_id: str
    provider: str
    environment: str | None
    client_id: str | None = None
    code_verifier: str | None = None


class OAuthStateService:
    """Issues and consumes OAuth state tokens.

    ``validate_and_consume`` is the only CSRF check on the OAuth
    callbacks. A state is accepted at most once: the row is removed
    with a conditional DELETE and a zero row count means another
    request already consumed it.
    """

    def __init__(self, ttl: timedelta | None = None):
        self._ttl = ttl or timedelta(minutes=settings.OAUTH_STATE_TTL_MINUTES)

    def issue(
        self,
        db: Session,
        user_id: str,
        environment: str | None,
        provider: str = "quickbooks",
        client_id: str | None = None,
        code_verifier: str | None = None,
        now: datetime | None = None,
    ) -> str:
        """Create and persist a new state token (flushes, does not commit)."""
        now = now or utc_now()
        state = secrets.token_urlsafe(32)
        db.add(
            OAuthState(
                state=state,
                user_id=user_id,
                provider=provider,
                environment=environment,
                client_id=client_id,
                code_verifier=code_verifier,
                expires_at=now + self._ttl,
            )
        )
        db.flush()
        logger.info("Issued %s OAuth state for user %s", provider, user_id)
        return state

    def validate_and_consume(
        self,
        db: Session,
        state: str,
        provider: str = "quickbooks",
        now: datetime | None = None,
    ) -> OAuthStateContext:
        """Validate a state and delete it.

        Raises:
            InvalidOAuthState: Unknown, already consumed, or expired.
        """
        now = now or utc_now()
        if not state:
            raise InvalidOAuthState("Missing OAuth state")

        record = (
            db.query(OAuthState)
            .filter(OAuthState.state == state, OAuthState.provider == provider)
            .first()
        )
        if record is None:
            logger.warning("Rejected unknown or reused %s OAuth state", provider)
            raise InvalidOAuthState("Unknown or already used OAuth state")

        context = OAuthStateContext(
            user_id=record.user_id,
            provider=record.provider,
            environment=record.environment,
            client_id=record.client_id,
            code_verifier=record.code_verifier,
        )
        expires_at = record.expires_at

        deleted = (
            db.query(OAuthState)
            .filter(OAuthState.id == record.id)
            .delete(synchronize_session=False)
        )
        db.expunge(record)
        db.flush()
        if deleted == 0:
            logger.warning("OAuth state consumed concurrently for user %s", context.user_id)
            raise InvalidOAuthState("OAuth state was already used")

        if expires_at <= now:
            logger.warning("Rejected expired %s OAuth state for user %s", provider, context.user_id)
            raise InvalidOAuthState("OAuth state has expired")

        return context

    def purge_expired(self, db: Session, now: datetime | None = None) -> int:
        """Delete every expired state. Returns the number removed."""
        now = now or utc_now()
        removed = (
            db.query(OAuthState)
            .filter(OAuthState.expires_at <= now)
            .delete(synchronize_session=False)
        )
        db.flush()
        if removed:
            logger.info("Purged %d expired OAuth states", removed)
        return removed
