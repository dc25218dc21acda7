"""Shared API helpers and dependencies for route handlers."""

import hmac
import time
from typing import Callable, Iterator, TypeVar

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from config import settings
from database import Base, get_db
from integrations.dropbox_client import DropboxClient
from integrations.workflow_client import WorkflowClient
from models import Profile
from services.connection_service import QBOClientFactory
from services.dispatch_service import default_workflow_client
from services.firm_integration_service import default_qbo_client_factory
from services.token_vault import TokenVault

T = TypeVar("T", bound=Base)


def get_or_404(db: Session, model: type[T], entity_id: str, detail: str = "Not found") -> T:
    """Fetch a single entity by primary key or raise 404.

    Args:
        db: Database session.
        model: SQLAlchemy model class.
        entity_id: Primary key value.
        detail: Error message for the 404 response.

    Returns:
        The entity instance.

    Raises:
        HTTPException: 404 if the entity doesn't exist.
    """
    entity = db.query(model).filter(model.id == entity_id).first()
    if not entity:
        raise HTTPException(status_code=404, detail=detail)
    return entity


# ------------------------------------------------------------------
# Dependencies (overridable in tests)
# ------------------------------------------------------------------


def get_token_vault() -> TokenVault:
    return TokenVault()


def get_qbo_client_factory() -> QBOClientFactory:
    return default_qbo_client_factory


def get_workflow_client() -> Iterator[WorkflowClient]:
    """One webhook client per request, closed when the response is sent."""
    with default_workflow_client() as client:
        yield client


def get_dropbox_client() -> Iterator[DropboxClient]:
    with DropboxClient(
        settings.DROPBOX_APP_KEY,
        settings.DROPBOX_APP_SECRET,
        settings.DROPBOX_REDIRECT_URI,
    ) as client:
        yield client


def get_sleep() -> Callable[[float], None]:
    """Sleep used for rate-limit and batch pauses."""
    return time.sleep


def get_current_profile(
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Profile:
    """Resolve the acting user from the ``X-User-Id`` header set by the auth gateway."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    profile = db.get(Profile, x_user_id)
    if profile is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return profile


def require_firm_id(profile: Profile = Depends(get_current_profile)) -> str:
    """The acting user's firm id, or 403 if the user has no firm."""
    if not profile.firm_id:
        raise HTTPException(status_code=403, detail="User is not associated with a firm")
    return profile.firm_id


def require_internal_secret(x_internal_secret: str | None = Header(default=None)) -> None:
    """Guard scheduler endpoints when ``INTERNAL_API_SECRET`` is set."""
    expected = settings.INTERNAL_API_SECRET
    if not expected:
        return
    if not x_internal_secret or not hmac.compare_digest(
        x_internal_secret.encode(), expected.encode()
    ):
        raise HTTPException(status_code=401, detail="Invalid internal secret")
