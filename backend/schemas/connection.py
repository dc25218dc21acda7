"""Pydantic schemas for QuickBooks and Dropbox connections."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class ConnectRequest(BaseModel):
    """Start an OAuth flow, optionally for an existing client."""

    client_id: Optional[str] = None
    environment: Optional[Literal["sandbox", "production"]] = None


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str


class ConnectionStatusResponse(BaseModel):
    client_id: str
    connected: bool
    connection_status: str
    realm_id: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    refresh_token_updated_at: Optional[datetime] = None
    needs_refresh: bool = False
    environment: Optional[str] = None
    last_error: Optional[str] = None


class RefreshResultResponse(BaseModel):
    connection_id: str
    client_id: str
    status: str
    error: Optional[str] = None
    expires_at: Optional[datetime] = None


class DropboxStatusResponse(BaseModel):
    connected: bool
    account_id: Optional[str] = None
    token_expires_at: Optional[datetime] = None
