"""Pydantic schemas for firm integration settings."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class FirmIntegrationRequest(BaseModel):
    """Save the firm's Intuit app. Omit ``client_secret`` to keep the stored one."""

    intuit_client_id: str = Field(min_length=1)
    intuit_client_secret: Optional[str] = None
    intuit_environment: Literal["sandbox", "production"] = "sandbox"
    redirect_uri: Optional[str] = None
    intuit_app_name: Optional[str] = None


class FirmIntegrationResponse(BaseModel):
    firm_id: str
    intuit_client_id: Optional[str] = None
    intuit_client_secret_masked: Optional[str] = None
    intuit_environment: str = "sandbox"
    redirect_uri: Optional[str] = None
    intuit_app_name: Optional[str] = None
    is_configured: bool = False
    uses_default_credentials: bool = False
