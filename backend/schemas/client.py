"""Pydantic schemas for clients and their runs."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClientCreate(BaseModel):
    """Schema for adding a client manually."""

    client_name: str = Field(min_length=1)
    realm_id: Optional[str] = None
    dropbox_folder_url: Optional[str] = None
    dropbox_folder_path: Optional[str] = None
    sheet_url: Optional[str] = None


class ClientUpdate(BaseModel):
    """Schema for updating a client. Omitted fields are left unchanged."""

    client_name: Optional[str] = Field(default=None, min_length=1)
    dropbox_folder_url: Optional[str] = None
    dropbox_folder_path: Optional[str] = None
    sheet_url: Optional[str] = None

    @field_validator("client_name")
    @classmethod
    def name_not_null(cls, value: Optional[str]) -> Optional[str]:
        # Omit the field to keep the name; null cannot clear it.
        if value is None:
            raise ValueError("client_name cannot be null")
        return value


class ClientResponse(BaseModel):
    id: str
    firm_id: str
    client_name: str
    realm_id: Optional[str] = None
    connection_status: str
    dropbox_folder_url: Optional[str] = None
    dropbox_folder_path: Optional[str] = None
    sheet_url: Optional[str] = None
    status_color: Optional[str] = None
    action_items_count: Optional[int] = None
    last_sync_at: Optional[datetime] = None
    last_review_at: Optional[datetime] = None
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RunResponse(BaseModel):
    id: str
    client_id: str
    run_type: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    result_url: Optional[str] = None
    action_items_count: Optional[int] = None
    status_color: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0

    model_config = ConfigDict(from_attributes=True)
