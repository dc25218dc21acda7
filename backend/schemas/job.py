"""Canonical job request/callback schemas for the workflow engine.

Outbound requests always use the canonical field names. Inbound
callbacks accept the historical aliases the engine's workflows send.
"""

from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

_STATUS_ALIASES = {
    "completed": "completed",
    "complete": "completed",
    "success": "completed",
    "succeeded": "completed",
    "failed": "failed",
    "failure": "failed",
    "error": "failed",
}


class JobRequest(BaseModel):
    """Payload POSTed to the workflow engine webhook."""

    run_id: str
    client_id: str
    client_name: str
    realm_id: str
    run_type: str
    environment: str
    callback_url: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)


class JobCallback(BaseModel):
    """Completion report sent back by the workflow engine."""

    run_id: str = Field(
        validation_alias=AliasChoices("run_id", "runId", "review_id", "reviewId"),
        min_length=1,
    )
    status: Literal["completed", "failed"]
    result_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "result_url",
            "sheet_url",
            "sheetUrl",
            "google_sheet_url",
            "googleSheetUrl",
            "report_url",
            "reportUrl",
        ),
    )
    action_items_count: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices(
            "action_items_count",
            "actionItemsCount",
            "unreconciled_count",
            "unreconciledCount",
        ),
    )
    error_message: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("error_message", "errorMessage", "error"),
    )

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        if isinstance(v, str):
            return _STATUS_ALIASES.get(v.strip().lower(), v)
        return v

    @field_validator("result_url", "action_items_count", "error_message", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Query-string callbacks send empty strings for absent values."""
        if isinstance(v, str) and not v.strip():
            return None
        return v
