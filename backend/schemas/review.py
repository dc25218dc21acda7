"""Pydantic schemas for review dispatch and scheduler reports."""

from typing import Optional

from pydantic import BaseModel, Field


class TriggerReviewRequest(BaseModel):
    client_id: str


class BatchTriggerRequest(BaseModel):
    client_ids: list[str] = Field(min_length=1)


class DispatchResultResponse(BaseModel):
    client_id: str
    client_name: Optional[str] = None
    run_id: Optional[str] = None
    status: str  # "processing" | "failed" | "skipped"
    error: Optional[str] = None


class BatchTriggerResponse(BaseModel):
    total: int
    success: int
    error: int
    skipped: int
    results: list[DispatchResultResponse]


class CallbackAck(BaseModel):
    success: bool = True
    run_id: str
    status: str
    status_color: Optional[str] = None


class RefreshReportResponse(BaseModel):
    checked: int
    refreshed: int
    needs_reconnect: int
    errors: int


class HealthReportResponse(BaseModel):
    checked: int
    healthy: int
    needs_reconnect: int
    errors: int
    alert_id: Optional[str] = None


class PurgeResponse(BaseModel):
    removed: int
