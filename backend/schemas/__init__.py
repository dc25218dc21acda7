"""Pydantic schemas for API request/response validation."""

from .client import ClientCreate, ClientResponse, ClientUpdate, RunResponse
from .connection import (
    AuthorizationUrlResponse,
    ConnectionStatusResponse,
    ConnectRequest,
    DropboxStatusResponse,
    RefreshResultResponse,
)
from .firm import FirmIntegrationRequest, FirmIntegrationResponse
from .job import JobCallback, JobRequest
from .review import (
    BatchTriggerRequest,
    BatchTriggerResponse,
    CallbackAck,
    DispatchResultResponse,
    HealthReportResponse,
    PurgeResponse,
    RefreshReportResponse,
    TriggerReviewRequest,
)

__all__ = [
    "AuthorizationUrlResponse",
    "BatchTriggerRequest",
    "BatchTriggerResponse",
    "CallbackAck",
    "ClientCreate",
    "ClientResponse",
    "ClientUpdate",
    "ConnectRequest",
    "ConnectionStatusResponse",
    "DispatchResultResponse",
    "DropboxStatusResponse",
    "FirmIntegrationRequest",
    "FirmIntegrationResponse",
    "HealthReportResponse",
    "JobCallback",
    "JobRequest",
    "PurgeResponse",
    "RefreshReportResponse",
    "RefreshResultResponse",
    "RunResponse",
    "TriggerReviewRequest",
]
