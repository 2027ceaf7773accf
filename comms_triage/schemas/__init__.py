"""Pydantic schemas for the triage API.

- base: common configuration, error responses
- ingestion: sync/watch bodies, webhook acknowledgements, health
"""

from .base import ErrorDetail, ErrorResponse, TriageBaseModel
from .ingestion import (
    HealthResponse,
    IngestResultOut,
    SyncRequest,
    SyncResponse,
    WatchRequest,
    WatchResponse,
    WebhookAck,
)

__all__ = [
    "TriageBaseModel",
    "ErrorDetail",
    "ErrorResponse",
    "SyncRequest",
    "SyncResponse",
    "IngestResultOut",
    "WatchRequest",
    "WatchResponse",
    "WebhookAck",
    "HealthResponse",
]
