"""Request and response bodies for the ingestion endpoints.

Field names on the wire follow the provider-facing clients
(``maxResults``, ``historyId``), so camelCase aliases are used.
"""

from datetime import datetime

from pydantic import Field

from .base import TriageBaseModel


# =============================================================================
# GMAIL SYNC / WATCH
# =============================================================================


class SyncRequest(TriageBaseModel):
    """Pull the tenant's most recent inbox messages."""

    user_id: str | None = None
    max_results: int | None = Field(default=None, alias="maxResults", ge=1, le=100)


class IngestResultOut(TriageBaseModel):
    """Outcome for one message in a sync cycle."""

    status: str
    skipped: bool
    reason: str | None = None
    id: str | None = None
    sender: str | None = None
    summary: str | None = None
    url: str | None = None
    message_id: str | None = None


class SyncResponse(TriageBaseModel):
    success: bool = True
    processed: int
    filtered: int
    message: str
    results: list[IngestResultOut] = []


class WatchRequest(TriageBaseModel):
    user_id: str | None = None


class WatchResponse(TriageBaseModel):
    success: bool = True
    message: str
    history_id: str | None = Field(default=None, serialization_alias="historyId")
    expiration: str | None = None


# =============================================================================
# WEBHOOKS
# =============================================================================


class WebhookAck(TriageBaseModel):
    """Acknowledgement body for provider push deliveries.

    Providers only look at the status code; the body is for operators.
    """

    ok: bool = True
    status: str
    reason: str | None = None
    processed: int | None = None


# =============================================================================
# HEALTH
# =============================================================================


class HealthResponse(TriageBaseModel):
    status: str = "ok"
    timestamp: datetime
    database: bool
    gmail_oauth: bool
    slack_oauth: bool
