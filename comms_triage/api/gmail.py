"""Gmail endpoints: Pub/Sub push webhook, on-demand sync and watch activation."""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request, status

from ..core.config import get_settings
from ..core.dependencies import CoordinatorDep
from ..core.errors import (
    AuthenticationFailure,
    IngestionError,
    PersistenceFailure,
    UnknownTenant,
    UpstreamProviderError,
)
from ..core.security import verify_push_token
from ..schemas import (
    IngestResultOut,
    SyncRequest,
    SyncResponse,
    WatchRequest,
    WatchResponse,
    WebhookAck,
)
from ..services import BatchResult, IngestStatus, SkipReason

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/gmail", tags=["gmail"])


def _sync_http_error(e: IngestionError) -> HTTPException:
    """Map coordinator failures to HTTP errors for synchronous callers."""
    if isinstance(e, UnknownTenant):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Gmail not connected for this user",
        )
    if isinstance(e, UpstreamProviderError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


# =============================================================================
# PUSH WEBHOOK
# =============================================================================


@router.post("/webhook", response_model=WebhookAck)
async def gmail_webhook(
    request: Request,
    coordinator: CoordinatorDep,
    token: Annotated[str | None, Query()] = None,
) -> WebhookAck:
    """
    Receive a Gmail Pub/Sub push notification.

    Always acknowledges with 200 so Pub/Sub does not redeliver, even when
    processing fails unexpectedly. The exceptions are:
    - 401 when the push verification token does not match
    - 500 when storage fails, so the notification is redelivered
    """
    try:
        verify_push_token(token, settings.gmail_pubsub_verification_token)
    except AuthenticationFailure as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e

    try:
        envelope = await request.json()
    except ValueError:
        logger.warning("Gmail webhook body is not JSON")
        return WebhookAck(
            ok=False, status=IngestStatus.DROPPED.value, reason=SkipReason.MALFORMED_ENVELOPE.value
        )

    try:
        outcome = await coordinator.handle_gmail_push(envelope)
    except PersistenceFailure as e:
        logger.error(f"Gmail webhook storage failure: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage unavailable",
        ) from e
    except IngestionError as e:
        logger.error(f"Gmail webhook error: {e}")
        return WebhookAck(
            ok=False, status=IngestStatus.ERROR.value, reason=SkipReason.UPSTREAM_ERROR.value
        )
    except Exception:
        logger.exception("Unexpected error processing Gmail push notification")
        return WebhookAck(ok=False, status=IngestStatus.ERROR.value)

    if isinstance(outcome, BatchResult):
        return WebhookAck(status="processed", processed=outcome.persisted)
    return WebhookAck(
        status=outcome.status.value,
        reason=outcome.reason.value if outcome.reason else None,
    )


# =============================================================================
# SYNC / WATCH
# =============================================================================


@router.post("/sync", response_model=SyncResponse)
async def sync_gmail(body: SyncRequest, coordinator: CoordinatorDep) -> SyncResponse:
    """Pull the user's most recent inbox messages into pending actions."""
    if not body.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id required")

    max_results = body.max_results or settings.gmail_sync_default_max_results
    try:
        batch = await coordinator.sync_gmail(body.user_id, max_results)
    except IngestionError as e:
        logger.error(f"Gmail sync failed for user {body.user_id}: {e}")
        raise _sync_http_error(e) from e

    return SyncResponse(
        processed=len(batch.results),
        filtered=batch.filtered,
        message=(
            f"Processed {len(batch.results)} emails "
            f"({batch.persisted} new, {batch.filtered} filtered out)"
        ),
        results=[IngestResultOut.model_validate(r.to_dict()) for r in batch.results],
    )


@router.post("/watch", response_model=WatchResponse)
async def watch_gmail(body: WatchRequest, coordinator: CoordinatorDep) -> WatchResponse:
    """Start Gmail push notifications for the user's inbox."""
    if not body.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id required")
    if not settings.gmail_pubsub_topic:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Gmail push notifications are not configured on this server",
        )

    try:
        watch = await coordinator.activate_gmail_watch(body.user_id)
    except IngestionError as e:
        logger.error(f"Gmail watch failed for user {body.user_id}: {e}")
        raise _sync_http_error(e) from e

    return WatchResponse(
        message="Gmail push notifications enabled",
        history_id=watch["historyId"],
        expiration=str(watch["expiration"]) if watch["expiration"] is not None else None,
    )
