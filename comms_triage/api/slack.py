"""Slack Events API webhook."""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Request, status

from ..core.config import get_settings
from ..core.dependencies import CoordinatorDep
from ..core.errors import AuthenticationFailure, IngestionError, PersistenceFailure
from ..core.security import verify_webhook_signature
from ..schemas import WebhookAck
from ..services import IngestStatus, SkipReason
from ..services.slack_adapter import is_url_verification

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/slack", tags=["slack"])


@router.post("/webhook")
async def slack_webhook(
    request: Request,
    coordinator: CoordinatorDep,
    x_slack_signature: Annotated[str | None, Header()] = None,
    x_slack_request_timestamp: Annotated[str | None, Header()] = None,
):
    """
    Receive a Slack event callback.

    The signature is checked against the raw body before anything is
    parsed. The URL verification handshake echoes ``challenge`` verbatim.
    """
    body = await request.body()

    try:
        verify_webhook_signature(
            body,
            x_slack_request_timestamp,
            x_slack_signature,
            settings.slack_signing_secret,
        )
    except AuthenticationFailure as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e

    try:
        payload = json.loads(body)
    except ValueError:
        payload = None

    if not isinstance(payload, dict):
        logger.warning("Slack webhook body is not a JSON object")
        return WebhookAck(
            ok=False, status=IngestStatus.DROPPED.value, reason=SkipReason.MALFORMED_ENVELOPE.value
        )

    if is_url_verification(payload):
        return {"challenge": payload.get("challenge")}

    try:
        result = await coordinator.handle_slack_event(payload)
    except PersistenceFailure as e:
        logger.error(f"Slack webhook storage failure: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Storage unavailable",
        ) from e
    except IngestionError as e:
        logger.error(f"Slack webhook error: {e}")
        return WebhookAck(
            ok=False, status=IngestStatus.ERROR.value, reason=SkipReason.UPSTREAM_ERROR.value
        )
    except Exception:
        logger.exception("Unexpected error processing Slack event")
        return WebhookAck(ok=False, status=IngestStatus.ERROR.value)

    return WebhookAck(
        status=result.status.value,
        reason=result.reason.value if result.reason else None,
    )
