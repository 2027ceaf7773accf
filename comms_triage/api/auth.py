"""OAuth connect endpoints for Gmail and Slack.

The consent redirect carries the tenant in ``state``. Callbacks are
browser-facing, so they answer with small HTML pages rather than JSON.
"""

import logging
from html import escape
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..core.config import get_settings
from ..core.dependencies import OAuthServiceDep
from ..core.errors import IngestionError
from ..services.oauth import SLACK_SCOPES, build_google_auth_url, build_slack_auth_url

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/auth", tags=["auth"])


def _result_page(title: str, message: str, status_code: int = status.HTTP_200_OK) -> HTMLResponse:
    html = f"""<!DOCTYPE html>
<html>
  <head><title>{escape(title)}</title></head>
  <body style="font-family: sans-serif; text-align: center; padding: 50px;">
    <h1>{escape(title)}</h1>
    <p>{escape(message)}</p>
  </body>
</html>"""
    return HTMLResponse(content=html, status_code=status_code)


def _require_user_id(user_id: str | None) -> str:
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="user_id required",
        )
    return user_id


# =============================================================================
# GMAIL
# =============================================================================


@router.get("/google")
async def start_google_auth(
    user_id: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """Redirect the user to Google's consent screen."""
    user_id = _require_user_id(user_id)
    if not settings.gmail_enabled:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Gmail integration is not configured on this server",
        )
    return RedirectResponse(url=build_google_auth_url(user_id), status_code=302)


@router.get("/google/callback", response_class=HTMLResponse)
async def google_oauth_callback(
    oauth: OAuthServiceDep,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> HTMLResponse:
    if error or not code:
        logger.warning(f"Google OAuth callback without code (error={error})")
        return _result_page(
            "Connection Failed",
            f"Google authorization was not completed: {error or 'missing code'}",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    try:
        account = await oauth.complete_google(code, state)
    except IngestionError as e:
        logger.error(f"Gmail OAuth failed: {e}")
        return _result_page("Connection Failed", str(e), status.HTTP_500_INTERNAL_SERVER_ERROR)

    return _result_page(
        "Gmail Connected!",
        f"{account.account_identifier} is now connected. You can close this window.",
    )


# =============================================================================
# SLACK
# =============================================================================


@router.get("/slack")
async def start_slack_auth(
    user_id: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """Redirect the user to Slack's install/consent screen."""
    user_id = _require_user_id(user_id)
    if not settings.slack_enabled:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Slack integration is not configured on this server",
        )
    return RedirectResponse(url=build_slack_auth_url(user_id), status_code=302)


@router.get("/slack/test")
async def debug_slack_auth(
    user_id: Annotated[str | None, Query()] = None,
) -> dict:
    """Return the Slack consent URL as JSON instead of redirecting. Not available in production."""
    if settings.environment == "production":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    user_id = _require_user_id(user_id)
    return {
        "auth_url": build_slack_auth_url(user_id),
        "client_id_configured": bool(settings.slack_client_id),
        "redirect_uri": settings.slack_redirect_uri,
        "scopes": SLACK_SCOPES,
    }


@router.get("/slack/callback", response_class=HTMLResponse)
async def slack_oauth_callback(
    oauth: OAuthServiceDep,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> HTMLResponse:
    if error or not code:
        logger.warning(f"Slack OAuth callback without code (error={error})")
        return _result_page(
            "Connection Failed",
            f"Slack authorization was not completed: {error or 'missing code'}",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    try:
        account = await oauth.complete_slack(code, state)
    except IngestionError as e:
        logger.error(f"Slack OAuth failed: {e}")
        return _result_page("Connection Failed", str(e), status.HTTP_500_INTERNAL_SERVER_ERROR)

    workspace = account.account_name or account.account_identifier
    return _result_page(
        "Slack Connected!",
        f"Workspace {workspace} is now connected. You can close this window.",
    )
