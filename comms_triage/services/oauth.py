"""OAuth authorization flows for Gmail and Slack.

The initiating tenant travels through the provider in the ``state``
parameter; on callback the code is exchanged and the resulting credential
is stored against that tenant.
"""

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import OAuthExchangeError, UpstreamProviderError
from ..core.security import decode_oauth_state, encode_oauth_state
from ..models import Provider
from .credential_store import CredentialStore
from .gmail_adapter import GOOGLE_TOKEN_URL, GmailClient

logger = logging.getLogger(__name__)
settings = get_settings()

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.metadata",
]

SLACK_AUTH_URL = "https://slack.com/oauth/v2/authorize"
SLACK_TOKEN_URL = "https://slack.com/api/oauth.v2.access"
SLACK_SCOPES = [
    "channels:read",  # Resolve channel metadata
    "im:history",     # Read direct messages
    "im:read",        # DM channel info
    "users:read",     # Resolve sender names
]


@dataclass(frozen=True)
class AuthorizedAccount:
    """Result of a successful code exchange."""
    user_id: str
    provider: Provider
    account_identifier: str
    account_name: str | None = None


# =============================================================================
# CONSENT URLS
# =============================================================================


def build_google_auth_url(user_id: str) -> str:
    params = {
        "client_id": settings.gmail_client_id,
        "redirect_uri": settings.gmail_redirect_uri,
        "response_type": "code",
        "scope": " ".join(GMAIL_SCOPES),
        "access_type": "offline",
        "prompt": "consent",  # Always issue a refresh token
        "state": encode_oauth_state(user_id),
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def build_slack_auth_url(user_id: str) -> str:
    params = {
        "client_id": settings.slack_client_id,
        "scope": ",".join(SLACK_SCOPES),
        "redirect_uri": settings.slack_redirect_uri,
        "state": encode_oauth_state(user_id),
    }
    return f"{SLACK_AUTH_URL}?{urlencode(params)}"


# =============================================================================
# CODE EXCHANGE
# =============================================================================


class OAuthService:
    """Completes provider authorization and stores the credential."""

    def __init__(self, session: AsyncSession, http_client: httpx.AsyncClient):
        self._store = CredentialStore(session)
        self._http = http_client

    async def complete_google(self, code: str, state: str) -> AuthorizedAccount:
        user_id = decode_oauth_state(state)

        try:
            response = await self._http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": settings.gmail_client_id,
                    "client_secret": settings.gmail_client_secret,
                    "redirect_uri": settings.gmail_redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            tokens = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise OAuthExchangeError(f"Google token exchange failed: {e}") from e

        if response.is_error or "error" in tokens:
            logger.error(f"Google OAuth error: {tokens.get('error')}")
            raise OAuthExchangeError(
                f"Google authorization failed: {tokens.get('error_description') or tokens.get('error')}"
            )

        refresh_token = tokens.get("refresh_token")
        if not refresh_token:
            raise OAuthExchangeError("Google did not return a refresh token")

        gmail = GmailClient(self._http, access_token=tokens.get("access_token"))
        try:
            profile = await gmail.get_profile()
        except UpstreamProviderError as e:
            raise OAuthExchangeError(f"Could not read Gmail profile: {e}") from e
        email_address = profile.get("emailAddress")
        if not email_address:
            raise OAuthExchangeError("Gmail profile has no email address")

        await self._store.upsert_credential(
            provider=Provider.EMAIL,
            account_identifier=email_address,
            user_id=user_id,
            secret_token=refresh_token,
        )
        logger.info(f"Gmail connected for {email_address} (user: {user_id})")

        return AuthorizedAccount(
            user_id=user_id,
            provider=Provider.EMAIL,
            account_identifier=email_address,
        )

    async def complete_slack(self, code: str, state: str) -> AuthorizedAccount:
        user_id = decode_oauth_state(state)

        try:
            response = await self._http.post(
                SLACK_TOKEN_URL,
                data={
                    "client_id": settings.slack_client_id,
                    "client_secret": settings.slack_client_secret,
                    "code": code,
                    "redirect_uri": settings.slack_redirect_uri,
                },
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise OAuthExchangeError(f"Slack token exchange failed: {e}") from e

        if not data.get("ok"):
            logger.error(f"Slack OAuth error: {data.get('error')}")
            raise OAuthExchangeError(f"Slack authorization failed: {data.get('error')}")

        team_info = data.get("team") or {}
        team_id = team_info.get("id")
        bot_token = data.get("access_token")
        if not team_id or not bot_token:
            raise OAuthExchangeError("Slack response missing team or access token")

        await self._store.upsert_credential(
            provider=Provider.CHAT,
            account_identifier=team_id,
            user_id=user_id,
            secret_token=bot_token,
            account_name=team_info.get("name"),
        )
        logger.info(f"Slack connected for workspace \"{team_info.get('name')}\" (user: {user_id})")

        return AuthorizedAccount(
            user_id=user_id,
            provider=Provider.CHAT,
            account_identifier=team_id,
            account_name=team_info.get("name"),
        )
