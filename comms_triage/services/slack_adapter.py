"""
Chat Adapter: Slack Events API direct messages.

Only human-authored direct messages become triage cards. Bot messages,
edits and every other subtype are ignored so the service never echoes
automation or re-files an edited message.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..core.errors import MalformedEnvelope
from ..models import Provider
from .messages import InboundMessage

logger = logging.getLogger(__name__)

SLACK_API_BASE = "https://slack.com/api"
SUMMARY_MAX_LENGTH = 100


# =============================================================================
# EVENT ENVELOPE
# =============================================================================


@dataclass(frozen=True)
class SlackDirectMessage:
    """Fields of a DM event needed to build a triage card."""
    team_id: str
    channel_id: str
    ts: str
    user_id: str
    text: str


def is_url_verification(payload: dict[str, Any]) -> bool:
    return payload.get("type") == "url_verification"


def parse_direct_message(payload: dict[str, Any]) -> SlackDirectMessage | None:
    """
    Extract a DM from an ``event_callback`` envelope.

    Returns None for events this service ignores (channel messages, bot
    messages, edits, non-message events). Raises MalformedEnvelope when a
    DM is missing the fields needed to identify it.
    """
    event = payload.get("event")
    if not isinstance(event, dict):
        return None
    if event.get("type") != "message" or event.get("channel_type") != "im":
        return None
    if event.get("bot_id") or event.get("subtype"):
        return None

    team_id = payload.get("team_id") or event.get("team")
    channel_id = event.get("channel")
    ts = event.get("ts")
    if not team_id or not channel_id or not ts:
        raise MalformedEnvelope("Slack DM event missing team, channel or ts")

    return SlackDirectMessage(
        team_id=team_id,
        channel_id=channel_id,
        ts=ts,
        user_id=event.get("user") or "",
        text=event.get("text") or "",
    )


# =============================================================================
# NORMALIZATION
# =============================================================================


def truncate_summary(text: str, limit: int = SUMMARY_MAX_LENGTH) -> str:
    if not text:
        return "(No message text)"
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def build_slack_link(team_id: str, channel_id: str, message_ts: str) -> str:
    return f"https://slack.com/app_redirect?team={team_id}&channel={channel_id}&message_ts={message_ts}"


def build_dedup_key(team_id: str, channel_id: str, message_ts: str) -> str:
    return f"{team_id}-{channel_id}-{message_ts}"


def normalize_direct_message(dm: SlackDirectMessage, user_id: str, sender_name: str) -> InboundMessage:
    return InboundMessage(
        user_id=user_id,
        provider=Provider.CHAT,
        sender_display_name=sender_name,
        body_summary=truncate_summary(dm.text),
        deep_link=build_slack_link(dm.team_id, dm.channel_id, dm.ts),
        dedup_key=build_dedup_key(dm.team_id, dm.channel_id, dm.ts),
    )


# =============================================================================
# SLACK WEB API CLIENT
# =============================================================================


class SlackClient:
    """Slack Web API access using one tenant's bot token."""

    def __init__(self, http_client: httpx.AsyncClient, bot_token: str):
        self._http = http_client
        self._bot_token = bot_token

    async def resolve_display_name(self, slack_user_id: str) -> str:
        """Best display name for a user; falls back to the raw id on any failure."""
        if not slack_user_id:
            return "Unknown Sender"

        try:
            response = await self._http.get(
                f"{SLACK_API_BASE}/users.info",
                params={"user": slack_user_id},
                headers={"Authorization": f"Bearer {self._bot_token}"},
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not fetch Slack user info for {slack_user_id}: {e}")
            return slack_user_id

        if not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error") if isinstance(data, dict) else "unexpected response"
            logger.warning(f"Slack users.info failed for {slack_user_id}: {error}")
            return slack_user_id

        user = data.get("user")
        if not isinstance(user, dict):
            return slack_user_id
        return user.get("real_name") or user.get("name") or slack_user_id
