"""
Email Adapter: Gmail push notifications, history fetch and normalization.

Handles:
- Pub/Sub push envelope decoding
- Per-tenant Gmail API client (refresh token passed explicitly)
- Incremental fetch via users.history.list with a stored cursor
- Label exclusion policy and sender parsing
- Normalization into InboundMessage
"""

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

from ..core.config import get_settings
from ..core.errors import MalformedEnvelope, UpstreamProviderError
from ..models import Provider
from .messages import InboundMessage

logger = logging.getLogger(__name__)
settings = get_settings()

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"

METADATA_HEADERS = ["From", "Subject", "Date", "Message-ID"]

# Messages carrying any of these labels never become triage cards
EXCLUDED_LABELS = [
    "CATEGORY_PROMOTIONS",
    "CATEGORY_SOCIAL",
    "CATEGORY_UPDATES",
    "CATEGORY_FORUMS",
    "SPAM",
    "TRASH",
]
REQUIRED_LABEL = "INBOX"

NAMED_SENDER_RE = re.compile(r"^(.+?)\s*<.+>$")
BRACKETED_ADDRESS_RE = re.compile(r"<(.+)>")


class HistoryExpired(UpstreamProviderError):
    """Stored historyId is older than Gmail keeps history for."""
    pass


# =============================================================================
# PUSH ENVELOPE
# =============================================================================


@dataclass(frozen=True)
class GmailPushNotification:
    """Decoded ``message.data`` of a Gmail Pub/Sub push."""
    email_address: str
    history_id: str | None


def decode_push_envelope(envelope: dict[str, Any]) -> GmailPushNotification:
    """Decode a Pub/Sub push body: ``{"message": {"data": <base64 json>}}``."""
    message = envelope.get("message") if isinstance(envelope, dict) else None
    data = message.get("data") if isinstance(message, dict) else None
    if not data:
        raise MalformedEnvelope("Push envelope has no message data")

    try:
        decoded = json.loads(base64.b64decode(data + "=" * (-len(data) % 4)))
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelope("Push message data is not base64 JSON") from e

    email_address = decoded.get("emailAddress") if isinstance(decoded, dict) else None
    if not email_address:
        raise MalformedEnvelope("Push notification has no emailAddress")

    history_id = decoded.get("historyId")
    return GmailPushNotification(
        email_address=email_address,
        history_id=str(history_id) if history_id is not None else None,
    )


# =============================================================================
# NORMALIZATION
# =============================================================================


def excluded_label(label_ids: list[str] | None) -> str | None:
    """Return the label that excludes a message, or None if it is kept.

    A message outside the primary inbox is reported as excluded by
    ``INBOX`` (the missing label).
    """
    labels = label_ids or []
    for label in EXCLUDED_LABELS:
        if label in labels:
            return label
    if REQUIRED_LABEL not in labels:
        return REQUIRED_LABEL
    return None


def parse_sender_name(from_header: str | None) -> str:
    """Display name from a ``From`` header, falling back to the bare address.

    Everything before the angle-bracketed address is the display name, so
    unquoted names containing commas (``Smith, John <j@x.com>``) stay whole.
    """
    if not from_header or not from_header.strip():
        return "Unknown Sender"

    header = from_header.strip()
    named = NAMED_SENDER_RE.match(header)
    if named:
        name = named.group(1).replace('"', "").strip()
        if name:
            return name
    bracketed = BRACKETED_ADDRESS_RE.search(header)
    if bracketed:
        return bracketed.group(1).strip()
    return header


def extract_headers(message: dict[str, Any]) -> dict[str, str]:
    headers = (message.get("payload") or {}).get("headers") or []
    by_name = {h.get("name", "").lower(): h.get("value", "") for h in headers}
    return {
        "from": by_name.get("from", ""),
        "subject": by_name.get("subject", ""),
        "date": by_name.get("date", ""),
        "message_id": by_name.get("message-id", ""),
    }


def build_gmail_link(gmail_id: str) -> str:
    return f"https://mail.google.com/mail/u/0/#inbox/{gmail_id}"


def normalize_gmail_message(message: dict[str, Any], user_id: str) -> InboundMessage | None:
    """Build an InboundMessage from a metadata-format Gmail message.

    Returns None when the label policy excludes the message.
    """
    gmail_id = message.get("id")
    if not gmail_id:
        raise MalformedEnvelope("Gmail message has no id")

    headers = extract_headers(message)
    label = excluded_label(message.get("labelIds"))
    if label:
        logger.info(f"Filtered out ({label}): {headers['from'] or gmail_id}")
        return None

    return InboundMessage(
        user_id=user_id,
        provider=Provider.EMAIL,
        sender_display_name=parse_sender_name(headers["from"]),
        body_summary=headers["subject"].strip() or "(No Subject)",
        deep_link=build_gmail_link(gmail_id),
        dedup_key=headers["message_id"].strip() or gmail_id,
    )


# =============================================================================
# GMAIL API CLIENT
# =============================================================================


def _google_error(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message") or error.get("status") or str(response.status_code)
    if isinstance(error, str):
        return payload.get("error_description") or error
    return str(response.status_code)


class GmailClient:
    """Gmail API access for a single tenant.

    Built per request from the tenant's stored refresh token; nothing is
    shared between tenants.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        refresh_token: str | None = None,
        access_token: str | None = None,
    ):
        if not refresh_token and not access_token:
            raise ValueError("Either refresh_token or access_token must be provided")
        self._http = http_client
        self._refresh_token = refresh_token
        self._access_token = access_token

    async def _get_access_token(self) -> str:
        if self._access_token:
            return self._access_token

        try:
            response = await self._http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": settings.gmail_client_id,
                    "client_secret": settings.gmail_client_secret,
                    "refresh_token": self._refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            raise UpstreamProviderError(f"Google token refresh failed: {e}") from e

        if response.is_error:
            raise UpstreamProviderError(
                f"Google token refresh failed: {_google_error(response)}",
                status_code=response.status_code,
            )

        self._access_token = response.json()["access_token"]
        return self._access_token

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        token = await self._get_access_token()
        try:
            response = await self._http.request(
                method,
                f"{GMAIL_API_BASE}{path}",
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise UpstreamProviderError(f"Gmail API {path} failed: {e}") from e

        if response.status_code == 404 and path == "/history":
            raise HistoryExpired("History cursor expired", status_code=404)
        if response.is_error:
            logger.error(f"Gmail API {path} failed status={response.status_code}")
            raise UpstreamProviderError(
                f"Gmail API {path} failed: {_google_error(response)}",
                status_code=response.status_code,
            )
        return response.json()

    async def get_profile(self) -> dict[str, Any]:
        """``{"emailAddress": ..., "historyId": ...}``"""
        return await self._request("GET", "/profile")

    async def list_message_ids(self, max_results: int) -> list[str]:
        """Most recent inbox message ids, newest first."""
        data = await self._request(
            "GET",
            "/messages",
            params={"labelIds": REQUIRED_LABEL, "maxResults": max_results},
        )
        return [m["id"] for m in data.get("messages", [])]

    async def list_history_message_ids(self, start_history_id: str) -> tuple[list[str], str | None]:
        """Ids of messages added to the inbox since ``start_history_id``.

        Returns the ids in history order plus the latest historyId reported.
        """
        message_ids: list[str] = []
        seen: set[str] = set()
        latest: str | None = None
        page_token: str | None = None

        while True:
            params = {
                "startHistoryId": start_history_id,
                "historyTypes": "messageAdded",
                "labelId": REQUIRED_LABEL,
            }
            if page_token:
                params["pageToken"] = page_token

            data = await self._request("GET", "/history", params=params)
            latest = data.get("historyId", latest)

            for record in data.get("history", []):
                for added in record.get("messagesAdded", []):
                    message_id = added.get("message", {}).get("id")
                    if message_id and message_id not in seen:
                        seen.add(message_id)
                        message_ids.append(message_id)

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return message_ids, str(latest) if latest is not None else None

    async def get_message_metadata(self, message_id: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/messages/{message_id}",
            params={"format": "metadata", "metadataHeaders": METADATA_HEADERS},
        )

    async def watch(self, topic_name: str) -> dict[str, Any]:
        """Start push notifications for the inbox; returns historyId/expiration."""
        return await self._request(
            "POST",
            "/watch",
            json={"topicName": topic_name, "labelIds": [REQUIRED_LABEL]},
        )
