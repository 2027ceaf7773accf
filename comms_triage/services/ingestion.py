"""
Ingestion Coordinator: inbound event -> tenant -> normalized message -> pending action.

State machine per inbound event:

    received -> authenticated -> tenant-resolved -> normalized
             -> dedup-checked -> persisted

Terminal non-error states (dropped/skipped) are returned as IngestResult
values. Provider and storage failures are raised so synchronous callers
can surface them; webhook callers log them and still acknowledge.

Guarantees:
1. At most one PendingAction per (message_id, platform), enforced by the
   unique index; a lost insert race is reported as a duplicate skip
2. Each PendingAction is committed on its own, so a failure late in a
   cycle never rolls back cards already written
3. Messages within one fetch cycle are processed sequentially in arrival order
"""

import logging
from typing import Any
from uuid import uuid4

import httpx
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import (
    IngestionError,
    MalformedEnvelope,
    PersistenceFailure,
    UnknownTenant,
    UpstreamProviderError,
)
from ..models import PendingAction, Provider
from .credential_store import CredentialStore
from .dedup import DeduplicationGate
from .gmail_adapter import (
    GmailClient,
    HistoryExpired,
    decode_push_envelope,
    normalize_gmail_message,
)
from .messages import (
    BatchResult,
    CredentialRecord,
    InboundMessage,
    IngestResult,
    IngestStatus,
    SkipReason,
)
from .slack_adapter import SlackClient, normalize_direct_message, parse_direct_message

logger = logging.getLogger(__name__)
settings = get_settings()


def latest_history_id(*candidates: str | None) -> str | None:
    """Largest numeric historyId among the candidates."""
    numeric = []
    for value in candidates:
        try:
            numeric.append(int(value))
        except (TypeError, ValueError):
            continue
    return str(max(numeric)) if numeric else None


class IngestionCoordinator:
    """Orchestrates credential lookup, normalization, dedup and persistence."""

    def __init__(self, session: AsyncSession, http_client: httpx.AsyncClient):
        self._session = session
        self._http = http_client
        self._store = CredentialStore(session)
        self._gate = DeduplicationGate(session)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def persist(self, message: InboundMessage) -> IngestResult:
        """Write a PendingAction unless one already exists for this message."""
        try:
            duplicate = await self._gate.is_duplicate(message.dedup_key, message.platform)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Duplicate check failed: {e}") from e

        if duplicate:
            logger.info(f"Skipping duplicate: {message.deep_link}")
            return IngestResult(
                status=IngestStatus.SKIPPED,
                reason=SkipReason.DUPLICATE,
                message=message,
            )

        action = PendingAction(
            id=uuid4(),
            user_id=message.user_id,
            platform=message.platform,
            sender=message.sender_display_name,
            summary=message.body_summary,
            task_text=message.task_text,
            url=message.deep_link,
            message_id=message.dedup_key,
        )
        self._session.add(action)

        try:
            await self._session.commit()
        except IntegrityError:
            # A concurrent delivery inserted the same message first
            await self._session.rollback()
            logger.info(f"Skipping duplicate (lost insert race): {message.deep_link}")
            return IngestResult(
                status=IngestStatus.SKIPPED,
                reason=SkipReason.DUPLICATE,
                message=message,
            )
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error(f"Insert error for {message.platform} message: {e}")
            raise PersistenceFailure(f"Failed to store pending action: {e}") from e

        logger.info(f"Saved for user {message.user_id}: {message.task_text[:60]}")
        return IngestResult(
            status=IngestStatus.PERSISTED,
            message=message,
            action_id=action.id,
        )

    # =========================================================================
    # EMAIL
    # =========================================================================

    async def _require_credential(self, user_id: str, provider: Provider) -> CredentialRecord:
        credential = await self._store.lookup_by_user_id(user_id, provider)
        if credential is None:
            raise UnknownTenant(provider.value, user_id)
        return credential

    async def _ingest_gmail_messages(
        self,
        gmail: GmailClient,
        message_ids: list[str],
        user_id: str,
    ) -> BatchResult:
        batch = BatchResult()
        for message_id in message_ids:
            try:
                raw = await gmail.get_message_metadata(message_id)
            except UpstreamProviderError as e:
                if e.status_code == 404:
                    # Deleted between listing and fetch
                    logger.info(f"Gmail message {message_id} no longer exists")
                    continue
                raise

            message = normalize_gmail_message(raw, user_id)
            if message is None:
                batch.filtered += 1
                continue

            batch.results.append(await self.persist(message))
        return batch

    async def handle_gmail_push(self, envelope: dict[str, Any]) -> BatchResult | IngestResult:
        """
        Process one Gmail Pub/Sub push notification.

        Fetches only messages added since the account's stored history
        cursor, then advances the cursor. Without a usable cursor it falls
        back to the most recent inbox messages, which can miss messages
        that arrived outside that window.
        """
        try:
            notification = decode_push_envelope(envelope)
        except MalformedEnvelope as e:
            logger.warning(f"Dropping malformed Gmail push: {e}")
            return IngestResult(status=IngestStatus.DROPPED, reason=SkipReason.MALFORMED_ENVELOPE)

        logger.info(f"Gmail notification for {notification.email_address} (historyId={notification.history_id})")

        credential = await self._store.lookup_by_account_identifier(
            Provider.EMAIL, notification.email_address
        )
        if credential is None:
            logger.warning(f"No user found for email: {notification.email_address}")
            return IngestResult(status=IngestStatus.DROPPED, reason=SkipReason.UNKNOWN_TENANT)

        gmail = GmailClient(self._http, refresh_token=credential.secret_token)

        message_ids: list[str] | None = None
        latest: str | None = None
        if credential.history_cursor:
            try:
                message_ids, latest = await gmail.list_history_message_ids(credential.history_cursor)
            except HistoryExpired:
                logger.warning(
                    f"History cursor {credential.history_cursor} expired for "
                    f"{notification.email_address}"
                )

        used_fallback = message_ids is None
        if used_fallback:
            logger.warning(
                f"No usable history cursor for {notification.email_address} - scanning last "
                f"{settings.gmail_webhook_fallback_max_results} inbox messages; older unseen "
                f"messages may be missed"
            )
            recent = await gmail.list_message_ids(settings.gmail_webhook_fallback_max_results)
            message_ids = list(reversed(recent))  # oldest first

        batch = await self._ingest_gmail_messages(gmail, message_ids, credential.user_id)
        batch.used_fallback = used_fallback

        cursor = latest_history_id(
            credential.history_cursor if not used_fallback else None,
            latest,
            notification.history_id,
        )
        if cursor and cursor != credential.history_cursor:
            await self._store.update_cursor(Provider.EMAIL, credential.account_identifier, cursor)
        batch.cursor = cursor

        logger.info(
            f"Webhook processed {batch.persisted} new emails for {notification.email_address} "
            f"({batch.duplicates} duplicates, {batch.filtered} filtered)"
        )
        return batch

    async def sync_gmail(self, user_id: str, max_results: int) -> BatchResult:
        """Pull the tenant's most recent inbox messages on demand."""
        credential = await self._require_credential(user_id, Provider.EMAIL)
        gmail = GmailClient(self._http, refresh_token=credential.secret_token)

        recent = await gmail.list_message_ids(max_results)
        batch = await self._ingest_gmail_messages(gmail, list(reversed(recent)), user_id)

        logger.info(
            f"Gmail sync for user {user_id}: {batch.persisted} added, "
            f"{batch.duplicates} duplicates, {batch.filtered} filtered"
        )
        return batch

    async def activate_gmail_watch(self, user_id: str) -> dict[str, Any]:
        """Start Gmail push notifications for the tenant's mailbox.

        Seeds the history cursor from the watch response when none is stored.
        """
        if not settings.gmail_pubsub_topic:
            raise IngestionError("GMAIL_PUBSUB_TOPIC is not configured")

        credential = await self._require_credential(user_id, Provider.EMAIL)
        gmail = GmailClient(self._http, refresh_token=credential.secret_token)

        response = await gmail.watch(settings.gmail_pubsub_topic)
        history_id = response.get("historyId")
        if history_id and not credential.history_cursor:
            await self._store.update_cursor(
                Provider.EMAIL, credential.account_identifier, str(history_id)
            )

        logger.info(f"Gmail watch started for user {user_id} (expiration={response.get('expiration')})")
        return {
            "historyId": str(history_id) if history_id is not None else None,
            "expiration": response.get("expiration"),
        }

    # =========================================================================
    # CHAT
    # =========================================================================

    async def handle_slack_event(self, payload: dict[str, Any]) -> IngestResult:
        """Process one Slack Events API callback (already authenticated)."""
        try:
            dm = parse_direct_message(payload)
        except MalformedEnvelope as e:
            logger.warning(f"Dropping malformed Slack event: {e}")
            return IngestResult(status=IngestStatus.DROPPED, reason=SkipReason.MALFORMED_ENVELOPE)

        if dm is None:
            return IngestResult(status=IngestStatus.DROPPED, reason=SkipReason.IGNORED_EVENT)

        credential = await self._store.lookup_by_account_identifier(Provider.CHAT, dm.team_id)
        if credential is None:
            logger.warning(f"No user found for Slack team: {dm.team_id}")
            return IngestResult(status=IngestStatus.DROPPED, reason=SkipReason.UNKNOWN_TENANT)

        slack = SlackClient(self._http, credential.secret_token)
        sender_name = await slack.resolve_display_name(dm.user_id)

        message = normalize_direct_message(dm, credential.user_id, sender_name)
        result = await self.persist(message)
        if result.status == IngestStatus.PERSISTED:
            logger.info(f"Slack DM for user {credential.user_id} from {sender_name}: {message.body_summary[:50]}")
        return result
