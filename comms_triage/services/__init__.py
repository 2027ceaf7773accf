"""Ingestion services: adapters, credential store, dedup and coordinator."""

from .credential_store import CredentialStore
from .dedup import DeduplicationGate
from .gmail_adapter import GmailClient, HistoryExpired, normalize_gmail_message
from .ingestion import IngestionCoordinator
from .messages import (
    BatchResult,
    CredentialRecord,
    InboundMessage,
    IngestResult,
    IngestStatus,
    SkipReason,
)
from .oauth import (
    AuthorizedAccount,
    OAuthService,
    build_google_auth_url,
    build_slack_auth_url,
)
from .slack_adapter import SlackClient, normalize_direct_message

__all__ = [
    # Coordinator
    "IngestionCoordinator",
    "CredentialStore",
    "DeduplicationGate",
    # Adapters
    "GmailClient",
    "HistoryExpired",
    "normalize_gmail_message",
    "SlackClient",
    "normalize_direct_message",
    # OAuth
    "OAuthService",
    "AuthorizedAccount",
    "build_google_auth_url",
    "build_slack_auth_url",
    # DTOs
    "CredentialRecord",
    "InboundMessage",
    "IngestResult",
    "IngestStatus",
    "SkipReason",
    "BatchResult",
]
