"""Data transfer objects shared by the adapters and the coordinator."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from ..models import Provider


# =============================================================================
# CREDENTIALS
# =============================================================================


@dataclass(frozen=True)
class CredentialRecord:
    """Read-only view of a stored credential, secret already decrypted."""
    user_id: str
    provider: Provider
    account_identifier: str
    secret_token: str = field(repr=False)
    account_name: str | None = None
    history_cursor: str | None = None
    created_at: datetime | None = None


# =============================================================================
# NORMALIZED MESSAGES
# =============================================================================


@dataclass(frozen=True)
class InboundMessage:
    """Provider-agnostic view of one inbound message. Never persisted itself."""
    user_id: str
    provider: Provider
    sender_display_name: str
    body_summary: str
    deep_link: str
    dedup_key: str | None

    @property
    def platform(self) -> str:
        return self.provider.value

    @property
    def task_text(self) -> str:
        return f"{self.sender_display_name}: {self.body_summary}"


# =============================================================================
# OUTCOMES
# =============================================================================


class IngestStatus(str, Enum):
    """Terminal states of the per-event state machine."""
    PERSISTED = "persisted"
    SKIPPED = "skipped"    # duplicate
    DROPPED = "dropped"    # unknown tenant, malformed, ignored
    ERROR = "error"        # storage or provider failure


class SkipReason(str, Enum):
    DUPLICATE = "duplicate"
    UNKNOWN_TENANT = "unknown_tenant"
    MALFORMED_ENVELOPE = "malformed_envelope"
    IGNORED_EVENT = "ignored_event"
    UPSTREAM_ERROR = "upstream_error"


@dataclass
class IngestResult:
    """Outcome for one inbound message or event."""
    status: IngestStatus
    reason: SkipReason | None = None
    message: InboundMessage | None = None
    action_id: UUID | None = None

    @property
    def skipped(self) -> bool:
        return self.status != IngestStatus.PERSISTED

    def to_dict(self) -> dict:
        data = {
            "status": self.status.value,
            "skipped": self.skipped,
            "reason": self.reason.value if self.reason else None,
        }
        if self.message is not None:
            data["sender"] = self.message.sender_display_name
            data["summary"] = self.message.body_summary
            data["url"] = self.message.deep_link
            data["message_id"] = self.message.dedup_key
        if self.action_id is not None:
            data["id"] = str(self.action_id)
        return data


@dataclass
class BatchResult:
    """Outcome of one fetch cycle (push notification or pull sync)."""
    results: list[IngestResult] = field(default_factory=list)
    filtered: int = 0
    cursor: str | None = None
    used_fallback: bool = False

    @property
    def persisted(self) -> int:
        return sum(1 for r in self.results if r.status == IngestStatus.PERSISTED)

    @property
    def duplicates(self) -> int:
        return sum(1 for r in self.results if r.reason == SkipReason.DUPLICATE)
