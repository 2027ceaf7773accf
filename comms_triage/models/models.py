"""SQLAlchemy ORM Models for the triage ingestion service.

Two durable records: the per-tenant provider ``Credential`` and the
``PendingAction`` triage card produced for each new inbound message.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Enum,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDMixin


# =============================================================================
# ENUMS
# =============================================================================


class Provider(str, PyEnum):
    """External communication platforms."""
    EMAIL = "email"  # Gmail
    CHAT = "chat"    # Slack


# =============================================================================
# CREDENTIALS
# =============================================================================


class Credential(Base, UUIDMixin, TimestampMixin):
    """OAuth credential for one tenant's provider account.

    ``account_identifier`` is the Gmail address for email and the Slack
    team id for chat. Re-authorizing the same account overwrites the row.
    """

    __tablename__ = "credentials"

    user_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True,
        comment="Opaque tenant identifier"
    )
    provider: Mapped[Provider] = mapped_column(
        Enum(Provider, name="provider", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    account_identifier: Mapped[str] = mapped_column(
        String(320), nullable=False,
        comment="Email address or Slack team ID"
    )
    account_name: Mapped[str | None] = mapped_column(
        String(255), nullable=True,
        comment="Slack workspace name for display"
    )
    secret_token: Mapped[str] = mapped_column(
        Text, nullable=False,
        comment="Encrypted refresh token (email) or bot token (chat)"
    )
    history_cursor: Mapped[str | None] = mapped_column(
        String(64), nullable=True,
        comment="Last processed Gmail historyId"
    )

    __table_args__ = (
        UniqueConstraint("provider", "account_identifier", name="uq_credentials_provider_account"),
        Index("idx_credentials_user_provider", "user_id", "provider"),
    )

    def __repr__(self) -> str:
        return f"<Credential {self.provider.value}:{self.account_identifier} user={self.user_id}>"


# =============================================================================
# PENDING ACTIONS
# =============================================================================


class PendingAction(Base, UUIDMixin):
    """A triage card for one real-world message.

    Written once by the ingestion coordinator; downstream consumers own
    any later updates.
    """

    __tablename__ = "pending_actions"

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True,
        comment="Source platform: email or chat"
    )
    sender: Mapped[str] = mapped_column(String(255), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    task_text: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    message_id: Mapped[str | None] = mapped_column(
        String(512), nullable=True,
        comment="Provider-stable dedup key"
    )
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )

    __table_args__ = (
        # One card per real-world message
        Index(
            "idx_pending_actions_message_unique",
            "message_id",
            "platform",
            unique=True,
            postgresql_where=text("message_id IS NOT NULL"),
            sqlite_where=text("message_id IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        return f"<PendingAction {self.platform}:{self.message_id} user={self.user_id}>"
