"""SQLAlchemy ORM Models for the triage ingestion service."""

from .base import Base, TimestampMixin, UUIDMixin
from .models import (
    Credential,
    PendingAction,
    Provider,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    # Enums
    "Provider",
    # Records
    "Credential",
    "PendingAction",
]
