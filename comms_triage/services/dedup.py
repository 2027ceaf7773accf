"""Deduplication gate for pending actions."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import PendingAction

logger = logging.getLogger(__name__)


class DeduplicationGate:
    """
    Answers "has this message already been recorded?".

    The check-then-insert sequence is not atomic; the unique index on
    (message_id, platform) is what actually enforces exactly-once. The gate
    keeps the common redelivery case off the constraint-violation path.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def is_duplicate(self, dedup_key: str | None, platform: str) -> bool:
        if not dedup_key:
            return False

        result = await self._session.execute(
            select(PendingAction.id)
            .where(PendingAction.message_id == dedup_key)
            .where(PendingAction.platform == platform)
            .limit(1)
        )
        if result.first() is None:
            return False
        logger.debug(f"Duplicate {platform} message: {dedup_key}")
        return True
