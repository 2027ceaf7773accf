"""
Credential Store: per-tenant provider credentials.

- One row per (provider, account_identifier); re-authorization overwrites
  the secret and the owning user
- Secrets are encrypted before they reach the database and decrypted on
  the way out
- Callers get immutable ``CredentialRecord`` values, never ORM instances
"""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import PersistenceFailure
from ..core.security import decrypt_token, encrypt_token
from ..models import Credential, Provider
from .messages import CredentialRecord

logger = logging.getLogger(__name__)


class CredentialStore:
    """Read-through/write-through access to stored provider credentials."""

    def __init__(self, session: AsyncSession):
        self._session = session

    def _insert(self):
        dialect = self._session.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite_insert(Credential)
        return pg_insert(Credential)

    @staticmethod
    def _to_record(row: Credential) -> CredentialRecord:
        return CredentialRecord(
            user_id=row.user_id,
            provider=row.provider,
            account_identifier=row.account_identifier,
            secret_token=decrypt_token(row.secret_token),
            account_name=row.account_name,
            history_cursor=row.history_cursor,
            created_at=row.created_at,
        )

    async def upsert_credential(
        self,
        provider: Provider,
        account_identifier: str,
        user_id: str,
        secret_token: str,
        account_name: str | None = None,
    ) -> None:
        """
        Store a credential, overwriting any existing one for the same account.

        Committed immediately so the account is usable for sync/watch in the
        very next request.
        """
        encrypted = encrypt_token(secret_token)
        stmt = self._insert().values(
            provider=provider,
            account_identifier=account_identifier,
            user_id=user_id,
            secret_token=encrypted,
            account_name=account_name,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["provider", "account_identifier"],
            set_={
                "user_id": user_id,
                "secret_token": encrypted,
                "account_name": account_name,
                "updated_at": func.now(),
            },
        )

        try:
            await self._session.execute(stmt)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error(f"Failed to store {provider.value} credential: {e}")
            raise PersistenceFailure("Failed to store credential") from e

        logger.info(f"Stored {provider.value} credential for {account_identifier} (user: {user_id})")

    async def _fetch_one(self, stmt) -> CredentialRecord | None:
        try:
            # Upserts bypass the identity map; always read current column values
            result = await self._session.execute(stmt.execution_options(populate_existing=True))
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Credential lookup failed: {e}")
            raise PersistenceFailure("Credential lookup failed") from e
        return self._to_record(row) if row else None

    async def lookup_by_account_identifier(
        self,
        provider: Provider,
        account_identifier: str,
    ) -> CredentialRecord | None:
        """Resolve the owning tenant for a provider account (push path)."""
        return await self._fetch_one(
            select(Credential).where(
                Credential.provider == provider,
                Credential.account_identifier == account_identifier,
            )
        )

    async def lookup_by_user_id(
        self,
        user_id: str,
        provider: Provider,
    ) -> CredentialRecord | None:
        """Resolve a tenant's credential for user-initiated sync/watch.

        A tenant may have connected more than one account; the most
        recently authorized one wins.
        """
        return await self._fetch_one(
            select(Credential)
            .where(Credential.user_id == user_id, Credential.provider == provider)
            .order_by(func.coalesce(Credential.updated_at, Credential.created_at).desc())
            .limit(1)
        )

    async def update_cursor(
        self,
        provider: Provider,
        account_identifier: str,
        cursor: str,
    ) -> None:
        """Persist the last processed history cursor for an account."""
        try:
            await self._session.execute(
                update(Credential)
                .where(
                    Credential.provider == provider,
                    Credential.account_identifier == account_identifier,
                )
                # Cursor moves must not reorder "most recently authorized"
                .values(history_cursor=cursor, updated_at=Credential.updated_at)
            )
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error(f"Failed to advance cursor for {account_identifier}: {e}")
            raise PersistenceFailure("Failed to store history cursor") from e
