"""
Credential stores — keyed persistence of ``CredentialBundle`` objects.

``CredentialStore`` is the interface every call site depends on.  Two
implementations ship:

  • ``InMemoryCredentialStore`` — process-lifetime dict (the default).
  • ``SqlCredentialStore`` — SQLAlchemy async table with Fernet-encrypted
    secrets, for deployments that need bundles to survive restarts.

Writes are last-write-wins.  Two concurrent refreshes for the same key
both succeed and the later ``set`` is what subsequent reads see.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.encryption import TokenCipher
from connectors.models import CredentialBundle
from database.models import StoredCredential

logger = logging.getLogger(__name__)


class CredentialStore(ABC):
    """get / set / delete bundles by user key."""

    @abstractmethod
    async def get(self, user_key: str) -> Optional[CredentialBundle]:
        """Return a copy of the stored bundle, or None if the key is unknown."""
        ...

    @abstractmethod
    async def set(self, user_key: str, bundle: CredentialBundle) -> None:
        ...

    @abstractmethod
    async def delete(self, user_key: str) -> bool:
        """Remove the bundle.  Returns False if nothing was stored."""
        ...


class InMemoryCredentialStore(CredentialStore):
    """Dict-backed store.  Bundles are copied in and out."""

    def __init__(self) -> None:
        self._bundles: Dict[str, CredentialBundle] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_key: str) -> Optional[CredentialBundle]:
        async with self._lock:
            bundle = self._bundles.get(user_key)
            return bundle.model_copy() if bundle else None

    async def set(self, user_key: str, bundle: CredentialBundle) -> None:
        async with self._lock:
            self._bundles[user_key] = bundle.model_copy()

    async def delete(self, user_key: str) -> bool:
        async with self._lock:
            return self._bundles.pop(user_key, None) is not None


class SqlCredentialStore(CredentialStore):
    """SQLAlchemy-backed store; secrets are encrypted with ``TokenCipher``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: TokenCipher,
    ) -> None:
        self._session_factory = session_factory
        self._cipher = cipher

    async def get(self, user_key: str) -> Optional[CredentialBundle]:
        async with self._session_factory() as session:
            row = await session.get(StoredCredential, user_key)
            if row is None:
                return None
            return CredentialBundle(
                client_id=row.client_id or "",
                client_secret=self._cipher.decrypt(row.client_secret) or "",
                access_token=self._cipher.decrypt(row.access_token) or "",
                refresh_token=self._cipher.decrypt(row.refresh_token),
                expires_at=row.expires_at,
                token_type=row.token_type or "Bearer",
            )

    async def set(self, user_key: str, bundle: CredentialBundle) -> None:
        async with self._session_factory() as session:
            try:
                row = await session.get(StoredCredential, user_key)
                if row is None:
                    row = StoredCredential(user_key=user_key)
                    session.add(row)
                row.client_id = bundle.client_id
                row.client_secret = self._cipher.encrypt(bundle.client_secret)
                row.access_token = self._cipher.encrypt(bundle.access_token)
                row.refresh_token = self._cipher.encrypt(bundle.refresh_token)
                row.expires_at = bundle.expires_at
                row.token_type = bundle.token_type
                row.updated_at = datetime.now(timezone.utc)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        logger.debug("Stored credentials for user_key=%s", user_key)

    async def delete(self, user_key: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StoredCredential).where(StoredCredential.user_key == user_key)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True
