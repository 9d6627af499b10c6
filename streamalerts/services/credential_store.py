"""Durable key -> credential storage.

The credential manager only depends on the ``CredentialStore`` protocol
(``get`` / ``put`` / ``list``); the backing is chosen by configuration.
"""

from __future__ import annotations

import logging
from typing import Protocol

import asyncpg

from streamalerts.cache import StaleFallbackCache, read_through
from streamalerts.core.errors import StorageError
from streamalerts.models.credential import Credential, CredentialTier

logger = logging.getLogger(__name__)

_COLUMNS = "name, access, refresh, expires_at, obtained_at, subject_id, login"


class CredentialStore(Protocol):
    async def get(self, name: str) -> Credential | None: ...

    async def put(self, name: str, value: Credential) -> None: ...

    async def list(self) -> list[Credential]: ...


class MemoryCredentialStore:
    """Process-local store, used when no database is configured."""

    def __init__(self) -> None:
        self._items: dict[str, Credential] = {}

    async def get(self, name: str) -> Credential | None:
        return self._items.get(name)

    async def put(self, name: str, value: Credential) -> None:
        self._items[name] = value

    async def list(self) -> list[Credential]:
        return list(self._items.values())


def _row_to_credential(row: asyncpg.Record | dict) -> Credential:
    data = dict(row)
    data["name"] = CredentialTier(data["name"])
    return Credential(**data)


_credential_cache = StaleFallbackCache(maxsize=8, ttl=300)


class PostgresCredentialStore:
    """Credentials table over an asyncpg pool, read through a stale-fallback cache."""

    def __init__(self, pool: asyncpg.Pool, cache: StaleFallbackCache | None = None) -> None:
        self.pool = pool
        self.cache = cache or _credential_cache

        @read_through(self.cache, key_func=lambda name: f"credential:{name}")
        async def _fetch(name: str) -> Credential | None:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_COLUMNS} FROM credentials WHERE name = $1", name
                )
            return _row_to_credential(row) if row else None

        self._fetch = _fetch

    async def get(self, name: str) -> Credential | None:
        try:
            return await self._fetch(name)
        except Exception as e:
            raise StorageError(f"Failed to read credential '{name}': {e}") from e

    async def put(self, name: str, value: Credential) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO credentials
                        (name, access, refresh, expires_at, obtained_at, subject_id, login)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    ON CONFLICT (name) DO UPDATE SET
                        access      = EXCLUDED.access,
                        refresh     = EXCLUDED.refresh,
                        expires_at  = EXCLUDED.expires_at,
                        obtained_at = EXCLUDED.obtained_at,
                        subject_id  = EXCLUDED.subject_id,
                        login       = EXCLUDED.login,
                        updated_at  = NOW()
                    """,
                    name,
                    value.access,
                    value.refresh,
                    value.expires_at,
                    value.obtained_at,
                    value.subject_id,
                    value.login,
                )
        except Exception as e:
            raise StorageError(f"Failed to persist credential '{name}': {e}") from e
        finally:
            self.cache.invalidate(f"credential:{name}")

        # Keep the stale copy current so a later outage falls back to this write
        self.cache.set(f"credential:{name}", value)

    async def list(self) -> list[Credential]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(f"SELECT {_COLUMNS} FROM credentials")
        except Exception as e:
            raise StorageError(f"Failed to list credentials: {e}") from e

        credentials = [_row_to_credential(r) for r in rows]
        for credential in credentials:
            self.cache.set(f"credential:{credential.name.value}", credential)
        return credentials
