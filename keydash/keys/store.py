from __future__ import annotations

import asyncio
import itertools
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import aiosqlite

from keydash.keys.generator import hash_secret
from keydash.schemas.errors import (
    KeyNotFoundError,
    SecretConflictError,
    StorageUnavailableError,
)

if TYPE_CHECKING:
    from keydash.config import KeydashConfig


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ApiKeyRecord:
    name: str
    secret: str
    id: str | None = None
    created_at: str | None = None
    last_used_at: str | None = None


class BaseKeyStore(Protocol):
    async def initialize(self) -> None: ...

    async def close(self) -> None: ...

    async def list_all(self) -> list[ApiKeyRecord]: ...

    async def insert(self, record: ApiKeyRecord) -> ApiKeyRecord: ...

    async def update_name(self, key_id: str, name: str) -> ApiKeyRecord: ...

    async def delete(self, key_id: str) -> None: ...

    async def find_by_secret(self, secret: str) -> ApiKeyRecord | None: ...

    async def touch(self, key_id: str) -> None: ...

    async def is_empty(self) -> bool: ...


def _assign_identity(record: ApiKeyRecord) -> ApiKeyRecord:
    return replace(
        record,
        id=record.id or uuid.uuid4().hex,
        created_at=record.created_at or _now(),
    )


class KeyStore:
    """API key records in a single SQLite file.

    Lookups by secret go through a SHA-256 digest column so the plain secret
    is never used as an index key. Writes share one connection and are
    serialized; each commits or rolls back before the next starts. Every
    backend failure is re-raised as StorageUnavailableError.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(str(self._db_path))
            self._db.row_factory = aiosqlite.Row
            await self._db.execute(
                """CREATE TABLE IF NOT EXISTS api_keys (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    secret TEXT NOT NULL,
                    secret_hash TEXT UNIQUE NOT NULL,
                    created_at TEXT NOT NULL,
                    last_used_at TEXT
                )"""
            )
            await self._db.commit()
        except (OSError, aiosqlite.Error) as exc:
            raise StorageUnavailableError(str(exc)) from exc

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageUnavailableError("key store is not initialized")
        return self._db

    @staticmethod
    def _to_record(row: aiosqlite.Row) -> ApiKeyRecord:
        return ApiKeyRecord(
            id=row["id"],
            name=row["name"],
            secret=row["secret"],
            created_at=row["created_at"],
            last_used_at=row["last_used_at"],
        )

    async def _get_by_id(self, key_id: str) -> ApiKeyRecord | None:
        async with self._conn().execute(
            "SELECT * FROM api_keys WHERE id = ?", (key_id,)
        ) as cursor:
            row = await cursor.fetchone()
            return None if row is None else self._to_record(row)

    async def list_all(self) -> list[ApiKeyRecord]:
        db = self._conn()
        try:
            async with db.execute(
                "SELECT * FROM api_keys ORDER BY created_at DESC, rowid DESC"
            ) as cursor:
                rows = await cursor.fetchall()
                return [self._to_record(row) for row in rows]
        except aiosqlite.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc

    async def _write(self, sql: str, params: tuple) -> int:
        db = self._conn()
        async with self._write_lock:
            try:
                cursor = await db.execute(sql, params)
                await db.commit()
            except aiosqlite.Error:
                await db.rollback()
                raise
        return cursor.rowcount

    async def insert(self, record: ApiKeyRecord) -> ApiKeyRecord:
        stored = _assign_identity(record)
        try:
            await self._write(
                "INSERT INTO api_keys (id, name, secret, secret_hash, created_at, last_used_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    stored.id,
                    stored.name,
                    stored.secret,
                    hash_secret(stored.secret),
                    stored.created_at,
                    stored.last_used_at,
                ),
            )
        except aiosqlite.IntegrityError as exc:
            if "secret_hash" in str(exc):
                raise SecretConflictError() from exc
            raise StorageUnavailableError(str(exc)) from exc
        except aiosqlite.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc
        return stored

    async def update_name(self, key_id: str, name: str) -> ApiKeyRecord:
        try:
            changed = await self._write(
                "UPDATE api_keys SET name = ? WHERE id = ?", (name, key_id)
            )
            # a concurrent delete can land between the update and the read
            updated = await self._get_by_id(key_id) if changed else None
        except aiosqlite.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc
        if updated is None:
            raise KeyNotFoundError(key_id)
        return updated

    async def delete(self, key_id: str) -> None:
        try:
            deleted = await self._write("DELETE FROM api_keys WHERE id = ?", (key_id,))
        except aiosqlite.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc
        if deleted == 0:
            raise KeyNotFoundError(key_id)

    async def find_by_secret(self, secret: str) -> ApiKeyRecord | None:
        db = self._conn()
        try:
            async with db.execute(
                "SELECT * FROM api_keys WHERE secret_hash = ?", (hash_secret(secret),)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc
        return None if row is None else self._to_record(row)

    async def touch(self, key_id: str) -> None:
        try:
            await self._write(
                "UPDATE api_keys SET last_used_at = ? WHERE id = ?", (_now(), key_id)
            )
        except aiosqlite.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc

    async def is_empty(self) -> bool:
        db = self._conn()
        try:
            async with db.execute("SELECT COUNT(*) FROM api_keys") as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc
        return row[0] == 0


class MemoryKeyStore:
    """Process-lifetime store. State is lost on restart."""

    def __init__(self) -> None:
        self._records: dict[str, ApiKeyRecord] | None = None
        self._order: dict[str, int] = {}
        self._by_hash: dict[str, str] = {}
        self._seq = itertools.count()

    async def initialize(self) -> None:
        if self._records is None:
            self._records = {}

    async def close(self) -> None:
        self._records = None
        self._order.clear()
        self._by_hash.clear()

    def _data(self) -> dict[str, ApiKeyRecord]:
        if self._records is None:
            raise StorageUnavailableError("key store is not initialized")
        return self._records

    async def list_all(self) -> list[ApiKeyRecord]:
        records = self._data()
        return sorted(
            records.values(),
            key=lambda r: (r.created_at, self._order[r.id]),
            reverse=True,
        )

    async def insert(self, record: ApiKeyRecord) -> ApiKeyRecord:
        records = self._data()
        digest = hash_secret(record.secret)
        if digest in self._by_hash:
            raise SecretConflictError()
        stored = _assign_identity(record)
        records[stored.id] = stored
        self._order[stored.id] = next(self._seq)
        self._by_hash[digest] = stored.id
        return stored

    async def update_name(self, key_id: str, name: str) -> ApiKeyRecord:
        records = self._data()
        if key_id not in records:
            raise KeyNotFoundError(key_id)
        records[key_id] = replace(records[key_id], name=name)
        return records[key_id]

    async def delete(self, key_id: str) -> None:
        records = self._data()
        record = records.pop(key_id, None)
        if record is None:
            raise KeyNotFoundError(key_id)
        self._order.pop(key_id, None)
        self._by_hash.pop(hash_secret(record.secret), None)

    async def find_by_secret(self, secret: str) -> ApiKeyRecord | None:
        records = self._data()
        key_id = self._by_hash.get(hash_secret(secret))
        return None if key_id is None else records.get(key_id)

    async def touch(self, key_id: str) -> None:
        records = self._data()
        if key_id in records:
            records[key_id] = replace(records[key_id], last_used_at=_now())

    async def is_empty(self) -> bool:
        return not self._data()


def build_store(config: KeydashConfig) -> BaseKeyStore:
    if config.store_backend == "memory":
        return MemoryKeyStore()
    base = Path(config.key_store_dir) if config.key_store_dir else Path.home() / ".keydash"
    return KeyStore(db_path=base / "keys.db")
