from __future__ import annotations

import hmac
import logging
from typing import Any, Callable

from keydash.keys.generator import generate_secret
from keydash.keys.store import ApiKeyRecord, BaseKeyStore
from keydash.schemas.errors import (
    InvalidInputError,
    KeyGenerationError,
    SecretConflictError,
    StorageUnavailableError,
)

logger = logging.getLogger("keydash.keys")

_DEFAULT_MAX_ATTEMPTS = 5


def _clean_name(raw_name: Any) -> str:
    if not isinstance(raw_name, str) or not raw_name.strip():
        raise InvalidInputError("Name is required", param="name")
    return raw_name.strip()


def _require_id(key_id: Any) -> str:
    if not isinstance(key_id, str) or not key_id:
        raise InvalidInputError("ID is required", param="id")
    return key_id


class KeyService:
    """Lifecycle and validation rules for API keys.

    Create and rename hand back the full record to the administrative caller.
    Validation only ever answers yes or no.
    """

    def __init__(
        self,
        store: BaseKeyStore,
        generator: Callable[[], str] = generate_secret,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._store = store
        self._generator = generator
        self._max_attempts = max(1, max_attempts)

    async def create_key(self, raw_name: Any) -> ApiKeyRecord:
        name = _clean_name(raw_name)
        for attempt in range(1, self._max_attempts + 1):
            try:
                record = await self._store.insert(
                    ApiKeyRecord(name=name, secret=self._generator())
                )
            except SecretConflictError:
                logger.warning("Generated secret collided (attempt %d)", attempt)
                continue
            logger.info("Created API key %s (%s)", record.id, record.name)
            return record
        raise KeyGenerationError(self._max_attempts)

    async def rename_key(self, key_id: Any, raw_name: Any) -> ApiKeyRecord:
        key_id = _require_id(key_id)
        name = _clean_name(raw_name)
        record = await self._store.update_name(key_id, name)
        logger.info("Renamed API key %s", key_id)
        return record

    async def delete_key(self, key_id: Any) -> None:
        key_id = _require_id(key_id)
        await self._store.delete(key_id)
        logger.info("Deleted API key %s", key_id)

    async def list_keys(self) -> list[ApiKeyRecord]:
        return await self._store.list_all()

    async def validate_key(self, raw_secret: Any) -> bool:
        if not isinstance(raw_secret, str) or not raw_secret.strip():
            raise InvalidInputError("API key is required", param="apiKey")
        secret = raw_secret.strip()

        record = await self._store.find_by_secret(secret)
        if record is None or not hmac.compare_digest(record.secret.encode(), secret.encode()):
            return False

        try:
            await self._store.touch(record.id)
        except StorageUnavailableError as exc:
            logger.warning("Could not record last use of API key %s: %s", record.id, exc.detail)
        return True
