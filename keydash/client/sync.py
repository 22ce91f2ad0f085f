from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable

import httpx

from keydash.client.http import ApiKeysClient, ApiRequestError
from keydash.client.masking import mask_secret
from keydash.client.notifications import Notification
from keydash.schemas.keys import KeyObject

logger = logging.getLogger("keydash.client")

SnapshotObserver = Callable[["KeySnapshot"], None]
NotificationObserver = Callable[[Notification], None]


@dataclass(frozen=True)
class KeySnapshot:
    keys: tuple[KeyObject, ...] = ()
    loading: bool = False
    unmasked: frozenset[str] = frozenset()


class ApiKeySync:
    """Client-held cache of API keys kept in step with the server.

    Every mutation goes to the server first and is followed by a full
    ``refresh()``; the cache is never edited optimistically. Each state change
    produces a new immutable ``KeySnapshot`` that is pushed to subscribers.
    Failures are reported once through notifications and never raised.
    """

    def __init__(self, client: ApiKeysClient) -> None:
        self._client = client
        self._snapshot = KeySnapshot()
        self._observers: list[SnapshotObserver] = []
        self._listeners: list[NotificationObserver] = []

    @property
    def snapshot(self) -> KeySnapshot:
        return self._snapshot

    @property
    def keys(self) -> tuple[KeyObject, ...]:
        return self._snapshot.keys

    @property
    def loading(self) -> bool:
        return self._snapshot.loading

    def subscribe(self, observer: SnapshotObserver) -> Callable[[], None]:
        self._observers.append(observer)
        return lambda: self._observers.remove(observer)

    def on_notification(self, listener: NotificationObserver) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _update(self, **changes) -> None:
        self._snapshot = replace(self._snapshot, **changes)
        for observer in list(self._observers):
            observer(self._snapshot)

    def _notify(self, notification: Notification) -> None:
        if notification.type == "error":
            logger.warning("%s", notification.message)
        for listener in list(self._listeners):
            listener(notification)

    async def refresh(self) -> bool:
        self._update(loading=True)
        try:
            keys = await self._client.list_keys()
        except ApiRequestError:
            self._notify(Notification.error("Failed to fetch API keys"))
            return False
        except httpx.HTTPError:
            self._notify(Notification.error("Error loading API keys"))
            return False
        finally:
            if self._snapshot.loading:
                self._update(loading=False)

        present = {k.id for k in keys}
        self._update(keys=tuple(keys), unmasked=self._snapshot.unmasked & present)
        return True

    async def _mutate(
        self,
        call: Callable[[], Awaitable[object]],
        success: str,
        failure: str,
        transport_failure: str,
    ) -> bool:
        try:
            await call()
        except ApiRequestError as exc:
            self._notify(Notification.error(exc.message or failure))
            return False
        except httpx.HTTPError:
            self._notify(Notification.error(transport_failure))
            return False

        self._notify(Notification.success(success))
        await self.refresh()
        return True

    async def create(self, name: str) -> bool:
        return await self._mutate(
            lambda: self._client.create_key(name),
            "API key created successfully!",
            "Failed to create API key",
            "Error creating API key",
        )

    async def rename(self, key_id: str, name: str) -> bool:
        return await self._mutate(
            lambda: self._client.update_key(key_id, name),
            "API key updated successfully!",
            "Failed to update API key",
            "Error updating API key",
        )

    async def remove(
        self, key_id: str, confirm: Callable[[str], bool] | None = None
    ) -> bool:
        if confirm is not None and not confirm(key_id):
            return False
        return await self._mutate(
            lambda: self._client.delete_key(key_id),
            "API key deleted successfully!",
            "Failed to delete API key",
            "Error deleting API key",
        )

    async def validate(self, secret: str) -> bool:
        try:
            valid = await self._client.validate_key(secret)
        except ApiRequestError as exc:
            self._notify(Notification.error(exc.message or "Failed to validate API key"))
            return False
        except httpx.HTTPError:
            self._notify(Notification.error("Error validating API key"))
            return False

        if valid:
            self._notify(Notification.success("Valid API key"))
        else:
            self._notify(Notification.error("Invalid API key"))
        return valid

    def toggle_mask(self, key_id: str) -> None:
        self._update(unmasked=self._snapshot.unmasked ^ {key_id})

    def is_unmasked(self, key_id: str) -> bool:
        return key_id in self._snapshot.unmasked

    def display_secret(self, record: KeyObject) -> str:
        if self.is_unmasked(record.id):
            return record.key
        return mask_secret(record.key)
