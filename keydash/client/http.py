from __future__ import annotations

from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from keydash.schemas.keys import KeyObject, KeyValidateResponse

DEFAULT_TIMEOUT = 10.0

_KEY = TypeAdapter(KeyObject)
_KEY_LIST = TypeAdapter(list[KeyObject])
_VALIDATE = TypeAdapter(KeyValidateResponse)


class ApiRequestError(Exception):
    def __init__(self, status_code: int, message: str | None = None):
        super().__init__(message or f"HTTP {status_code}")
        self.status_code = status_code
        self.message = message


def _error_message(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return payload["error"]
    return None


def _decode(response: httpx.Response, adapter: TypeAdapter) -> Any:
    try:
        return adapter.validate_python(response.json())
    except (ValueError, ValidationError) as exc:
        raise ApiRequestError(response.status_code) from exc


class ApiKeysClient:
    """Async client for the /api-keys endpoints.

    Non-2xx answers and 2xx answers whose body does not parse raise
    ApiRequestError; only the former carry the server's ``error`` message.
    Transport failures surface as ``httpx.HTTPError``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> ApiKeysClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, path, **kwargs)
        if not response.is_success:
            raise ApiRequestError(response.status_code, _error_message(response))
        return response

    async def list_keys(self) -> list[KeyObject]:
        response = await self._request("GET", "/api-keys")
        return _decode(response, _KEY_LIST)

    async def create_key(self, name: str) -> KeyObject:
        response = await self._request("POST", "/api-keys", json={"name": name})
        return _decode(response, _KEY)

    async def update_key(self, key_id: str, name: str) -> KeyObject:
        response = await self._request(
            "PUT", "/api-keys", json={"id": key_id, "name": name}
        )
        return _decode(response, _KEY)

    async def delete_key(self, key_id: str) -> None:
        await self._request("DELETE", "/api-keys", params={"id": key_id})

    async def validate_key(self, api_key: str) -> bool:
        response = await self._request(
            "POST", "/api-keys/validate", json={"apiKey": api_key}
        )
        return _decode(response, _VALIDATE).valid
