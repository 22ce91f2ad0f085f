import httpx
import pytest

from keydash.client.http import ApiKeysClient, ApiRequestError
from keydash.client.masking import mask_secret
from keydash.client.notifications import Notification
from keydash.client.sync import ApiKeySync, KeySnapshot


def _collect(sync: ApiKeySync):
    snapshots: list[KeySnapshot] = []
    notes = []
    sync.subscribe(snapshots.append)
    sync.on_notification(notes.append)
    return snapshots, notes


def _record(key_id: str, name: str) -> dict:
    return {
        "id": key_id,
        "name": name,
        "key": f"sk_{key_id:0<32}",
        "createdAt": "2024-01-01T00:00:00+00:00",
        "lastUsed": None,
    }


def _mock_sync(handler) -> ApiKeySync:
    api = ApiKeysClient(base_url="http://testserver", transport=httpx.MockTransport(handler))
    return ApiKeySync(api)


@pytest.mark.asyncio
async def test_create_then_refresh(live_sync):
    snapshots, notes = _collect(live_sync)

    assert await live_sync.create("prod") is True
    assert [k.name for k in live_sync.keys] == ["prod"]
    assert live_sync.loading is False
    assert notes[0].type == "success"

    loading_states = [s.loading for s in snapshots]
    assert True in loading_states
    assert loading_states[-1] is False


@pytest.mark.asyncio
async def test_rename_and_remove(live_sync):
    await live_sync.create("X")
    await live_sync.create("other")
    target = next(k for k in live_sync.keys if k.name == "X")

    assert await live_sync.rename(target.id, "Y") is True
    by_id = {k.id: k for k in live_sync.keys}
    assert by_id[target.id].name == "Y"
    assert by_id[target.id].key == target.key
    assert sorted(k.name for k in live_sync.keys) == ["Y", "other"]

    assert await live_sync.remove(target.id) is True
    assert [k.name for k in live_sync.keys] == ["other"]


@pytest.mark.asyncio
async def test_server_errors_are_reported(live_sync):
    _, notes = _collect(live_sync)

    assert await live_sync.create("   ") is False
    assert notes[-1].type == "error"
    assert notes[-1].message == "Name is required"
    assert live_sync.keys == ()

    assert await live_sync.rename("missing", "name") is False
    assert notes[-1].message == "API key not found"

    assert await live_sync.remove("missing") is False
    assert notes[-1].message == "API key not found"


@pytest.mark.asyncio
async def test_remove_declined_by_confirm(live_sync):
    await live_sync.create("keep")
    (record,) = live_sync.keys
    asked = []

    def decline(key_id: str) -> bool:
        asked.append(key_id)
        return False

    assert await live_sync.remove(record.id, confirm=decline) is False
    assert asked == [record.id]
    await live_sync.refresh()
    assert [k.id for k in live_sync.keys] == [record.id]


@pytest.mark.asyncio
async def test_validate(live_sync):
    await live_sync.create("auth")
    (record,) = live_sync.keys
    _, notes = _collect(live_sync)

    assert await live_sync.validate(record.key) is True
    assert notes[-1] == Notification.success("Valid API key")

    assert await live_sync.validate("sk_" + "0" * 32) is False
    assert notes[-1] == Notification.error("Invalid API key")


@pytest.mark.asyncio
async def test_malformed_list_body_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>proxy</html>")

    sync = _mock_sync(handler)
    _, notes = _collect(sync)

    assert await sync.refresh() is False
    assert sync.keys == ()
    assert sync.loading is False
    assert notes[-1] == Notification.error("Failed to fetch API keys")


@pytest.mark.asyncio
async def test_malformed_body_after_create_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json=_record("a", "x"))
        return httpx.Response(200, json={"unexpected": True})

    sync = _mock_sync(handler)
    _, notes = _collect(sync)

    assert await sync.create("x") is True
    assert [n.type for n in notes] == ["success", "error"]
    assert notes[-1].message == "Failed to fetch API keys"
    assert sync.keys == ()


@pytest.mark.asyncio
async def test_malformed_mutation_and_validate_bodies_are_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["not", "an", "object"])

    sync = _mock_sync(handler)
    _, notes = _collect(sync)

    assert await sync.rename("a", "b") is False
    assert notes[-1] == Notification.error("Failed to update API key")
    assert await sync.validate("sk_x") is False
    assert notes[-1] == Notification.error("Failed to validate API key")


@pytest.mark.asyncio
async def test_validate_empty_reports_error(live_sync):
    _, notes = _collect(live_sync)
    assert await live_sync.validate("  ") is False
    assert notes[-1].message == "API key is required"


@pytest.mark.asyncio
async def test_masking_is_local(live_sync):
    await live_sync.create("secret")
    (record,) = live_sync.keys
    masked = live_sync.display_secret(record)
    assert masked == mask_secret(record.key)
    assert masked.startswith("sk_")

    live_sync.toggle_mask(record.id)
    assert live_sync.is_unmasked(record.id)
    assert live_sync.display_secret(record) == record.key

    live_sync.toggle_mask(record.id)
    assert live_sync.display_secret(record) == masked


@pytest.mark.asyncio
async def test_masking_state_dropped_for_deleted_keys(live_sync):
    await live_sync.create("gone")
    (record,) = live_sync.keys
    live_sync.toggle_mask(record.id)
    await live_sync.remove(record.id)
    assert live_sync.snapshot.unmasked == frozenset()


@pytest.mark.asyncio
async def test_failed_refresh_keeps_stale_cache():
    state = {"fail": False}

    def handler(request: httpx.Request) -> httpx.Response:
        if state["fail"]:
            return httpx.Response(500, json={"error": "Key storage is unavailable."})
        return httpx.Response(200, json=[_record("a", "alpha")])

    sync = _mock_sync(handler)
    _, notes = _collect(sync)

    assert await sync.refresh() is True
    assert [k.name for k in sync.keys] == ["alpha"]

    state["fail"] = True
    assert await sync.refresh() is False
    assert [k.name for k in sync.keys] == ["alpha"]
    assert sync.loading is False
    assert notes[-1].message == "Failed to fetch API keys"


@pytest.mark.asyncio
async def test_transport_errors_do_not_raise():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    sync = _mock_sync(handler)
    _, notes = _collect(sync)

    assert await sync.refresh() is False
    assert await sync.create("x") is False
    assert await sync.validate("sk_x") is False
    assert [n.message for n in notes] == [
        "Error loading API keys",
        "Error creating API key",
        "Error validating API key",
    ]
    assert sync.loading is False


@pytest.mark.asyncio
async def test_failed_mutation_skips_refresh():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return httpx.Response(503, text="unavailable")

    sync = _mock_sync(handler)
    _, notes = _collect(sync)

    assert await sync.rename("a", "b") is False
    assert calls == ["PUT"]
    assert notes[-1].message == "Failed to update API key"


@pytest.mark.asyncio
async def test_unsubscribe():
    sync = _mock_sync(lambda request: httpx.Response(200, json=[]))
    seen = []
    unsubscribe = sync.subscribe(seen.append)
    await sync.refresh()
    count = len(seen)
    unsubscribe()
    await sync.refresh()
    assert len(seen) == count


@pytest.mark.asyncio
async def test_client_raises_api_request_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "API key not found"})

    api = ApiKeysClient(base_url="http://testserver", transport=httpx.MockTransport(handler))
    async with api:
        with pytest.raises(ApiRequestError) as excinfo:
            await api.delete_key("missing")
    assert excinfo.value.status_code == 404
    assert excinfo.value.message == "API key not found"
