import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from keydash.client.http import ApiKeysClient
from keydash.client.sync import ApiKeySync
from keydash.config import KeydashConfig, ServerConfig
from keydash.main import create_app


@pytest.fixture
def config(tmp_path) -> KeydashConfig:
    return KeydashConfig(
        server=ServerConfig(log_level="warning"),
        key_store_dir=str(tmp_path / "keys"),
    )


@pytest.fixture
def client(config):
    with TestClient(create_app(config)) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def live_sync(config):
    """ApiKeySync wired to a real app through an in-process ASGI transport."""
    app = create_app(config)
    async with app.router.lifespan_context(app):
        api = ApiKeysClient(
            base_url="http://testserver",
            transport=httpx.ASGITransport(app=app),
        )
        async with api:
            yield ApiKeySync(api)
