"""Gateway 测试配置 -- 手动初始化 app.state（绕过 lifespan）"""

from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from intentflow.core.store import create_store_group
from intentflow.gateway.services.change_hub import ChangeHub


@pytest_asyncio.fixture
async def test_app(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("INTENTFLOW_DB_PATH", str(tmp_path / "gateway.db"))

    from intentflow.gateway.main import create_app

    app = create_app()

    store_group = await create_store_group(
        str(tmp_path / "gateway.db"), session_id="gateway-test"
    )
    app.state.store_group = store_group
    app.state.change_hub = ChangeHub()

    yield app

    await store_group.close()


@pytest_asyncio.fixture
async def client(test_app) -> AsyncClient:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac
