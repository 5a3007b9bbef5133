from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from chat_gateway.api.deps import get_gateway
from chat_gateway.main import app
from chat_gateway.services.cache import ResponseCache
from chat_gateway.services.catalog import ModelCatalog
from chat_gateway.services.context import GatewayContext
from chat_gateway.services.dispatch import ChatDispatcher
from chat_gateway.tests.utils.chat import FakeProvider


@pytest.fixture
def local_provider() -> FakeProvider:
    return FakeProvider("local", response="local answer")


@pytest.fixture
def remote_provider() -> FakeProvider:
    return FakeProvider("remote", response="remote answer")


@pytest.fixture
def cache() -> ResponseCache:
    return ResponseCache(ttl_seconds=300)


@pytest.fixture
def dispatcher(local_provider, remote_provider, cache) -> ChatDispatcher:
    return ChatDispatcher(
        {"local": local_provider, "remote": remote_provider},
        cache,
        system_prompt="test persona",
    )


@pytest.fixture
def gateway(dispatcher, cache) -> GatewayContext:
    return GatewayContext(dispatcher=dispatcher, catalog=ModelCatalog(None), cache=cache)


@pytest.fixture
def client(gateway) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_gateway] = lambda: gateway
    # no context manager: the lifespan (real pooled clients) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()
