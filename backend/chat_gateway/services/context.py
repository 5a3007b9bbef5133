from dataclasses import dataclass, field
from typing import Callable, List

import httpx

from chat_gateway.core.config import Settings
from chat_gateway.providers.local_provider import LocalProvider
from chat_gateway.providers.remote_provider import RemoteProvider
from chat_gateway.services.cache import ResponseCache
from chat_gateway.services.catalog import ModelCatalog
from chat_gateway.services.dispatch import ChatDispatcher


@dataclass
class GatewayContext:
    """Everything a request needs, built once at start-up and closed at shutdown."""

    dispatcher: ChatDispatcher
    catalog: ModelCatalog
    cache: ResponseCache
    clients: List[httpx.AsyncClient] = field(default_factory=list)

    async def aclose(self) -> None:
        self.cache.clear()
        for client in self.clients:
            await client.aclose()


def pool_limits(settings: Settings) -> httpx.Limits:
    return httpx.Limits(
        max_connections=settings.MAX_CONNECTIONS_PER_HOST,
        max_keepalive_connections=settings.MAX_KEEPALIVE_CONNECTIONS,
    )


def pooled_client(settings: Settings) -> httpx.AsyncClient:
    # One client per provider host, so the pool limit is a per-host bound
    return httpx.AsyncClient(timeout=settings.PROVIDER_TIMEOUT_SECONDS, limits=pool_limits(settings))


def build_gateway(
    settings: Settings,
    client_factory: Callable[[Settings], httpx.AsyncClient] = pooled_client,
) -> GatewayContext:
    local_client = client_factory(settings)
    remote_client = client_factory(settings)

    local = LocalProvider(local_client, settings.LOCAL_LLM_URL, settings.DEFAULT_LOCAL_MODEL)
    remote = RemoteProvider(
        remote_client,
        api_key=settings.OPENROUTER_API_KEY,
        base_url=settings.REMOTE_BASE_URL,
        default_model=settings.DEFAULT_REMOTE_MODEL,
        max_tokens=settings.REMOTE_MAX_TOKENS,
        token_delay=settings.REMOTE_STREAM_DELAY_SECONDS,
        referer=settings.PUBLIC_URL,
        title=settings.APP_TITLE,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )
    cache = ResponseCache(ttl_seconds=settings.CACHE_TTL_SECONDS, max_entries=settings.CACHE_MAX_ENTRIES)
    dispatcher = ChatDispatcher(
        {local.name: local, remote.name: remote},
        cache,
        system_prompt=settings.SYSTEM_PROMPT,
        history_limit=settings.HISTORY_LIMIT,
    )
    return GatewayContext(
        dispatcher=dispatcher,
        catalog=ModelCatalog(local),
        cache=cache,
        clients=[local_client, remote_client],
    )
