"""
Request dispatch: message assembly, cache short-circuit, provider selection,
local-to-remote fallback and stream relaying.
"""
from typing import AsyncIterator, Dict, Mapping, Optional

import structlog

from chat_gateway.core.config import DEFAULT_SYSTEM_PROMPT
from chat_gateway.core.errors import GatewayError, ProviderTransportError
from chat_gateway.observability import CHAT_DISPATCH
from chat_gateway.providers.base import ChatCompletion, Provider, StreamChunk
from chat_gateway.schemas import ChatRequest
from chat_gateway.services.cache import ResponseCache, make_cache_key
from chat_gateway.services.messages import HISTORY_LIMIT, build_messages
from chat_gateway.services.router import resolve_provider

logger = structlog.get_logger()

# Single-shot failures of the key provider are retried once against the value
DEFAULT_FALLBACKS: Dict[str, str] = {"local": "remote"}


class ChatDispatcher:
    def __init__(
        self,
        providers: Mapping[str, Provider],
        cache: ResponseCache,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        history_limit: int = HISTORY_LIMIT,
        fallbacks: Optional[Mapping[str, str]] = None,
    ):
        self._providers = dict(providers)
        self._cache = cache
        self._system_prompt = system_prompt
        self._history_limit = history_limit
        self._fallbacks = dict(DEFAULT_FALLBACKS if fallbacks is None else fallbacks)

    def _messages(self, request: ChatRequest):
        return build_messages(
            request.message,
            request.system_prompt,
            request.conversation,
            default_system_prompt=self._system_prompt,
            history_limit=self._history_limit,
        )

    async def complete(self, request: ChatRequest) -> ChatCompletion:
        """Single-shot delivery. Served from cache when an equivalent request is fresh."""
        key = make_cache_key(request.provider, request.model, request.message, request.temperature)
        cached = self._cache.get(key)
        if cached is not None:
            logger.info("chat_cache_hit", provider=request.provider)
            CHAT_DISPATCH.labels(request.provider, "cache_hit").inc()
            return cached

        messages = self._messages(request)
        provider = resolve_provider(self._providers, request.provider)
        try:
            result = await provider.complete(messages, request.model, request.temperature)
            outcome = "success"
        except ProviderTransportError as e:
            fallback_name = self._fallbacks.get(request.provider)
            if fallback_name is None:
                CHAT_DISPATCH.labels(request.provider, "error").inc()
                raise
            logger.warning(
                "provider_fallback",
                provider=request.provider,
                fallback=fallback_name,
                error=e.message,
                dropped_model=request.model,
            )
            fallback = resolve_provider(self._providers, fallback_name)
            try:
                # Model ids are provider specific; let the fallback use its own default
                result = await fallback.complete(messages, None, request.temperature)
            except GatewayError:
                CHAT_DISPATCH.labels(request.provider, "error").inc()
                raise
            outcome = "fallback"
        except GatewayError:
            CHAT_DISPATCH.labels(request.provider, "error").inc()
            raise

        # Stored under the original key even when the fallback answered
        self._cache.put(key, result)
        CHAT_DISPATCH.labels(request.provider, outcome).inc()
        return result

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """
        Streaming delivery: token chunks in generation order, then one ``done``.
        A provider failure ends the stream with a single ``error`` chunk instead.
        No cache and no fallback on this path.
        """
        messages = self._messages(request)
        provider = resolve_provider(self._providers, request.provider)
        try:
            async for chunk in provider.stream(messages, request.model, request.temperature):
                yield chunk
        except GatewayError as e:
            logger.warning("stream_failed", provider=request.provider, error=e.message)
            CHAT_DISPATCH.labels(request.provider, "error").inc()
            yield StreamChunk.error(f"Stream error: {e.message}")
            return
        CHAT_DISPATCH.labels(request.provider, "success").inc()
        yield StreamChunk.done()
