import httpx
import pytest

from chat_gateway.core.errors import ConfigurationError, ProviderTransportError
from chat_gateway.providers.base import StreamChunk
from chat_gateway.providers.local_provider import LocalProvider
from chat_gateway.services.cache import ResponseCache
from chat_gateway.services.dispatch import ChatDispatcher
from chat_gateway.tests.utils.chat import FakeProvider, make_request, mock_client


async def _collect(dispatcher: ChatDispatcher, request) -> list[StreamChunk]:
    return [chunk async for chunk in dispatcher.stream(request)]


class TestSingleShot:
    @pytest.mark.asyncio
    async def test_local_result_is_cached_under_scenario_key(self, dispatcher, local_provider, cache):
        first = await dispatcher.complete(make_request())

        assert first.response == "local answer"
        assert cache.get("local:default:hi:0.7") == first
        messages = local_provider.calls[0]["messages"]
        assert [m.role for m in messages] == ["system", "user"]
        assert messages[0].content == "test persona"
        assert messages[1].content == "hi"

        second = await dispatcher.complete(make_request())
        assert second == first
        assert len(local_provider.calls) == 1

    @pytest.mark.asyncio
    async def test_different_temperature_misses_cache(self, dispatcher, local_provider):
        await dispatcher.complete(make_request(temperature=0.7))
        await dispatcher.complete(make_request(temperature=0.2))
        assert len(local_provider.calls) == 2

    @pytest.mark.asyncio
    async def test_expired_entry_is_regenerated(self, local_provider, remote_provider):
        now = [0.0]
        cache = ResponseCache(ttl_seconds=300, timer=lambda: now[0])
        dispatcher = ChatDispatcher({"local": local_provider, "remote": remote_provider}, cache)

        await dispatcher.complete(make_request())
        now[0] = 300.01
        await dispatcher.complete(make_request())

        assert len(local_provider.calls) == 2

    @pytest.mark.asyncio
    async def test_remote_request_goes_to_remote(self, dispatcher, local_provider, remote_provider):
        result = await dispatcher.complete(make_request(provider="remote", model="deepseek/deepseek-r1"))

        assert result.response == "remote answer"
        assert local_provider.calls == []
        assert remote_provider.calls[0]["model"] == "deepseek/deepseek-r1"

    @pytest.mark.asyncio
    async def test_local_failure_falls_back_to_remote(self, dispatcher, local_provider, remote_provider, cache):
        local_provider.error = ProviderTransportError("local", "connection refused")

        result = await dispatcher.complete(make_request(model="dolphin-llama3:8b", temperature=0.3))

        assert result.response == "remote answer"
        fallback_call = remote_provider.calls[0]
        assert fallback_call["model"] is None
        assert fallback_call["temperature"] == 0.3
        assert fallback_call["messages"] == local_provider.calls[0]["messages"]
        assert cache.get("local:dolphin-llama3%3A8b:hi:0.3") == result

    @pytest.mark.asyncio
    async def test_fallback_answer_is_served_from_cache(self, dispatcher, local_provider, remote_provider):
        local_provider.error = ProviderTransportError("local", "down")

        first = await dispatcher.complete(make_request())
        second = await dispatcher.complete(make_request())

        assert second == first
        assert len(local_provider.calls) == 1
        assert len(remote_provider.calls) == 1

    @pytest.mark.asyncio
    async def test_fallback_failure_surfaces_remote_error(self, dispatcher, local_provider, remote_provider, cache):
        local_provider.error = ProviderTransportError("local", "down")
        remote_provider.error = ConfigurationError("OpenRouter API key not configured")

        with pytest.raises(ConfigurationError):
            await dispatcher.complete(make_request())
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_remote_failure_is_not_retried(self, dispatcher, local_provider, remote_provider):
        remote_provider.error = ProviderTransportError("remote", "502 from upstream")

        with pytest.raises(ProviderTransportError, match="502"):
            await dispatcher.complete(make_request(provider="remote"))
        assert len(remote_provider.calls) == 1
        assert local_provider.calls == []

    @pytest.mark.asyncio
    async def test_missing_credential_for_remote(self, dispatcher, remote_provider):
        remote_provider.error = ConfigurationError("OpenRouter API key not configured")

        with pytest.raises(ConfigurationError):
            await dispatcher.complete(make_request(provider="remote"))

    @pytest.mark.asyncio
    async def test_fallback_can_be_disabled(self, local_provider, remote_provider, cache):
        dispatcher = ChatDispatcher(
            {"local": local_provider, "remote": remote_provider}, cache, fallbacks={}
        )
        local_provider.error = ProviderTransportError("local", "down")

        with pytest.raises(ProviderTransportError):
            await dispatcher.complete(make_request())
        assert remote_provider.calls == []


class TestStreaming:
    @pytest.mark.asyncio
    async def test_tokens_then_done(self, dispatcher):
        chunks = await _collect(dispatcher, make_request())

        assert chunks == [
            StreamChunk.token("Hello "),
            StreamChunk.token("world"),
            StreamChunk.done(),
        ]

    @pytest.mark.asyncio
    async def test_stream_bypasses_cache(self, dispatcher, local_provider, cache):
        await dispatcher.complete(make_request())
        await _collect(dispatcher, make_request())
        await _collect(dispatcher, make_request())

        assert len(local_provider.stream_calls) == 2
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_stream_does_not_populate_cache(self, dispatcher, cache):
        await _collect(dispatcher, make_request())
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_failure_ends_with_single_error(self, dispatcher, local_provider, remote_provider):
        local_provider.stream_error = ProviderTransportError("local", "connection reset")

        chunks = await _collect(dispatcher, make_request())

        assert [c.type for c in chunks] == ["token", "token", "error"]
        assert "connection reset" in chunks[-1].content
        assert remote_provider.stream_calls == []

    @pytest.mark.asyncio
    async def test_remote_configuration_error_becomes_error_chunk(self, dispatcher, remote_provider):
        remote_provider.tokens = []
        remote_provider.stream_error = ConfigurationError("OpenRouter API key not configured")

        chunks = await _collect(dispatcher, make_request(provider="remote"))

        assert len(chunks) == 1
        assert chunks[0].type == "error"

    @pytest.mark.asyncio
    async def test_stream_uses_bounded_history(self, dispatcher, local_provider):
        conversation = [{"role": "user", "content": str(i)} for i in range(12)]
        await _collect(dispatcher, make_request(conversation=conversation))

        messages = local_provider.stream_calls[0]["messages"]
        assert len(messages) == 12
        assert messages[1].content == "2"

    @pytest.mark.asyncio
    async def test_consumer_can_stop_early(self, dispatcher, local_provider):
        local_provider.tokens = ["a", "b", "c"]
        stream = dispatcher.stream(make_request())

        first = await stream.__anext__()
        await stream.aclose()

        assert first == StreamChunk.token("a")


class TestLocalAdapterMalformedBodies:
    """Real local adapter over a mocked server, remote side faked."""

    def _dispatcher(self, handler, remote_provider, cache) -> ChatDispatcher:
        local = LocalProvider(mock_client(handler), "http://ollama.test")
        return ChatDispatcher({"local": local, "remote": remote_provider}, cache)

    @pytest.mark.asyncio
    async def test_non_string_content_falls_back_to_remote(self, remote_provider, cache):
        dispatcher = self._dispatcher(
            lambda r: httpx.Response(200, json={"message": {"content": 123}}), remote_provider, cache
        )

        result = await dispatcher.complete(make_request())

        assert result.response == "remote answer"
        assert len(remote_provider.calls) == 1
        assert cache.get("local:default:hi:0.7") == result

    @pytest.mark.asyncio
    async def test_non_string_stream_fragment_is_skipped(self, remote_provider, cache):
        body = (
            b'{"message": {"content": "a"}}\n'
            b'{"message": {"content": ["x"]}}\n'
            b'{"message": {"content": "b"}}\n'
        )
        dispatcher = self._dispatcher(lambda r: httpx.Response(200, content=body), remote_provider, cache)

        chunks = await _collect(dispatcher, make_request())

        assert chunks == [StreamChunk.token("a"), StreamChunk.token("b"), StreamChunk.done()]
