import asyncio
import re
import uuid
from typing import AsyncIterator, List, Optional

import httpx
import structlog
from openai import APIError, AsyncOpenAI

from chat_gateway.core.errors import ConfigurationError, ProviderTransportError
from chat_gateway.providers.base import ChatCompletion, ChatMessage, Provider, StreamChunk

logger = structlog.get_logger()

FALLBACK_REMOTE_MODEL = "cognitivecomputations/dolphin-mixtral-8x7b"
EMPTY_RESPONSE = "No response"

# A word plus the whitespace after it, so joined tokens reproduce the text
_TOKEN_RE = re.compile(r"\S+\s*")


def split_tokens(text: str) -> List[str]:
    return _TOKEN_RE.findall(text)


class RemoteProvider(Provider):
    """Hosted OpenAI-compatible API (OpenRouter) behind a bearer credential.

    There is no incremental protocol here: ``stream`` fetches the full answer
    and replays it word by word with a fixed pacing delay.
    """

    name = "remote"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str],
        base_url: str,
        default_model: Optional[str] = None,
        max_tokens: int = 2000,
        token_delay: float = 0.05,
        referer: Optional[str] = None,
        title: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self._http_client = http_client
        self._api_key = api_key
        self._base_url = base_url
        self._default_model = default_model or FALLBACK_REMOTE_MODEL
        self._max_tokens = max_tokens
        self._token_delay = token_delay
        self._headers = {}
        if referer:
            self._headers["HTTP-Referer"] = referer
        if title:
            self._headers["X-Title"] = title
        self._timeout = timeout
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if not self._api_key:
            raise ConfigurationError("OpenRouter API key not configured")
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                default_headers=self._headers,
                timeout=self._timeout,
                max_retries=0,
                http_client=self._http_client,
            )
        return self._client

    def resolve_model(self, model: Optional[str]) -> str:
        return model or self._default_model

    async def complete(
        self, messages: List[ChatMessage], model: Optional[str], temperature: float
    ) -> ChatCompletion:
        client = self._get_client()
        try:
            resp = await client.chat.completions.create(
                model=self.resolve_model(model),
                messages=[m.model_dump() for m in messages],
                temperature=temperature,
                max_tokens=self._max_tokens,
            )
        except APIError as e:
            logger.error("remote_request_failed", error=str(e))
            raise ProviderTransportError(self.name, f"OpenRouter failed: {e}") from e

        if not resp.choices:
            # a 200 without choices is an upstream error body
            raise ProviderTransportError(self.name, "OpenRouter failed: response has no choices")
        message = getattr(resp.choices[0], "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str):
            content = None
        return ChatCompletion(id=str(uuid.uuid4()), response=content or EMPTY_RESPONSE)

    async def stream(
        self, messages: List[ChatMessage], model: Optional[str], temperature: float
    ) -> AsyncIterator[StreamChunk]:
        result = await self.complete(messages, model, temperature)
        for i, token in enumerate(split_tokens(result.response)):
            if i and self._token_delay:
                await asyncio.sleep(self._token_delay)
            yield StreamChunk.token(token)
