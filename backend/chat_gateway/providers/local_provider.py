import json
import uuid
from typing import AsyncIterator, Any, Dict, List, Optional

import httpx
import structlog

from chat_gateway.core.errors import ProviderTransportError
from chat_gateway.providers.base import ChatCompletion, ChatMessage, Provider, StreamChunk

logger = structlog.get_logger()

FALLBACK_LOCAL_MODEL = "dolphin-llama3:8b"
EMPTY_RESPONSE = "No response generated"

# Generation options sent with every request; only temperature varies per call
GENERATION_OPTIONS: Dict[str, Any] = {
    "num_ctx": 4096,
    "repeat_penalty": 1.1,
    "top_k": 40,
    "top_p": 0.9,
}


class LocalProvider(Provider):
    """Ollama-compatible inference server reachable over plain HTTP."""

    name = "local"

    def __init__(self, client: httpx.AsyncClient, base_url: str, default_model: Optional[str] = None):
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model or FALLBACK_LOCAL_MODEL

    def resolve_model(self, model: Optional[str]) -> str:
        return model or self._default_model

    def _payload(self, messages: List[ChatMessage], model: Optional[str], temperature: float, stream: bool):
        return {
            "model": self.resolve_model(model),
            "messages": [m.model_dump() for m in messages],
            "stream": stream,
            "options": {"temperature": temperature, **GENERATION_OPTIONS},
        }

    async def complete(
        self, messages: List[ChatMessage], model: Optional[str], temperature: float
    ) -> ChatCompletion:
        payload = self._payload(messages, model, temperature, stream=False)
        try:
            resp = await self._client.post(f"{self._base_url}/api/chat", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderTransportError(self.name, f"Local model request failed: {e}") from e

        message = data.get("message") if isinstance(data, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(message, dict) or not isinstance(content, (str, type(None))):
            raise ProviderTransportError(self.name, "Local model returned a malformed response")

        return ChatCompletion(id=str(uuid.uuid4()), response=content or EMPTY_RESPONSE)

    async def stream(
        self, messages: List[ChatMessage], model: Optional[str], temperature: float
    ) -> AsyncIterator[StreamChunk]:
        payload = self._payload(messages, model, temperature, stream=True)
        try:
            async with self._client.stream("POST", f"{self._base_url}/api/chat", json=payload) as resp:
                resp.raise_for_status()
                # NDJSON: one object per line
                async for line in resp.aiter_lines():
                    delta = self._parse_line(line)
                    if delta:
                        yield StreamChunk.token(delta)
        except httpx.HTTPError as e:
            raise ProviderTransportError(self.name, f"Local stream failed: {e}") from e

    def _parse_line(self, line: str) -> Optional[str]:
        if not line.strip():
            return None
        try:
            parsed = json.loads(line)
        except ValueError:
            logger.debug("local_stream_fragment_skipped", fragment=line[:200])
            return None
        if not isinstance(parsed, dict):
            return None
        if parsed.get("error"):
            raise ProviderTransportError(self.name, f"Local stream failed: {parsed['error']}")
        message = parsed.get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        if not isinstance(content, str):
            return None
        return content or None

    async def list_installed_models(self) -> List[str]:
        """Names of the models installed on the local server."""
        try:
            resp = await self._client.get(f"{self._base_url}/api/tags")
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderTransportError(self.name, f"Local model listing failed: {e}") from e
        models = data.get("models") if isinstance(data, dict) else None
        return [m["name"] for m in models or [] if isinstance(m, dict) and isinstance(m.get("name"), str) and m["name"]]
