from typing import AsyncIterator, List, Literal, Optional
from pydantic import BaseModel, ConfigDict

class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str

class ChatCompletion(BaseModel):
    """A finished single-shot answer; also what the response cache stores."""
    model_config = ConfigDict(frozen=True)

    id: str
    response: str

class StreamChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["token", "error", "done"]
    content: str = ""

    @classmethod
    def token(cls, content: str) -> "StreamChunk":
        return cls(type="token", content=content)

    @classmethod
    def error(cls, message: str) -> "StreamChunk":
        return cls(type="error", content=message)

    @classmethod
    def done(cls) -> "StreamChunk":
        return cls(type="done")

class Provider:
    """Capability shared by every chat backend.

    ``stream`` yields token chunks only; terminal ``done``/``error`` chunks are
    added by the dispatcher. Failures are raised as ``GatewayError`` subclasses.
    """
    name: str = "base"

    async def complete(
        self, messages: List[ChatMessage], model: Optional[str], temperature: float
    ) -> ChatCompletion:
        raise NotImplementedError

    async def stream(
        self, messages: List[ChatMessage], model: Optional[str], temperature: float
    ) -> AsyncIterator[StreamChunk]:
        raise NotImplementedError
