from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ProviderName = Literal["local", "remote"]

class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str

# Canonical inbound request, shared by the single-shot and streaming routes
class ChatRequest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str = Field(min_length=1)
    provider: ProviderName = "local"
    model: Optional[str] = None
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    conversation: List[ConversationTurn] = Field(default_factory=list)
    temperature: float = Field(default=0.7, ge=0, le=2)

class ModelInfo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: str
    name: str
    provider: ProviderName
    description: str
    context_length: int
    uncensored: bool

class HealthStatus(BaseModel):
    status: str
    timestamp: str
