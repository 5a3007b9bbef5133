from typing import List, Optional, Sequence

from chat_gateway.core.config import DEFAULT_SYSTEM_PROMPT
from chat_gateway.providers.base import ChatMessage
from chat_gateway.schemas import ConversationTurn

HISTORY_LIMIT = 10


def build_messages(
    message: str,
    system_prompt: Optional[str],
    conversation: Sequence[ConversationTurn] = (),
    *,
    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    history_limit: int = HISTORY_LIMIT,
) -> List[ChatMessage]:
    """
    Assemble the provider message list: system prompt, the most recent
    ``history_limit`` conversation turns (oldest first), then the new user message.
    """
    messages = [ChatMessage(role="system", content=system_prompt or default_system_prompt)]
    recent = list(conversation)[-history_limit:] if history_limit > 0 else []
    messages.extend(ChatMessage(role=turn.role, content=turn.content) for turn in recent)
    messages.append(ChatMessage(role="user", content=message))
    return messages
