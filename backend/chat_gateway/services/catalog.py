from typing import List, Optional, Tuple

import structlog

from chat_gateway.core.errors import GatewayError
from chat_gateway.providers.local_provider import LocalProvider
from chat_gateway.schemas import ModelInfo

logger = structlog.get_logger()

LOCAL_CONTEXT_LENGTH = 4096
UNCENSORED_MARKERS = ("dolphin", "abliterated", "deepseek")

REMOTE_MODELS: Tuple[ModelInfo, ...] = (
    ModelInfo(
        id="cognitivecomputations/dolphin-mixtral-8x7b",
        name="Dolphin Mixtral 8x7B",
        provider="remote",
        description="Dolphin Mixtral - Unrestricted via OpenRouter",
        context_length=4096,
        uncensored=True,
    ),
    ModelInfo(
        id="huihui_ai/qwq-abliterated",
        name="QwQ-abliterated",
        provider="remote",
        description="QwQ-abliterated - Unrestricted via OpenRouter",
        context_length=4096,
        uncensored=True,
    ),
    ModelInfo(
        id="deepseek/deepseek-r1",
        name="DeepSeek R1",
        provider="remote",
        description="DeepSeek R1 via OpenRouter",
        context_length=4096,
        uncensored=True,
    ),
)


def local_model_info(name: str) -> ModelInfo:
    return ModelInfo(
        id=name,
        name=name,
        provider="local",
        description=f"Local model: {name}",
        context_length=LOCAL_CONTEXT_LENGTH,
        uncensored=any(marker in name for marker in UNCENSORED_MARKERS),
    )


class ModelCatalog:
    """Installed local models first, then the fixed list of hosted models."""

    def __init__(self, local: Optional[LocalProvider], remote_models: Tuple[ModelInfo, ...] = REMOTE_MODELS):
        self._local = local
        self._remote_models = remote_models

    async def list_models(self) -> List[ModelInfo]:
        models: List[ModelInfo] = []
        if self._local is not None:
            try:
                names = await self._local.list_installed_models()
                models.extend(local_model_info(name) for name in names)
            except GatewayError as e:
                # the local server is allowed to be offline
                logger.info("local_models_unavailable", error=e.message)
        models.extend(self._remote_models)
        return models
