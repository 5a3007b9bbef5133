from aiolimiter import AsyncLimiter
from typing import Dict
from chat_gateway.core.config import settings

# In-memory per-caller limiter, one bucket per identity (or "public")
_limiters: Dict[str, AsyncLimiter] = {}

def get_limiter(key: str) -> AsyncLimiter:
    if key not in _limiters:
        _limiters[key] = AsyncLimiter(max(1, settings.RATE_LIMIT_PER_MINUTE), time_period=60)
    return _limiters[key]
