import threading
import time
from typing import Callable, Optional

from cachetools import TTLCache

from chat_gateway.providers.base import ChatCompletion

DEFAULT_MODEL_KEY = "default"


def _escape(field: str) -> str:
    # Ollama tags contain ":" (e.g. "llama3:8b"), which is also the key separator
    return field.replace("%", "%25").replace(":", "%3A")


def make_cache_key(provider: str, model: Optional[str], message: str, temperature: float) -> str:
    model_part = _escape(model) if model else DEFAULT_MODEL_KEY
    return f"{provider}:{model_part}:{_escape(message)}:{temperature}"


class ResponseCache:
    """In-memory single-shot response cache with a uniform TTL.

    Expired entries are never returned; TTLCache evicts them lazily. Not shared
    across processes and not persisted.
    """

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 5000, timer: Callable[[], float] = time.monotonic):
        self._store: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=timer)
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[ChatCompletion]:
        with self._lock:
            return self._store.get(key)

    def put(self, key: str, entry: ChatCompletion) -> None:
        with self._lock:
            self._store[key] = entry

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            # expire() drops stale entries so the count only covers live ones
            self._store.expire()
            return len(self._store)
