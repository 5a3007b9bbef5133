import secrets
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


@dataclass(frozen=True)
class Identity:
    user_id: str


class TokenVerifier(Protocol):
    def verify(self, token: str) -> Optional[Identity]: ...


class StaticTokenVerifier:
    """Accepts any of a fixed set of tokens; the token index is the identity."""

    def __init__(self, tokens: Iterable[str]):
        self._tokens = [t for t in tokens if t]

    def verify(self, token: str) -> Optional[Identity]:
        for i, known in enumerate(self._tokens):
            if secrets.compare_digest(known.encode(), token.encode()):
                return Identity(user_id=f"token-{i}")
        return None


def extract_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return request.headers.get("X-API-Key") or None


class IdentityMiddleware(BaseHTTPMiddleware):
    """Resolve the caller's identity, or None when unauthenticated.

    Chat routes stay public; the identity only keys per-caller limits.
    """

    def __init__(self, app, verifier: TokenVerifier):
        super().__init__(app)
        self._verifier = verifier

    async def dispatch(self, request: Request, call_next):
        token = extract_token(request)
        request.state.identity = self._verifier.verify(token) if token else None
        return await call_next(request)
