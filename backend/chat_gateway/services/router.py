from typing import Mapping
from chat_gateway.providers.base import Provider

def resolve_provider(providers: Mapping[str, Provider], name: str) -> Provider:
    """
    Resolve the provider registered under ``name`` ("local" or "remote").
    Request validation restricts the name, so a miss is a wiring bug.
    """
    try:
        return providers[name]
    except KeyError:
        raise LookupError(f"provider {name!r} is not registered") from None
