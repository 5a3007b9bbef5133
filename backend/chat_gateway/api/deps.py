from typing import Annotated

from fastapi import Depends, Request

from chat_gateway.services.context import GatewayContext


def get_gateway(request: Request) -> GatewayContext:
    return request.app.state.gateway


GatewayDep = Annotated[GatewayContext, Depends(get_gateway)]


def get_caller_key(request: Request) -> str:
    identity = getattr(request.state, "identity", None)
    return identity.user_id if identity else "public"


CallerKeyDep = Annotated[str, Depends(get_caller_key)]
