import asyncio
import json
from typing import AsyncIterator, Dict, Any, List
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
import structlog
from chat_gateway.api.deps import CallerKeyDep, GatewayDep
from chat_gateway.core.config import settings
from chat_gateway.providers.base import ChatCompletion, StreamChunk
from chat_gateway.schemas import ChatRequest, ModelInfo
from chat_gateway.utils.rate_limit import get_limiter

router = APIRouter(prefix="/chat", tags=["chat"])
logger = structlog.get_logger()

SSE_DONE = "data: [DONE]\n\n"

def _sse_format(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"

async def _stream_with_timeout(generator: AsyncIterator[str], timeout_seconds: int = 300) -> AsyncIterator[str]:
    """Wrapper to add timeout to streaming generators"""
    try:
        async with asyncio.timeout(timeout_seconds):
            async for chunk in generator:
                yield chunk
    except asyncio.TimeoutError:
        logger.error("Streaming timeout exceeded", timeout_seconds=timeout_seconds)
        yield _sse_format(StreamChunk.error("Stream timeout exceeded").model_dump())
        yield SSE_DONE

@router.post("/", response_model=ChatCompletion)
async def send_message(payload: ChatRequest, gateway: GatewayDep, caller: CallerKeyDep) -> ChatCompletion:
    async with get_limiter(caller):
        return await gateway.dispatcher.complete(payload)

@router.post("/stream")
async def stream_message(payload: ChatRequest, request: Request, gateway: GatewayDep, caller: CallerKeyDep):
    async with get_limiter(caller):
        chunks = gateway.dispatcher.stream(payload)

    async def event_gen() -> AsyncIterator[str]:
        try:
            async for chunk in chunks:
                yield _sse_format(chunk.model_dump())
        except Exception as e:
            logger.error("Error during streaming", error=str(e), request_id=getattr(request.state, "request_id", None))
            yield _sse_format(StreamChunk.error(f"Stream error: {e}").model_dump())
        finally:
            await chunks.aclose()
        # final sentinel
        yield SSE_DONE

    return StreamingResponse(
        _stream_with_timeout(event_gen(), settings.STREAM_TIMEOUT_SECONDS),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"  # Disable nginx buffering
        }
    )

@router.get("/models", response_model=List[ModelInfo])
async def get_available_models(gateway: GatewayDep) -> List[ModelInfo]:
    return await gateway.catalog.list_models()
