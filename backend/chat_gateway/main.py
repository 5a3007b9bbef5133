from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from fastapi.middleware.gzip import GZipMiddleware
from starlette.middleware.cors import CORSMiddleware

from chat_gateway.api.main import api_router
from chat_gateway.core.config import settings
from chat_gateway.core.errors import GatewayError
from chat_gateway.middleware.auth import IdentityMiddleware, StaticTokenVerifier
from chat_gateway.middleware.request_id import RequestIdMiddleware
from chat_gateway.observability import MetricsMiddleware, configure_logging, metrics_router
from chat_gateway.services.context import build_gateway

logger = structlog.get_logger()


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}" if route.tags else route.name


configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.gateway = build_gateway(settings)
    logger.info(
        "gateway_started",
        local_url=settings.LOCAL_LLM_URL,
        remote_configured=bool(settings.OPENROUTER_API_KEY),
    )
    try:
        yield
    finally:
        await app.state.gateway.aclose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(GatewayError)
async def gateway_exception_handler(request: Request, exc: GatewayError):
    logger.error("request_failed", kind=exc.kind, error=exc.message, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.add_middleware(IdentityMiddleware, verifier=StaticTokenVerifier(settings.API_TOKENS))
app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=512)

# Set all CORS enabled origins
if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)
app.include_router(metrics_router)
