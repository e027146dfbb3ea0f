"""
Tindo API - FastAPI application entrypoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from tindo.core.config import get_settings
from tindo.core.errors import StorageError, TindoError
from tindo.core.redis_client import close_redis
from tindo.db.database import engine, Base
from tindo.middleware.auth import JWTAuthMiddleware
from tindo.middleware.idempotency import IdempotencyMiddleware
from tindo.realtime.channel import close_channel, get_channel
from tindo.api import health, orders, realtime, tracking, users

settings = get_settings()
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables (migrations are managed outside this service)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    get_channel()
    yield
    # Shutdown
    await close_channel()
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Tindo Order API",
    description="Order lifecycle, agent assignment and live delivery tracking.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

# ── Error rendering ───────────────────────────────────────────────────────────

@app.exception_handler(TindoError)
async def tindo_error_handler(request: Request, exc: TindoError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Missing/malformed fields are a client-correctable 400
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors()), "code": "validation_error"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error.", "code": StorageError.code},
    )


# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production via env var
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: auth is checked before an idempotent replay
app.add_middleware(IdempotencyMiddleware)
app.add_middleware(JWTAuthMiddleware)

# ── Prometheus Metrics ────────────────────────────────────────────────────────
if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(orders.router)
app.include_router(tracking.router)
app.include_router(realtime.router)
app.include_router(users.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}
