"""
Tindo API - Idempotency Key Middleware

Checkout retries after a timeout must not create a second order. POST /orders
honours an Idempotency-Key header backed by Redis:
  - Cache hit  → return cached response immediately (no order is created)
  - Cache miss → execute handler, store response for IDEMPOTENCY_KEY_TTL_SECONDS
Server errors (5xx) are not cached, so a failed creation can be retried.
Keys are scoped to the authenticated caller, so two customers who happen to
send the same key never see each other's orders.
"""
import json
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from tindo.core.config import get_settings
from tindo.core.redis_client import get_redis

settings = get_settings()
logger = logging.getLogger(__name__)

IDEMPOTENCY_PREFIX = "idempotent:"
IDEMPOTENCY_METHODS = {"POST"}
IDEMPOTENCY_PATHS = {"/orders", "/orders/"}


class IdempotencyMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method not in IDEMPOTENCY_METHODS:
            return await call_next(request)

        if request.url.path not in IDEMPOTENCY_PATHS:
            return await call_next(request)

        idem_key = request.headers.get("Idempotency-Key")
        if not idem_key:
            return await call_next(request)

        # JWTAuthMiddleware runs first; without a session the route answers 401 itself
        session = getattr(request.state, "session", None)
        if session is None:
            return await call_next(request)

        redis = get_redis()
        cache_key = f"{IDEMPOTENCY_PREFIX}{session.user_id}:{idem_key}"

        cached = await redis.get(cache_key)
        if cached:
            data = json.loads(cached)
            logger.info("Replaying stored response for user %s Idempotency-Key %s", session.user_id, idem_key)
            return JSONResponse(
                content=data["body"],
                status_code=data["status_code"],
                headers={"X-Idempotency-Replay": "true"},
            )

        response = await call_next(request)

        body_bytes = b""
        async for chunk in response.body_iterator:
            body_bytes += chunk

        try:
            body = json.loads(body_bytes)
        except ValueError:
            body = body_bytes.decode("utf-8", errors="replace")

        if response.status_code < 500:
            await redis.setex(
                cache_key,
                settings.IDEMPOTENCY_KEY_TTL_SECONDS,
                json.dumps({"body": body, "status_code": response.status_code}),
            )

        return Response(
            content=body_bytes,
            status_code=response.status_code,
            media_type=response.media_type,
            headers=dict(response.headers),
        )
