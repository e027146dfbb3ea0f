"""
Tindo API - JWT Authentication Middleware
Validates the Bearer token on every protected route; returns 401 on failure.
Tokens are issued by the account service; this service only verifies them.
"""
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from tindo.core.errors import AuthError, ValidationError
from tindo.core.security import decode_token, JWTError
from tindo.core.session import ClientSession, ROLE_AGENT

# Paths that do NOT require authentication
PUBLIC_PATHS = {
    "/health",
    "/metrics",
    "/",
    "/docs",
    "/openapi.json",
}


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=AuthError.status_code,
        content={"detail": detail, "code": AuthError.code},
        headers={"WWW-Authenticate": "Bearer"},
    )


class JWTAuthMiddleware(BaseHTTPMiddleware):
    """
    Attaches the caller's ClientSession to request.state.session on success.
    An expired token is a 401 so clients can log out (and agent publishers stop).
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS":
            return await call_next(request)

        if request.url.path in PUBLIC_PATHS or request.url.path.startswith("/metrics"):
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return _unauthorized("Missing or invalid Authorization header. Expected: Bearer <token>")

        token = auth_header.split(" ", 1)[1]
        try:
            claims = decode_token(token)
            request.state.session = ClientSession.from_claims(claims)
        except JWTError as exc:
            return _unauthorized(f"Invalid or expired JWT: {exc}")
        except ValueError as exc:
            return _unauthorized(str(exc))

        return await call_next(request)


def current_session(request: Request) -> ClientSession:
    """FastAPI dependency: the session set by JWTAuthMiddleware."""
    session = getattr(request.state, "session", None)
    if session is None:
        raise AuthError("Not authenticated.")
    return session


def check_agent_identity(session: ClientSession, agent_id: int) -> None:
    """An agent may only speak for itself."""
    if session.role == ROLE_AGENT and session.user_id != agent_id:
        raise ValidationError("agent_id does not match the authenticated agent.")
