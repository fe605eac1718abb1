"""Applies the shared limiter to every REST request except health checks and docs."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from creatordeals.core.auth import decode_token
from creatordeals.core.exceptions import UnauthorizedError
from creatordeals.core.rate_limiter import rate_limiter

# X-Forwarded-For is honoured only when the direct peer is a local reverse proxy
TRUSTED_PROXIES = {"127.0.0.1", "::1", "localhost", "172.17.0.1"}
UNLIMITED_PATHS = frozenset({"/api/v1/health", "/api/v1/health/ready", "/docs", "/openapi.json", "/redoc"})


def client_key(request: Request) -> tuple[str, bool]:
    """``user:<sub>`` for a valid user token, else ``ip:<address>``."""
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            return f"user:{decode_token(token.strip())['sub']}", True
        except UnauthorizedError:
            pass

    ip = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and ip in TRUSTED_PROXIES:
        ip = forwarded.split(",")[0].strip()
    return f"ip:{ip}", False


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path in UNLIMITED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        decision = rate_limiter.check(*client_key(request))
        headers = decision.headers()
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded", "retry_after": int(headers["Retry-After"])},
                headers=headers,
            )

        response: Response = await call_next(request)
        response.headers.update(headers)
        return response
