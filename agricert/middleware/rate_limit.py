"""Redis-backed per-caller rate limiting."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from agricert.auth.dependencies import extract_identity_hint
from agricert.config import get_settings

_BYPASS_PREFIXES = ("/docs", "/redoc", "/openapi", "/health")


def api_area(path: str) -> str:
	"""First path segment under ``/api/v1`` (``inspections``, ``certificates``)."""
	parts = [part for part in path.split("/") if part]
	if parts[:2] == ["api", "v1"]:
		parts = parts[2:]
	return parts[0] if parts else "root"


class RateLimitMiddleware(BaseHTTPMiddleware):
	"""Fixed one-minute window per caller and API area, counted in Redis."""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		path = request.url.path
		if path.startswith(_BYPASS_PREFIXES):
			return await call_next(request)

		redis_client = getattr(request.app.state, "redis", None)
		if redis_client is None:
			return await call_next(request)

		quota = get_settings().rate_limit_user_per_minute
		identity = extract_identity_hint(request)
		area = api_area(path)
		minute_bucket = datetime.now(UTC).strftime("%Y%m%d%H%M")
		key = f"ratelimit:{area}:{identity}:{minute_bucket}"

		current = await redis_client.incr(key)
		if current == 1:
			await redis_client.expire(key, 65)

		if current > quota:
			return JSONResponse(
				status_code=429,
				content={
					"detail": {
						"error": "rate_limited",
						"message": "Request quota exceeded",
						"area": area,
						"quota": quota,
					}
				},
				headers={"Retry-After": str(60 - datetime.now(UTC).second)},
			)

		return await call_next(request)
