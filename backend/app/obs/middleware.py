"""Per-request middleware: request ids, access logs, HTTP metrics."""

from __future__ import annotations

import time
from typing import Optional
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from app.obs import logging as obs_logging
from app.obs import metrics
from app.settings import settings

REQUEST_ID_HEADER = "X-Request-Id"

access_log = obs_logging.get_logger("memorials.http")


def route_template(request: Request) -> str:
	"""``/obituaries/feed`` rather than the concrete URL, so metric labels stay bounded."""

	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


def client_ip(request: Request) -> Optional[str]:
	forwarded = request.headers.get("x-forwarded-for", "")
	first = forwarded.split(",")[0].strip()
	if first:
		return first
	return request.client.host if request.client else None


class ObservabilityMiddleware(BaseHTTPMiddleware):
	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		if self._enabled and settings.obs_enabled:
			response = await self._instrumented(request, call_next, request_id)
		else:
			response = await call_next(request)
		if REQUEST_ID_HEADER not in response.headers:
			response.headers[REQUEST_ID_HEADER] = request_id
		return response

	async def _instrumented(self, request: Request, call_next: RequestResponseEndpoint, request_id: str) -> Response:
		token = obs_logging.bind_context(
			request_id=request_id,
			route=request.url.path,
			user_id=request.headers.get("X-User-Id"),
			session_id=request.headers.get("X-Session-Id"),
			ip=client_ip(request),
		)
		try:
			start = time.perf_counter()
			status_code = 500
			try:
				response = await call_next(request)
				status_code = response.status_code
			except Exception:
				access_log.exception("http_request_error", extra={"method": request.method})
				raise
			finally:
				elapsed = time.perf_counter() - start
				template = route_template(request)
				metrics.observe_request(template, request.method, status_code, elapsed)
			access_log.info(
				"http_request",
				extra={
					"status": status_code,
					"method": request.method,
					"latency_ms": round(elapsed * 1000, 3),
					"template": template,
				},
			)
			return response
		finally:
			obs_logging.reset_context(token)


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
