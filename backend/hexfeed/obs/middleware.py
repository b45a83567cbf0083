"""ASGI middleware for metrics, logging, and trace propagation."""

from __future__ import annotations

import time
from typing import Optional
from uuid import uuid4

from fastapi import Request
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from hexfeed.obs import logging as obs_logging
from hexfeed.obs import metrics


def _route_template(request: Request) -> str:
	route = request.scope.get("route")
	if route and getattr(route, "path", None):
		return route.path  # type: ignore[return-value]
	return request.url.path


def _trace_headers() -> dict[str, str]:
	context = trace.get_current_span().get_span_context()
	if not context.is_valid:
		return {}
	trace_id = f"{context.trace_id:032x}"
	span_id = f"{context.span_id:016x}"
	return {"traceparent": f"00-{trace_id}-{span_id}-01"}


def client_ip(request: Request) -> str:
	"""First hop from ``X-Forwarded-For`` when present, else the socket peer."""

	forwarded = request.headers.get("X-Forwarded-For")
	if forwarded:
		first = forwarded.split(",")[0].strip()
		if first:
			return first
	client = request.client
	return client.host if client else "unknown"


class ObservabilityMiddleware(BaseHTTPMiddleware):
	"""Instrument requests with metrics, structured logs, and trace context."""

	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger("hexfeed.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		existing_request_id = getattr(request.state, "request_id", None)
		request_id = existing_request_id or request.headers.get("X-Request-Id") or str(uuid4())
		if not existing_request_id:
			request.state.request_id = request_id
		if not self._enabled:
			response = await call_next(request)
			response.headers.setdefault("X-Request-Id", request_id)
			return response

		route_template = _route_template(request)
		ip = client_ip(request)
		tokens = obs_logging.bind_context(request_id=request_id, route=route_template, client_ip=ip)
		start = time.perf_counter()
		status_code = 500
		response: Optional[Response] = None
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			self._logger.exception(
				"http.request.error",
				extra={"method": request.method, "path": request.url.path},
			)
			raise
		finally:
			elapsed_seconds = time.perf_counter() - start
			# the route is only resolved once routing ran
			route_template = _route_template(request)
			metrics.observe_request(route_template, request.method, status_code, elapsed_seconds)
			if response is not None:
				response.headers.setdefault("X-Request-Id", request_id)
				for key, value in _trace_headers().items():
					response.headers.setdefault(key, value)
				self._logger.info(
					"http.request",
					extra={
						"status": status_code,
						"method": request.method,
						"latency_ms": round(elapsed_seconds * 1000, 3),
					},
				)
			obs_logging.reset_context(tokens)
		return response


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
