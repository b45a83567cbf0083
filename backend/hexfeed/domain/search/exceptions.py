"""Error taxonomy for feed and search requests."""

from __future__ import annotations


class EngineError(Exception):
	"""Base class for errors surfaced to API callers."""

	code = "internal_error"
	status_code = 500

	def __init__(self, detail: str, *, code: str | None = None, status_code: int | None = None) -> None:
		super().__init__(detail)
		self.detail = detail
		if code is not None:
			self.code = code
		if status_code is not None:
			self.status_code = status_code


class InvalidRequest(EngineError):
	"""Malformed or missing query shape. Caller error, never retried."""

	code = "invalid_request"
	status_code = 400


class UpstreamTotalFailure(EngineError):
	"""Every chunk query failed or timed out."""

	code = "internal_error"
	status_code = 500

	def __init__(self, detail: str = "all store queries failed") -> None:
		super().__init__(detail)


class NotFound(EngineError):
	code = "not_found"
	status_code = 404


class UpstreamUnavailable(EngineError):
	code = "geocode_failed"
	status_code = 502


class RateLimited(EngineError):
	code = "rate_limit"
	status_code = 429

	def __init__(self, *, retry_after: int | None = None) -> None:
		super().__init__("too many requests")
		self.retry_after = retry_after
