"""JSON logging with request-scoped context.

Handlers log a dotted event name as the message and put the details in
``extra``; the formatter merges both with the request context bound by the
observability middleware.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from opentelemetry import trace as otel_trace

from hexfeed.settings import settings

_LOGGER_NAME = "hexfeed"

# context field -> key in the emitted record
_CONTEXT: Dict[str, tuple[ContextVar[Optional[str]], str]] = {
	"request_id": (ContextVar("obs_request_id", default=None), "request_id"),
	"route": (ContextVar("obs_route", default=None), "route"),
	"client_ip": (ContextVar("obs_client_ip", default=None), "ip"),
}

_SENSITIVE_KEYWORDS = ("secret", "authorization", "password", "admin_token", "latitude", "longitude", "body")
# short names only redacted on exact match ("lat" would otherwise hit "latency_ms")
_SENSITIVE_KEYS = frozenset({"lat", "lng", "lon", "q", "token"})

_MAX_STRING_LENGTH = 256
_MAX_COLLECTION_ITEMS = 10

_RESERVED_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}

# access logs duplicate the middleware's http.request event
_QUIET_LOGGERS = ("uvicorn.access",)


def bind_context(**fields: Optional[str]) -> Dict[str, Token]:
	"""Bind request fields (``request_id``, ``route``, ``client_ip``); returns reset tokens."""
	tokens: Dict[str, Token] = {}
	for name, value in fields.items():
		if value is None or name not in _CONTEXT:
			continue
		tokens[name] = _CONTEXT[name][0].set(value)
	return tokens


def reset_context(tokens: Dict[str, Token]) -> None:
	for name, token in tokens.items():
		_CONTEXT[name][0].reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT["request_id"][0].get()


def _sanitize_value(value: Any) -> Any:
	if value is None or isinstance(value, (bool, int, float)):
		return value
	if isinstance(value, str):
		return value if len(value) <= _MAX_STRING_LENGTH else f"{value[:_MAX_STRING_LENGTH]}…"
	if isinstance(value, dict):
		result: Dict[str, Any] = {}
		for key, nested in list(value.items())[:_MAX_COLLECTION_ITEMS]:
			result[str(key)] = _sanitize_field(str(key), nested)
		if len(value) > _MAX_COLLECTION_ITEMS:
			result["…"] = f"+{len(value) - _MAX_COLLECTION_ITEMS} keys"
		return result
	if isinstance(value, (list, tuple, set, frozenset)):
		items = [_sanitize_value(item) for item in list(value)[:_MAX_COLLECTION_ITEMS]]
		if len(value) > _MAX_COLLECTION_ITEMS:
			items.append(f"+{len(value) - _MAX_COLLECTION_ITEMS} more")
		return items
	return _sanitize_value(str(value))


def _sanitize_field(key: str, value: Any) -> Any:
	lowered = key.lower()
	if lowered in _SENSITIVE_KEYS or any(keyword in lowered for keyword in _SENSITIVE_KEYWORDS):
		return "[redacted]"
	return _sanitize_value(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, object] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		for var, key in _CONTEXT.values():
			value = var.get()
			if value:
				payload[key] = value
		span_context = otel_trace.get_current_span().get_span_context()
		if span_context.is_valid:
			payload["trace_id"] = f"{span_context.trace_id:032x}"
			payload["span_id"] = f"{span_context.span_id:016x}"
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in record.__dict__.items():
			if key in _RESERVED_ATTRS or key in payload:
				continue
			payload[key] = _sanitize_field(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Sample info records at ``obs_log_sampling_rate_info``; other levels always pass."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	for name in _QUIET_LOGGERS:
		logging.getLogger(name).setLevel(logging.WARNING)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
