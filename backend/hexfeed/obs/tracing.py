"""Distributed tracing setup (OpenTelemetry) for the service."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.asyncpg import AsyncPGInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from hexfeed.settings import settings

LOGGER = logging.getLogger(__name__)
_instrumented = False


def init_tracing(app: FastAPI) -> Optional[TracerProvider]:
	"""Initialise OpenTelemetry tracing if enabled and an exporter endpoint is set."""
	global _instrumented
	if not settings.obs_tracing_enabled:
		LOGGER.info("obs.tracing.disabled")
		return None
	if settings.otel_exporter_otlp_endpoint is None:
		LOGGER.warning("obs.tracing.missing_endpoint")
		return None
	if _instrumented:
		return trace.get_tracer_provider()  # type: ignore[return-value]

	resource = Resource.create(
		{
			"service.name": settings.service_name,
			"service.version": settings.git_commit,
			"deployment.environment": settings.environment,
		}
	)
	provider = TracerProvider(resource=resource)
	exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint, insecure=True)
	provider.add_span_processor(BatchSpanProcessor(exporter))
	trace.set_tracer_provider(provider)

	FastAPIInstrumentor.instrument_app(app)
	HTTPXClientInstrumentor().instrument()
	if settings.store_backend.lower() == "postgres":
		AsyncPGInstrumentor().instrument()
	RedisInstrumentor().instrument()

	_instrumented = True
	LOGGER.info("obs.tracing.initialised", extra={"endpoint": settings.otel_exporter_otlp_endpoint})
	return provider


def shutdown_tracing() -> None:
	provider = trace.get_tracer_provider()
	if hasattr(provider, "shutdown"):
		provider.shutdown()  # type: ignore[call-arg]
