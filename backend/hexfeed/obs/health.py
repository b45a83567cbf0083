"""Liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Tuple

from hexfeed.infra.redis import redis_client
from hexfeed.infra.store import get_document_store
from hexfeed.obs import metrics
from hexfeed.settings import settings

LOGGER = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[Any]]


async def _timed(name: str, probe: Probe, timeout: float) -> Tuple[bool, Dict[str, Any], float]:
	start = perf_counter()
	try:
		await asyncio.wait_for(probe(), timeout=timeout)
	except Exception as exc:
		LOGGER.warning("obs.health.check_failed", exc_info=True, extra={"check": name})
		return False, {"ok": False, "error": type(exc).__name__}, 0.0
	latency = perf_counter() - start
	return True, {"ok": True, "latency_ms": round(latency * 1000, 2)}, latency


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	ok, status, latency = await _timed("redis", redis_client.ping, timeout)
	metrics.mark_redis(ok, latency_seconds=latency if ok else None)
	return status


async def _store_status(timeout: float = 0.5) -> Dict[str, Any]:
	"""One-row recent scan against the posts collection."""

	store = get_document_store()

	def _probe():
		return store.query_recent(settings.posts_collection, sort_field="time", descending=True, limit=1)

	ok, status, latency = await _timed("store", _probe, timeout)
	if settings.store_backend.lower() == "postgres":
		metrics.mark_postgres(ok, latency_seconds=latency if ok else None)
	status["backend"] = settings.store_backend
	return status


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	checks: Dict[str, Any] = {
		"redis": await _redis_status(),
		"store": await _store_status(),
	}
	ok = all(state.get("ok") for state in checks.values())
	return (200 if ok else 503), {"status": "ok" if ok else "degraded", "checks": checks}
