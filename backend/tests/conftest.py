import sys
from pathlib import Path

import h3
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from hexfeed.domain.search.config import EngineConfig
from hexfeed.infra import postgres
from hexfeed.infra.store import MemoryDocumentStore, set_document_store
from hexfeed.main import app
from hexfeed.settings import settings

# Findlay Market, Cincinnati
CENTER = (39.1150, -84.5189)
# roughly 40 km away, outside any small neighborhood of CENTER
FAR = (39.3995, -84.5613)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from hexfeed.infra.redis import redis_client, set_redis_client

	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		await client.flushall()
		set_redis_client(original)


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def memory_store():
	store = MemoryDocumentStore(max_membership_values=10)
	set_document_store(store)
	try:
		yield store
	finally:
		set_document_store(None)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Keep settings mutated by a test from leaking into the next one."""
	original = {
		"rate_limit_enabled": settings.rate_limit_enabled,
		"rate_limit_per_minute": settings.rate_limit_per_minute,
		"obs_metrics_public": settings.obs_metrics_public,
		"obs_admin_token": settings.obs_admin_token,
		"store_backend": settings.store_backend,
	}
	try:
		yield
	finally:
		for key, value in original.items():
			setattr(settings, key, value)
		app.dependency_overrides.clear()


@pytest.fixture
def engine_config():
	return EngineConfig()


@pytest.fixture
def post_factory():
	"""Build store payloads shaped like the write path produces them."""

	counter = {"n": 0}

	def _make(
		*,
		username="alice",
		message_id=None,
		time=None,
		content="hello there",
		point=CENTER,
		hashtags=(),
		mentions=(),
		**extra,
	):
		counter["n"] += 1
		n = counter["n"]
		lat, lng = point
		doc = {
			"deviceId": extra.pop("device_id", f"device-{username or 'anon'}"),
			"messageId": message_id or f"m{n:04d}",
			"time": time or f"2025-01-01T00:{n // 60 % 60:02d}:{n % 60:02d}Z",
			"content": content,
			"contentType": "text/plain",
			"geolocator": {
				"h3_res6": h3.latlng_to_cell(lat, lng, 6),
				"h3_res7": h3.latlng_to_cell(lat, lng, 7),
			},
			"entities": {"hashtags": list(hashtags), "mentions": list(mentions), "urls": []},
		}
		if username is not None:
			doc["username"] = username
		doc.update(extra)
		return doc

	return _make


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
