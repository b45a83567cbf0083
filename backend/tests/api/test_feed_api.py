import h3
import pytest

from hexfeed.obs import metrics
from hexfeed.settings import settings

LAT, LNG = 39.1150, -84.5189


@pytest.mark.asyncio
async def test_feed_requires_a_location(api_client):
	response = await api_client.get("/feed")
	payload = response.json()
	assert response.status_code == 400
	assert payload["error"]["code"] == "invalid_request"
	assert payload["request_id"]
	assert response.headers["X-Request-Id"] == payload["request_id"]


@pytest.mark.asyncio
async def test_feed_by_point(api_client, memory_store, post_factory):
	older = post_factory(content="first")
	newer = post_factory(content="second", mediaId="img-1")
	await memory_store.seed("posts", [older, newer])
	await memory_store.seed("postMedia", [{"_id": "img-1", "type": "image", "variants": {"thumbnail": "t.jpg"}}])

	response = await api_client.get("/feed", params={"lat": LAT, "lng": LNG, "k": 2})
	payload = response.json()

	assert response.status_code == 200
	assert response.headers["Cache-Control"] == "public, max-age=10"
	assert [post["messageId"] for post in payload["posts"]] == [newer["messageId"], older["messageId"]]
	first = payload["posts"][0]
	assert first["username"] == "alice"
	assert first["geolocatorH3"] == h3.latlng_to_cell(LAT, LNG, 7)
	assert first["media"]["type"] == "image"
	assert first["media"]["thumbnail"] == "t.jpg"
	assert "deviceId" not in first


@pytest.mark.asyncio
async def test_feed_by_cells_and_legacy_param(api_client, memory_store, post_factory):
	await memory_store.seed("posts", [post_factory()])
	cell = h3.latlng_to_cell(LAT, LNG, 7)
	fine = h3.cell_to_center_child(cell, 8)

	by_cells = await api_client.get("/feed", params={"h3": cell, "resolution": 7})
	by_legacy = await api_client.get("/feed", params={"h3r8": fine})

	assert by_cells.status_code == 200
	assert by_legacy.status_code == 200
	assert by_cells.json() == by_legacy.json()
	assert len(by_cells.json()["posts"]) == 1


@pytest.mark.asyncio
async def test_feed_unions_legacy_lists(api_client, memory_store, post_factory):
	far = (39.3995, -84.5613)
	near_post = post_factory()
	far_post = post_factory(point=far)
	await memory_store.seed("posts", [near_post, far_post])
	params = {
		"h3r7": h3.latlng_to_cell(LAT, LNG, 7),
		"h3r8": h3.latlng_to_cell(*far, 8),
	}

	response = await api_client.get("/feed", params=params)

	assert response.status_code == 200
	assert {post["messageId"] for post in response.json()["posts"]} == {near_post["messageId"], far_post["messageId"]}

@pytest.mark.asyncio
async def test_feed_hides_posts_without_identity(api_client, memory_store, post_factory):
	await memory_store.seed(
		"posts",
		[
			post_factory(username=None),
			post_factory(username=None, replyLinkHandle="fox-12", replyLinkEntropy="abc", displayName="Fox"),
		],
	)

	response = await api_client.get("/feed", params={"lat": LAT, "lng": LNG})
	posts = response.json()["posts"]

	assert len(posts) == 1
	assert posts[0]["replyLinkHandle"] == "fox-12"
	assert posts[0]["displayName"] == "Fox"
	assert posts[0]["username"] is None


@pytest.mark.asyncio
async def test_feed_limit_is_clamped(api_client, memory_store, post_factory):
	await memory_store.seed("posts", [post_factory() for _ in range(5)])

	response = await api_client.get("/feed", params={"lat": LAT, "lng": LNG, "limit": 0})

	assert response.status_code == 200
	assert len(response.json()["posts"]) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"params",
	[
		{"lat": LAT, "lng": LNG, "limit": "abc"},
		{"lat": 200, "lng": LNG},
		{"lat": LAT, "lng": LNG, "k": -1},
		{"h3": "not-a-cell"},
	],
)
async def test_feed_rejects_bad_params(api_client, params):
	response = await api_client.get("/feed", params=params)
	assert response.status_code == 400
	assert response.json()["error"]["code"] == "invalid_request"


@pytest.mark.asyncio
async def test_feed_total_store_failure(api_client, memory_store):
	memory_store.fail_when = lambda call: True

	response = await api_client.get("/feed", params={"lat": LAT, "lng": LNG})

	assert response.status_code == 500
	assert response.json()["error"]["code"] == "internal_error"


@pytest.mark.asyncio
async def test_feed_partial_failure_still_answers(api_client, memory_store, post_factory):
	await memory_store.seed("posts", [post_factory()])
	center = h3.latlng_to_cell(LAT, LNG, 7)
	memory_store.fail_when = lambda call: call.method == "membership" and center not in call.tokens

	response = await api_client.get("/feed", params={"lat": LAT, "lng": LNG, "k": 3})

	assert response.status_code == 200
	assert len(response.json()["posts"]) == 1


@pytest.mark.asyncio
async def test_request_id_is_echoed(api_client):
	response = await api_client.get("/feed", headers={"X-Request-Id": "req-123"})
	assert response.headers["X-Request-Id"] == "req-123"
	assert response.json()["request_id"] == "req-123"


@pytest.mark.asyncio
async def test_rate_limit(api_client):
	settings.rate_limit_per_minute = 2
	before = metrics.RATE_LIMITED_EVENTS.labels(kind="api")._value.get()
	statuses = []
	for _ in range(3):
		response = await api_client.get("/feed", params={"lat": LAT, "lng": LNG})
		statuses.append(response.status_code)

	assert statuses == [200, 200, 429]
	assert response.json()["error"]["code"] == "rate_limit"
	assert int(response.headers["Retry-After"]) >= 1
	assert metrics.RATE_LIMITED_EVENTS.labels(kind="api")._value.get() == before + 1


@pytest.mark.asyncio
async def test_cors_preflight(api_client):
	response = await api_client.options(
		"/feed",
		headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
	)
	assert response.status_code == 200
	assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
	assert response.headers["access-control-max-age"] == "600"
