import httpx
import pytest

from hexfeed.api.geocode import get_geocoder
from hexfeed.domain.geo.geocode import Geocoder
from hexfeed.main import app


def _override(handler):
	async def _geocoder():
		async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
			yield Geocoder(http=http, url="https://geocode.test/search", user_agent="hexfeed-tests")

	app.dependency_overrides[get_geocoder] = _geocoder


@pytest.mark.asyncio
async def test_geocode_returns_first_match(api_client):
	seen = {}

	def handler(request: httpx.Request) -> httpx.Response:
		seen["params"] = dict(request.url.params)
		seen["agent"] = request.headers.get("User-Agent")
		return httpx.Response(200, json=[{"lat": "39.115", "lon": "-84.519", "display_name": "Findlay Market"}])

	_override(handler)
	response = await api_client.get("/geocode", params={"q": "Findlay Market"})

	assert response.status_code == 200
	assert response.json() == {"lat": 39.115, "lon": -84.519, "displayName": "Findlay Market"}
	assert response.headers["Cache-Control"] == "public, max-age=86400"
	assert seen["params"] == {"format": "json", "q": "Findlay Market", "limit": "1"}
	assert seen["agent"] == "hexfeed-tests"


@pytest.mark.asyncio
async def test_geocode_not_found(api_client):
	_override(lambda request: httpx.Response(200, json=[]))
	response = await api_client.get("/geocode", params={"q": "nowhere at all"})
	assert response.status_code == 404
	assert response.json()["error"]["code"] == "not_found"


@pytest.mark.asyncio
async def test_geocode_upstream_failure(api_client):
	_override(lambda request: httpx.Response(503, text="busy"))
	response = await api_client.get("/geocode", params={"q": "Findlay Market"})
	assert response.status_code == 502
	assert response.json()["error"]["code"] == "geocode_failed"


@pytest.mark.asyncio
async def test_geocode_transport_error(api_client):
	def handler(request):
		raise httpx.ConnectError("down", request=request)

	_override(handler)
	response = await api_client.get("/geocode", params={"q": "Findlay Market"})
	assert response.status_code == 502


@pytest.mark.asyncio
async def test_geocode_requires_query(api_client):
	_override(lambda request: httpx.Response(200, json=[]))
	response = await api_client.get("/geocode", params={"q": " "})
	assert response.status_code == 400
	assert response.json()["error"]["code"] == "invalid_request"
