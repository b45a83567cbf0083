import h3
import pytest

LAT, LNG = 39.1150, -84.5189
FAR = (39.3995, -84.5613)


@pytest.mark.asyncio
async def test_search_rejects_short_query(api_client):
	response = await api_client.get("/search", params={"q": "a"})
	assert response.status_code == 400
	assert response.json()["error"]["code"] == "invalid_request"


@pytest.mark.asyncio
async def test_search_by_username(api_client, memory_store, post_factory):
	await memory_store.seed(
		"posts",
		[post_factory(username="alice"), post_factory(username="bob", content="@alice hi", mentions=["alice"])],
	)

	response = await api_client.get("/search", params={"q": "@alice"})
	payload = response.json()

	assert response.status_code == 200
	assert [post["username"] for post in payload["posts"]] == ["alice"]
	assert response.headers["Cache-Control"] == "public, max-age=10"


@pytest.mark.asyncio
async def test_search_text_within_area(api_client, memory_store, post_factory):
	await memory_store.seed(
		"posts",
		[post_factory(content="Pizza night"), post_factory(content="pizza far away", point=FAR)],
	)

	response = await api_client.get("/search", params={"q": "pizza", "lat": LAT, "lng": LNG, "maxScan": 100})

	assert response.status_code == 200
	assert [post["content"] for post in response.json()["posts"]] == ["Pizza night"]


@pytest.mark.asyncio
async def test_structured_search(api_client, memory_store, post_factory):
	cell = h3.latlng_to_cell(LAT, LNG, 7)
	await memory_store.seed(
		"posts",
		[
			post_factory(content="market #food", hashtags=["food"]),
			post_factory(content="elsewhere #food", hashtags=["food"], point=FAR),
		],
	)

	response = await api_client.post(
		"/search",
		json={"hashtags": ["Food"], "location": {"h3Cells": [cell], "resolution": 7}, "limit": 10},
	)
	payload = response.json()

	assert response.status_code == 200
	assert [post["content"] for post in payload["posts"]] == ["market #food"]
	assert payload["posts"][0]["geolocatorH3"] == cell


@pytest.mark.asyncio
async def test_structured_search_requires_filter(api_client):
	response = await api_client.post("/search", json={})
	assert response.status_code == 400
	assert response.json()["error"]["code"] == "invalid_request"


@pytest.mark.asyncio
async def test_structured_search_rejects_bad_match(api_client):
	response = await api_client.post("/search", json={"hashtags": ["x"], "match": "some"})
	assert response.status_code == 400
