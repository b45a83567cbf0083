"""Geocoding proxy endpoint."""

from __future__ import annotations

from typing import AsyncIterator

import httpx
from fastapi import APIRouter, Depends, Query, Response

from hexfeed.api.deps import enforce_rate_limit, set_cache_headers
from hexfeed.domain.geo.geocode import Geocoder
from hexfeed.domain.posts.schemas import GeocodeResponse
from hexfeed.domain.search.exceptions import EngineError
from hexfeed.obs import metrics as obs_metrics
from hexfeed.settings import settings

router = APIRouter(tags=["geocode"], dependencies=[Depends(enforce_rate_limit)])

GEOCODE_CACHE_SECONDS = 86400


async def get_geocoder() -> AsyncIterator[Geocoder]:
	async with httpx.AsyncClient(timeout=settings.geocode_timeout_seconds) as http:
		yield Geocoder(
			http=http,
			url=settings.geocode_url,
			user_agent=settings.geocode_user_agent,
			request_timeout=settings.geocode_timeout_seconds,
		)


@router.get("/geocode", response_model=GeocodeResponse)
async def geocode_endpoint(
	response: Response,
	q: str = Query(default=""),
	geocoder: Geocoder = Depends(get_geocoder),
) -> GeocodeResponse:
	try:
		result = await geocoder.lookup(q)
	except EngineError as exc:
		obs_metrics.inc_geocode(exc.code)
		raise
	obs_metrics.inc_geocode("ok")
	set_cache_headers(response, max_age=GEOCODE_CACHE_SECONDS)
	return GeocodeResponse(lat=result.lat, lon=result.lon, display_name=result.display_name)
