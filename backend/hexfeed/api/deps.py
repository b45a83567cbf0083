"""Shared FastAPI dependencies: engine wiring, rate limits and response headers."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Query, Request, Response

from hexfeed.domain.geo.resolution import AreaRequest, SpatialResolutionSelector
from hexfeed.domain.posts import policy
from hexfeed.domain.search.config import EngineConfig
from hexfeed.domain.search.service import FeedService, SearchService
from hexfeed.infra.store import get_document_store
from hexfeed.obs.middleware import client_ip
from hexfeed.settings import settings


@lru_cache(maxsize=1)
def _default_engine_config() -> EngineConfig:
	return EngineConfig.from_settings(settings)


def get_engine_config() -> EngineConfig:
	return _default_engine_config()


def get_selector(config: EngineConfig = Depends(get_engine_config)) -> SpatialResolutionSelector:
	return SpatialResolutionSelector(config)


def get_feed_service(config: EngineConfig = Depends(get_engine_config)) -> FeedService:
	return FeedService(config, get_document_store())


def get_search_service(config: EngineConfig = Depends(get_engine_config)) -> SearchService:
	return SearchService(
		config,
		get_document_store(),
		min_query_length=settings.search_min_query_length,
		max_query_length=settings.search_max_query_length,
	)


async def enforce_rate_limit(request: Request) -> None:
	if not settings.rate_limit_enabled:
		return
	await policy.enforce_rate_limit(client_ip(request), kind="api", limit=settings.rate_limit_per_minute)


def area_request(
	h3: Optional[str] = Query(default=None, max_length=8000),
	resolution: Optional[int] = Query(default=None),
	lat: Optional[float] = Query(default=None, ge=-90.0, le=90.0),
	lng: Optional[float] = Query(default=None, ge=-180.0, le=180.0),
	k: Optional[int] = Query(default=None, ge=0, le=50),
	h3r7: Optional[str] = Query(default=None, max_length=8000),
	h3r8: Optional[str] = Query(default=None, max_length=8000),
) -> AreaRequest:
	return AreaRequest(h3=h3, resolution=resolution, lat=lat, lng=lng, k=k, h3r7=h3r7, h3r8=h3r8)


def set_cache_headers(response: Response, *, max_age: Optional[int] = None) -> None:
	age = settings.cache_max_age_seconds if max_age is None else max_age
	response.headers["Cache-Control"] = f"public, max-age={age}"

