"""Post search endpoints: free-text ``GET /search`` and structured ``POST /search``."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from hexfeed.api.deps import (
	area_request,
	enforce_rate_limit,
	get_search_service,
	get_selector,
	set_cache_headers,
)
from hexfeed.domain.geo.cells import clamp_int
from hexfeed.domain.geo.resolution import AreaRequest, SpatialResolutionSelector
from hexfeed.domain.posts.schemas import PostListResponse, PublicPost, StructuredSearchRequest
from hexfeed.domain.search.service import SearchService, StructuredQuery
from hexfeed.settings import settings

router = APIRouter(tags=["search"], dependencies=[Depends(enforce_rate_limit)])


def _limits(limit: Optional[int], max_scan: Optional[int]) -> tuple[int, int]:
	page = clamp_int(limit, settings.feed_default_limit, 1, settings.feed_max_limit)
	scan = clamp_int(
		max_scan,
		settings.search_default_max_scan,
		settings.search_min_max_scan,
		settings.search_max_max_scan,
	)
	return page, scan


@router.get("/search", response_model=PostListResponse)
async def search_endpoint(
	response: Response,
	q: str = Query(default=""),
	limit: Optional[int] = Query(default=None),
	max_scan: Optional[int] = Query(default=None, alias="maxScan"),
	area: AreaRequest = Depends(area_request),
	selector: SpatialResolutionSelector = Depends(get_selector),
	service: SearchService = Depends(get_search_service),
) -> PostListResponse:
	page, scan = _limits(limit, max_scan)
	selection = selector.resolve_area(area)
	result = await service.search(q, area=selection, limit=page, max_scan=scan)
	set_cache_headers(response)
	resolution = selection.resolution if selection is not None else None
	return PostListResponse(posts=[PublicPost.from_domain(post, resolution=resolution) for post in result.posts])


@router.post("/search", response_model=PostListResponse)
async def structured_search_endpoint(
	payload: StructuredSearchRequest,
	response: Response,
	service: SearchService = Depends(get_search_service),
) -> PostListResponse:
	page, scan = _limits(payload.limit, payload.max_scan)
	location = payload.location
	query = StructuredQuery(
		hashtags=list(payload.hashtags),
		mentions=list(payload.mentions),
		text=payload.text,
		h3_cells=list(location.h3_cells) if location is not None else [],
		resolution=location.resolution if location is not None else None,
		match_all=payload.match == "all",
		limit=page,
		max_scan=scan,
	)
	result = await service.search_structured(query)
	set_cache_headers(response)
	return PostListResponse(
		posts=[PublicPost.from_domain(post, resolution=query.resolution) for post in result.posts]
	)
