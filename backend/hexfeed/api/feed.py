"""Area feed endpoint."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from hexfeed.api.deps import (
	area_request,
	enforce_rate_limit,
	get_feed_service,
	get_selector,
	set_cache_headers,
)
from hexfeed.domain.geo.cells import clamp_int
from hexfeed.domain.geo.resolution import AreaRequest, SpatialResolutionSelector
from hexfeed.domain.posts.schemas import PostListResponse, PublicPost
from hexfeed.domain.search.service import FeedService
from hexfeed.settings import settings

router = APIRouter(tags=["feed"], dependencies=[Depends(enforce_rate_limit)])


@router.get("/feed", response_model=PostListResponse)
async def feed_endpoint(
	response: Response,
	limit: Optional[int] = Query(default=None),
	area: AreaRequest = Depends(area_request),
	selector: SpatialResolutionSelector = Depends(get_selector),
	service: FeedService = Depends(get_feed_service),
) -> PostListResponse:
	page = clamp_int(limit, settings.feed_default_limit, 1, settings.feed_max_limit)
	selection = selector.require_area(area, merge_legacy=True)
	result = await service.feed(selection, limit=page)
	set_cache_headers(response)
	return PostListResponse(
		posts=[PublicPost.from_domain(post, resolution=selection.resolution) for post in result.posts]
	)
