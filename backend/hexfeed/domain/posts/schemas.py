"""Pydantic schemas for the feed, search and geocode APIs."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from hexfeed.domain.posts.models import MediaInfo, Post


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MediaOut(_CamelModel):
	type: Literal["image", "video", "live"]
	media_id: Optional[str] = None
	thumbnail: Optional[str] = None
	medium: Optional[str] = None
	large: Optional[str] = None
	public: Optional[str] = None
	stream: Optional[str] = None
	duration: Optional[float] = None
	status: Optional[str] = None
	title: Optional[str] = None

	@classmethod
	def from_domain(cls, media: MediaInfo) -> "MediaOut":
		return cls(
			type=media.kind,
			media_id=media.media_id,
			thumbnail=media.thumbnail,
			medium=media.medium,
			large=media.large,
			public=media.public,
			stream=media.stream,
			duration=media.duration,
			status=media.status,
			title=media.title,
		)


class PublicPost(_CamelModel):
	username: Optional[str] = None
	message_id: str
	time: str
	content: str
	content_type: str = "text/plain"
	category: Optional[str] = None
	media: Optional[MediaOut] = None
	geolocator_h3: Optional[str] = None
	accuracy_m: Optional[float] = None
	reply_link_handle: Optional[str] = None
	reply_link_entropy: Optional[str] = None
	display_name: Optional[str] = None

	@classmethod
	def from_domain(cls, post: Post, *, resolution: Optional[int] = None) -> "PublicPost":
		token = None
		if resolution is not None:
			token = post.geo_tokens.get(resolution)
		if token is None and post.geo_tokens:
			token = post.geo_tokens.get(max(post.geo_tokens))
		return cls(
			username=post.username,
			message_id=post.message_id,
			time=post.time,
			content=post.content,
			content_type=post.content_type,
			category=post.category,
			media=MediaOut.from_domain(post.media) if post.media is not None else None,
			geolocator_h3=token,
			accuracy_m=post.accuracy_m,
			reply_link_handle=post.reply_link_handle,
			reply_link_entropy=post.reply_link_entropy,
			display_name=post.display_name,
		)


class PostListResponse(BaseModel):
	posts: list[PublicPost]


class LocationFilter(_CamelModel):
	h3_cells: list[str] = Field(default_factory=list, max_length=200)
	resolution: Optional[int] = None


class StructuredSearchRequest(_CamelModel):
	hashtags: list[str] = Field(default_factory=list, max_length=20)
	mentions: list[str] = Field(default_factory=list, max_length=20)
	text: Optional[str] = Field(default=None, max_length=200)
	location: Optional[LocationFilter] = None
	match: Literal["any", "all"] = "any"
	limit: Optional[int] = None
	max_scan: Optional[int] = None


class GeocodeResponse(_CamelModel):
	lat: float
	lon: float
	display_name: str
