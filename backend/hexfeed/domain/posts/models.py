"""Typed post documents.

Store payloads are loosely shaped; ``RawDocument.from_store`` is the single
place where they are narrowed. Fields with an unexpected type are read as
missing rather than trusted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Literal, Mapping, Optional

MediaKind = Literal["image", "video", "live"]

_TIER_KEY_RE = re.compile(r"^h3_res(\d{1,2})$")


def _str(value: Any) -> Optional[str]:
	return value if isinstance(value, str) else None


def _number(value: Any) -> Optional[float]:
	if isinstance(value, bool):
		return None
	if isinstance(value, (int, float)):
		return float(value)
	return None


def _str_tuple(value: Any) -> tuple[str, ...]:
	if not isinstance(value, (list, tuple)):
		return ()
	return tuple(item for item in value if isinstance(item, str))


@dataclass(frozen=True, slots=True)
class RawDocument:
	"""A post document as read from the store, before visibility checks."""

	message_id: Optional[str] = None
	time: Optional[str] = None
	content: Optional[str] = None
	owner_key: Optional[str] = None
	username: Optional[str] = None
	content_type: Optional[str] = None
	media_id: Optional[str] = None
	category: Optional[str] = None
	reply_link_handle: Optional[str] = None
	reply_link_entropy: Optional[str] = None
	display_name: Optional[str] = None
	accuracy_m: Optional[float] = None
	geo_tokens: Mapping[int, str] = field(default_factory=dict)
	hashtags: tuple[str, ...] = ()
	mentions: tuple[str, ...] = ()
	urls: tuple[str, ...] = ()

	@classmethod
	def from_store(cls, payload: Mapping[str, Any]) -> "RawDocument":
		geolocator = payload.get("geolocator")
		geo_tokens: dict[int, str] = {}
		accuracy = None
		if isinstance(geolocator, Mapping):
			for key, value in geolocator.items():
				match = _TIER_KEY_RE.match(str(key))
				if match and isinstance(value, str) and value:
					geo_tokens[int(match.group(1))] = value
			accuracy = _number(geolocator.get("accuracyM"))
		entities = payload.get("entities")
		if not isinstance(entities, Mapping):
			entities = {}
		return cls(
			message_id=_str(payload.get("messageId")),
			time=_str(payload.get("time")),
			content=_str(payload.get("content")),
			owner_key=_str(payload.get("deviceId")),
			username=_str(payload.get("username")),
			content_type=_str(payload.get("contentType")),
			media_id=_str(payload.get("mediaId")) or None,
			category=_str(payload.get("category")),
			reply_link_handle=_str(payload.get("replyLinkHandle")),
			reply_link_entropy=_str(payload.get("replyLinkEntropy")),
			display_name=_str(payload.get("displayName")),
			accuracy_m=accuracy,
			geo_tokens=geo_tokens,
			hashtags=_str_tuple(entities.get("hashtags")),
			mentions=_str_tuple(entities.get("mentions")),
			urls=_str_tuple(entities.get("urls")),
		)

	def geo_token(self, resolution: int) -> Optional[str]:
		return self.geo_tokens.get(resolution)


@dataclass(frozen=True, slots=True)
class MediaInfo:
	kind: MediaKind
	media_id: Optional[str] = None
	thumbnail: Optional[str] = None
	medium: Optional[str] = None
	large: Optional[str] = None
	public: Optional[str] = None
	stream: Optional[str] = None
	duration: Optional[float] = None
	status: Optional[str] = None
	title: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Post:
	"""A visible post: renderable identity, message id and valid time are guaranteed."""

	message_id: str
	time: str
	content: str
	username: Optional[str] = None
	owner_key: Optional[str] = None
	content_type: str = "text/plain"
	media_id: Optional[str] = None
	category: Optional[str] = None
	reply_link_handle: Optional[str] = None
	reply_link_entropy: Optional[str] = None
	display_name: Optional[str] = None
	accuracy_m: Optional[float] = None
	geo_tokens: Mapping[int, str] = field(default_factory=dict)
	hashtags: tuple[str, ...] = ()
	mentions: tuple[str, ...] = ()
	media: Optional[MediaInfo] = None

	@property
	def identity(self) -> str:
		"""Public identity used for attribution and deduplication."""

		return self.username or self.reply_link_handle or ""

	@property
	def dedup_key(self) -> tuple[str, str, str]:
		return (self.identity, self.message_id, self.time)

	def with_media(self, media: Optional[MediaInfo]) -> "Post":
		return replace(self, media=media)
