"""Batch media lookups for posts that reference a ``mediaId``."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from hexfeed.domain.posts.models import MediaInfo, Post
from hexfeed.infra.store import DocumentStore

logger = logging.getLogger(__name__)


def _str(value: Any) -> Optional[str]:
	return value if isinstance(value, str) and value else None


def media_from_document(media_id: str, doc: Mapping[str, Any]) -> Optional[MediaInfo]:
	"""Project a media document onto the public shape for its kind; unknown kinds yield ``None``."""

	kind = doc.get("type")
	variants = doc.get("variants")
	if not isinstance(variants, Mapping):
		variants = {}
	public_url = _str(doc.get("publicUrl"))
	if kind == "image":
		return MediaInfo(
			kind="image",
			thumbnail=_str(variants.get("thumbnail")),
			medium=_str(variants.get("medium")),
			large=_str(variants.get("large")),
			public=public_url or _str(variants.get("public")),
		)
	if kind == "video":
		duration = doc.get("duration")
		return MediaInfo(
			kind="video",
			thumbnail=_str(doc.get("thumbnail")),
			stream=public_url,
			duration=float(duration) if isinstance(duration, (int, float)) and not isinstance(duration, bool) else None,
		)
	if kind == "live":
		return MediaInfo(
			kind="live",
			media_id=media_id,
			stream=public_url,
			status=_str(doc.get("status")),
			title=_str(doc.get("title")),
		)
	return None


class MediaResolver:
	def __init__(self, store: DocumentStore, *, collection: str) -> None:
		self._store = store
		self._collection = collection

	async def resolve(self, posts: Sequence[Post]) -> list[Post]:
		"""Attach media to ``posts``. Lookup failures leave the posts without media."""

		ids = [post.media_id for post in posts if post.media_id]
		if not ids:
			return list(posts)
		try:
			documents = await self._store.get_many(self._collection, list(dict.fromkeys(ids)))
		except Exception:
			logger.warning(
				"search.media.resolve_failed",
				exc_info=True,
				extra={"media_ids": len(ids)},
			)
			return list(posts)
		media: dict[str, MediaInfo] = {}
		for media_id, doc in documents.items():
			info = media_from_document(media_id, doc)
			if info is not None:
				media[media_id] = info
		return [post.with_media(media.get(post.media_id)) if post.media_id else post for post in posts]
