"""Visibility rules and rate limits for the read paths."""

from __future__ import annotations

import re
from typing import Optional

from hexfeed.domain.posts.models import Post, RawDocument
from hexfeed.domain.search.exceptions import RateLimited
from hexfeed.infra.rate_limit import hit
from hexfeed.obs import metrics

_ISO_TIME_RE = re.compile(
	r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$"
)


def is_valid_time(value: Optional[str]) -> bool:
	return isinstance(value, str) and bool(_ISO_TIME_RE.match(value.strip()))


def has_identity_link(doc: RawDocument) -> bool:
	return bool((doc.reply_link_handle or "").strip() and (doc.reply_link_entropy or "").strip())


def display_identity(doc: RawDocument) -> Optional[str]:
	"""Username when present, else the anonymous link handle; ``None`` when neither renders."""

	username = (doc.username or "").strip()
	if username:
		return username
	if has_identity_link(doc):
		return (doc.reply_link_handle or "").strip()
	return None


def is_visible(doc: RawDocument) -> bool:
	"""A post reaches readers only with an identity, a message id, a valid time and text content."""

	if display_identity(doc) is None:
		return False
	if not (doc.message_id or "").strip():
		return False
	if not is_valid_time(doc.time):
		return False
	return doc.content is not None


def to_post(doc: RawDocument) -> Optional[Post]:
	if not is_visible(doc):
		return None
	username = (doc.username or "").strip() or None
	anonymous = username is None
	return Post(
		message_id=doc.message_id or "",
		time=(doc.time or "").strip(),
		content=doc.content or "",
		username=username,
		owner_key=doc.owner_key,
		content_type=doc.content_type or "text/plain",
		media_id=doc.media_id,
		category=doc.category,
		reply_link_handle=doc.reply_link_handle.strip() if anonymous and doc.reply_link_handle else None,
		reply_link_entropy=doc.reply_link_entropy.strip() if anonymous and doc.reply_link_entropy else None,
		display_name=doc.display_name if anonymous else None,
		accuracy_m=doc.accuracy_m,
		geo_tokens=dict(doc.geo_tokens),
		hashtags=doc.hashtags,
		mentions=doc.mentions,
	)


async def enforce_rate_limit(client_key: str, *, kind: str, limit: int) -> None:
	"""Raise ``RateLimited`` once ``client_key`` exceeds ``limit`` requests per minute."""

	counted = await hit(kind, client_key, limit=limit)
	if not counted.allowed:
		metrics.inc_rate_limited(kind)
		raise RateLimited(retry_after=counted.retry_after())
