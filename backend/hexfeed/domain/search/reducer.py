"""Turns raw chunk results into one ordered, deduplicated page of posts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from hexfeed.domain.posts import policy
from hexfeed.domain.posts.models import Post, RawDocument


@dataclass(frozen=True, slots=True)
class EntityFilters:
	"""In-memory predicates for the search paths.

	``match_all`` switches hashtag/mention matching from "shares at least one"
	to "carries every one".
	"""

	text: Optional[str] = None
	hashtags: tuple[str, ...] = ()
	mentions: tuple[str, ...] = ()
	locations: tuple[str, ...] = ()
	cells: frozenset[str] = frozenset()
	resolution: Optional[int] = None
	match_all: bool = False

	@classmethod
	def build(
		cls,
		*,
		text: Optional[str] = None,
		hashtags: Iterable[str] = (),
		mentions: Iterable[str] = (),
		locations: Iterable[str] = (),
		cells: Iterable[str] = (),
		resolution: Optional[int] = None,
		match_all: bool = False,
	) -> "EntityFilters":
		needle = (text or "").strip().casefold() or None
		return cls(
			text=needle,
			hashtags=tuple(dict.fromkeys(tag.lower() for tag in hashtags if tag)),
			mentions=tuple(dict.fromkeys(name for name in mentions if name)),
			locations=tuple(dict.fromkeys(place.strip().casefold() for place in locations if place and place.strip())),
			cells=frozenset(cells),
			resolution=resolution,
			match_all=match_all,
		)

	def is_empty(self) -> bool:
		return not (self.text or self.hashtags or self.mentions or self.locations or self.cells)

	def _entities_match(self, wanted: tuple[str, ...], present: Iterable[str]) -> bool:
		if not wanted:
			return True
		have = set(present)
		if self.match_all:
			return all(item in have for item in wanted)
		return any(item in have for item in wanted)

	def matches(self, post: Post) -> bool:
		if self.text is not None or self.locations:
			name = post.username or post.display_name or ""
			haystack = f"{name} {post.content}".casefold()
			if self.text is not None and self.text not in haystack:
				return False
			# a location matches when any pinned place name appears in the post
			if self.locations and not any(place in haystack for place in self.locations):
				return False
		if not self._entities_match(self.hashtags, (tag.lower() for tag in post.hashtags)):
			return False
		if not self._entities_match(self.mentions, post.mentions):
			return False
		if self.cells:
			token = post.geo_tokens.get(self.resolution) if self.resolution is not None else None
			if token not in self.cells:
				return False
		return True


def _tiebreak(post: Post) -> tuple[str, str, str, str]:
	return (post.message_id, post.identity, post.owner_key or "", post.content)


def reduce(
	raw_docs: Iterable[RawDocument],
	*,
	page_limit: int,
	filters: Optional[EntityFilters] = None,
) -> list[Post]:
	"""Filter, order, deduplicate and truncate ``raw_docs``.

	Ordering is ``time`` descending (lexicographic), then message id, identity,
	owner and content ascending, so the page does not depend on the order in
	which chunks completed. Deduplication runs over that total order, which
	makes "first occurrence wins" deterministic too.
	"""

	posts: list[Post] = []
	for raw in raw_docs:
		post = policy.to_post(raw)
		if post is None:
			continue
		if filters is not None and not filters.matches(post):
			continue
		posts.append(post)

	posts.sort(key=_tiebreak)
	posts.sort(key=lambda post: post.time, reverse=True)

	page: list[Post] = []
	seen: set[tuple[str, str, str]] = set()
	for post in posts:
		key = post.dedup_key
		if key in seen:
			continue
		seen.add(key)
		page.append(post)
		if len(page) >= page_limit:
			break
	return page
