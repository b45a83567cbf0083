"""Tunables for the feed/search query engine.

Built once from settings and passed to each engine component at
construction so tests can exercise edge values without touching globals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - type hints only
	from hexfeed.settings import Settings


@dataclass(frozen=True, slots=True)
class TierRule:
	"""Maps radius hints ``k >= min_k`` onto one resolution tier."""

	min_k: int
	resolution: int
	ring_divisor: int = 1
	min_ring: int = 1
	max_ring: int = 1

	def ring_for(self, k: int) -> int:
		ring = math.ceil(max(k, 0) / max(self.ring_divisor, 1))
		return max(self.min_ring, min(self.max_ring, ring))


DEFAULT_TIER_RULES: tuple[TierRule, ...] = (
	TierRule(min_k=5, resolution=6, ring_divisor=5, min_ring=1, max_ring=3),
	TierRule(min_k=2, resolution=7, ring_divisor=1, min_ring=1, max_ring=3),
	TierRule(min_k=1, resolution=8, ring_divisor=1, min_ring=1, max_ring=1),
	TierRule(min_k=0, resolution=9, ring_divisor=1, min_ring=1, max_ring=1),
)


def tier_field(resolution: int) -> str:
	return f"geolocator.h3_res{resolution}"


@dataclass(frozen=True, slots=True)
class EngineConfig:
	membership_limit: int = 10
	chunk_concurrency: int = 5
	overfetch_multiplier: int = 4
	overfetch_floor: int = 50
	overfetch_ceiling: int = 200
	search_chunk_ceiling: int = 2000
	request_timeout_seconds: float = 8.0
	max_input_cells: int = 200
	indexed_resolutions: tuple[int, ...] = (6, 7)
	default_resolution: int = 7
	max_geo_cells_per_structured_query: int = 50
	posts_collection: str = "posts"
	media_collection: str = "postMedia"
	sort_field: str = "time"
	username_field: str = "username"
	hashtags_field: str = "entities.hashtags"
	mentions_field: str = "entities.mentions"
	tier_rules: tuple[TierRule, ...] = field(default=DEFAULT_TIER_RULES)

	def __post_init__(self) -> None:
		if self.membership_limit < 1:
			raise ValueError("membership_limit must be >= 1")
		if self.chunk_concurrency < 1:
			raise ValueError("chunk_concurrency must be >= 1")
		if not self.indexed_resolutions:
			raise ValueError("indexed_resolutions must not be empty")
		if not self.tier_rules:
			raise ValueError("tier_rules must not be empty")

	@classmethod
	def from_settings(cls, settings: "Settings") -> "EngineConfig":
		indexed = tuple(settings.indexed_resolutions) or (settings.default_resolution,)
		return cls(
			membership_limit=settings.membership_limit,
			chunk_concurrency=settings.chunk_concurrency,
			overfetch_multiplier=settings.overfetch_multiplier,
			overfetch_floor=settings.overfetch_floor,
			overfetch_ceiling=settings.overfetch_ceiling,
			search_chunk_ceiling=settings.search_chunk_ceiling,
			request_timeout_seconds=settings.request_timeout_seconds,
			max_input_cells=settings.max_input_cells,
			indexed_resolutions=indexed,
			default_resolution=settings.default_resolution,
			max_geo_cells_per_structured_query=settings.max_geo_cells_per_structured_query,
			posts_collection=settings.posts_collection,
			media_collection=settings.media_collection,
		)

	def with_overrides(self, **changes) -> "EngineConfig":
		return replace(self, **changes)

	def overfetch_limit(self, page_limit: int) -> int:
		"""Per-chunk limit for a page: scaled by the multiplier, floored, capped."""

		scaled = max(page_limit * self.overfetch_multiplier, self.overfetch_floor)
		return max(page_limit, min(self.overfetch_ceiling, scaled))

	def search_chunk_limit(self, page_limit: int, max_scan: int, chunk_count: int) -> int:
		"""Per-chunk limit for search scans: the scan budget split across chunks, never below overfetch."""

		share = math.ceil(max_scan / max(chunk_count, 1))
		return min(self.search_chunk_ceiling, max(share, self.overfetch_limit(page_limit)))
