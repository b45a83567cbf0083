"""Spatial resolution selection over the hexagonal cell hierarchy.

Tiers run coarse to fine: 6 (metro, ~8.5 km edge), 7 (district, ~3.2 km),
8 (neighborhood, ~1.2 km) and 9 (block, ~330 m). Large radius hints pick a
coarse tier with a small ring, small hints a fine tier, so the candidate
cell count stays bounded whatever the requested radius.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import h3

from hexfeed.domain.geo.cells import cells_at_resolution, clamp_int, parse_cell_list
from hexfeed.domain.search.config import EngineConfig, TierRule, tier_field
from hexfeed.domain.search.exceptions import InvalidRequest

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_HINT = 2
LEGACY_DISTRICT_RESOLUTION = 7
LEGACY_NEIGHBORHOOD_RESOLUTION = 8


@dataclass(frozen=True, slots=True)
class SpatialSelection:
	resolution: int
	center_cell: Optional[str]
	cells: tuple[str, ...]
	source: str = "cells"

	@property
	def field(self) -> str:
		return tier_field(self.resolution)


@dataclass(slots=True)
class AreaRequest:
	"""Raw area inputs as supplied by a caller. Every field is optional."""

	h3: Optional[str] = None
	resolution: Optional[int] = None
	lat: Optional[float] = None
	lng: Optional[float] = None
	k: Optional[int] = None
	h3r7: Optional[str] = None
	h3r8: Optional[str] = None

	def has_legacy(self) -> bool:
		return bool((self.h3r7 or "").strip() or (self.h3r8 or "").strip())


AreaPredicate = Callable[[AreaRequest], bool]
AreaResolverFn = Callable[[AreaRequest], Optional[SpatialSelection]]


@dataclass(frozen=True, slots=True)
class AreaResolver:
	name: str
	applies: AreaPredicate
	resolve: AreaResolverFn
	legacy: bool = False
	# only consulted when the caller asks for legacy lists to be unioned
	merge: bool = False


class SpatialResolutionSelector:
	"""Pick a tier and a bounded cell neighborhood for a point or cell list."""

	def __init__(self, config: EngineConfig) -> None:
		self._config = config
		self._rules: tuple[TierRule, ...] = tuple(sorted(config.tier_rules, key=lambda rule: -rule.min_k))
		self._resolvers: list[AreaResolver] = [
			AreaResolver("cells", lambda req: bool((req.h3 or "").strip()), self._from_cells),
			AreaResolver("point", lambda req: req.lat is not None and req.lng is not None, self._from_point),
			AreaResolver(
				"legacy_merged",
				lambda req: bool((req.h3r7 or "").strip() and (req.h3r8 or "").strip()),
				self._from_legacy_merged,
				legacy=True,
				merge=True,
			),
			AreaResolver("legacy_r7", lambda req: bool((req.h3r7 or "").strip()), self._from_legacy_r7, legacy=True),
			AreaResolver("legacy_r8", lambda req: bool((req.h3r8 or "").strip()), self._from_legacy_r8, legacy=True),
		]

	@property
	def resolvers(self) -> Sequence[AreaResolver]:
		return tuple(self._resolvers)

	def rule_for(self, k: int) -> TierRule:
		for rule in self._rules:
			if k >= rule.min_k:
				return rule
		return self._rules[-1]

	def nearest_indexed(self, resolution: int) -> int:
		"""Closest indexed tier; ties go to the coarser tier (parents are cheap)."""

		return min(self._config.indexed_resolutions, key=lambda res: (abs(res - resolution), res))

	def select(
		self,
		*,
		k: int,
		point: Optional[tuple[float, float]] = None,
		center_cell: Optional[str] = None,
		source: str = "point",
	) -> SpatialSelection:
		"""Return the tier, center cell and candidate cells for a radius hint."""

		if point is None:
			if center_cell is None or not h3.is_valid_cell(center_cell):
				raise InvalidRequest("query requires a location")
			point = h3.cell_to_latlng(center_cell)
		lat, lng = point
		if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
			raise InvalidRequest("lat/lng out of range")
		rule = self.rule_for(max(int(k), 0))
		center = h3.latlng_to_cell(lat, lng, rule.resolution)
		cells = list(h3.grid_disk(center, rule.ring_for(k)))
		return self.to_indexed(SpatialSelection(rule.resolution, center, tuple(cells), source))

	def to_indexed(self, selection: SpatialSelection) -> SpatialSelection:
		target = self.nearest_indexed(selection.resolution)
		if target == selection.resolution:
			return selection
		cells = cells_at_resolution(selection.cells, target, max_cells=self._config.max_input_cells)
		center = None
		if selection.center_cell is not None:
			center = cells_at_resolution([selection.center_cell], target, max_cells=1)[0]
		return SpatialSelection(target, center, tuple(cells), selection.source)

	def resolve_area(self, request: AreaRequest, *, merge_legacy: bool = False) -> Optional[SpatialSelection]:
		"""Evaluate the resolvers in priority order; the first non-empty selection wins.

		With ``merge_legacy`` both legacy lists are unioned when both are sent;
		otherwise the district list outranks the neighborhood list.
		"""

		for resolver in self._resolvers:
			if resolver.merge and not merge_legacy:
				continue
			if not resolver.applies(request):
				continue
			selection = resolver.resolve(request)
			if selection is None or not selection.cells:
				continue
			if not resolver.legacy and request.has_legacy():
				logger.warning(
					"feed.selector.legacy_ignored",
					extra={"winner": resolver.name, "cells": len(selection.cells)},
				)
			return selection
		return None

	def require_area(self, request: AreaRequest, *, merge_legacy: bool = False) -> SpatialSelection:
		selection = self.resolve_area(request, merge_legacy=merge_legacy)
		if selection is None:
			raise InvalidRequest("h3, lat/lng or h3r7/h3r8 is required")
		return selection

	def _cells_for_tier(self, raw: Optional[str], resolution: int, source: str) -> Optional[SpatialSelection]:
		parsed = parse_cell_list(raw, self._config.max_input_cells)
		if not parsed:
			return None
		target = self.nearest_indexed(resolution)
		cells = cells_at_resolution(parsed, target, max_cells=self._config.max_input_cells)
		return SpatialSelection(target, None, tuple(cells), source)

	def _from_cells(self, request: AreaRequest) -> Optional[SpatialSelection]:
		indexed = self._config.indexed_resolutions
		resolution = clamp_int(request.resolution, self._config.default_resolution, min(indexed), max(indexed))
		return self._cells_for_tier(request.h3, resolution, "cells")

	def _from_point(self, request: AreaRequest) -> Optional[SpatialSelection]:
		k = DEFAULT_RADIUS_HINT if request.k is None else request.k
		return self.select(k=k, point=(float(request.lat), float(request.lng)), source="point")

	def _from_legacy_r7(self, request: AreaRequest) -> Optional[SpatialSelection]:
		return self._cells_for_tier(request.h3r7, LEGACY_DISTRICT_RESOLUTION, "legacy_r7")

	def _from_legacy_r8(self, request: AreaRequest) -> Optional[SpatialSelection]:
		return self._cells_for_tier(request.h3r8, LEGACY_NEIGHBORHOOD_RESOLUTION, "legacy_r8")

	def _from_legacy_merged(self, request: AreaRequest) -> Optional[SpatialSelection]:
		limit = self._config.max_input_cells
		parsed = parse_cell_list(request.h3r7, limit) + parse_cell_list(request.h3r8, limit)
		if not parsed:
			return None
		target = self.nearest_indexed(LEGACY_DISTRICT_RESOLUTION)
		cells = cells_at_resolution(parsed, target, max_cells=limit)
		return SpatialSelection(target, None, tuple(cells), "legacy_merged")
