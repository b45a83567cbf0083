"""Service layer for the area feed and post search."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

from hexfeed.domain.geo.resolution import AreaRequest, SpatialResolutionSelector, SpatialSelection
from hexfeed.domain.posts.media import MediaResolver
from hexfeed.domain.posts.models import Post
from hexfeed.domain.search import reducer, tokenizer
from hexfeed.domain.search.config import EngineConfig
from hexfeed.domain.search.exceptions import InvalidRequest
from hexfeed.domain.search.executor import ChunkedQueryExecutor, ChunkQuery, ExecutionReport
from hexfeed.domain.search.reducer import EntityFilters
from hexfeed.infra.store import DocumentStore
from hexfeed.obs import metrics as obs_metrics


@dataclass(slots=True)
class QueryResult:
	kind: str
	posts: list[Post]
	report: ExecutionReport


@dataclass(slots=True)
class StructuredQuery:
	hashtags: list[str] = field(default_factory=list)
	mentions: list[str] = field(default_factory=list)
	text: Optional[str] = None
	h3_cells: list[str] = field(default_factory=list)
	resolution: Optional[int] = None
	match_all: bool = False
	limit: int = 50
	max_scan: int = 500


class _EngineService:
	def __init__(self, config: EngineConfig, store: DocumentStore) -> None:
		self.config = config
		self.store = store
		self.selector = SpatialResolutionSelector(config)
		self.executor = ChunkedQueryExecutor(store, config)
		self.media = MediaResolver(store, collection=config.media_collection)

	async def _finish(
		self,
		kind: str,
		report: ExecutionReport,
		*,
		limit: int,
		filters: Optional[EntityFilters],
		started: float,
	) -> QueryResult:
		posts = reducer.reduce(report.documents, page_limit=limit, filters=filters)
		posts = await self.media.resolve(posts)
		obs_metrics.observe_query_latency(kind, time.perf_counter() - started)
		obs_metrics.observe_results(kind, len(posts))
		return QueryResult(kind=kind, posts=posts, report=report)


class FeedService(_EngineService):
	async def feed(self, area: SpatialSelection, *, limit: int) -> QueryResult:
		"""Most recent visible posts within ``area``."""

		if not area.cells:
			raise InvalidRequest("query requires a location")
		started = time.perf_counter()
		obs_metrics.inc_query("feed")
		report = await self.executor.execute(
			area.cells,
			field=area.field,
			per_chunk_limit=self.config.overfetch_limit(limit),
		)
		return await self._finish("feed", report, limit=limit, filters=None, started=started)


class SearchService(_EngineService):
	def __init__(
		self,
		config: EngineConfig,
		store: DocumentStore,
		*,
		min_query_length: int = 2,
		max_query_length: int = 80,
	) -> None:
		super().__init__(config, store)
		self.min_query_length = min_query_length
		self.max_query_length = max_query_length

	def _chunk_limit(self, area: SpatialSelection, limit: int, max_scan: int) -> int:
		return self.config.search_chunk_limit(limit, max_scan, self.executor.chunk_count(area.cells))

	async def search(
		self,
		q: Optional[str],
		*,
		area: Optional[SpatialSelection] = None,
		limit: int,
		max_scan: int,
	) -> QueryResult:
		"""Free-text search, optionally bounded to ``area``.

		A query that is exactly one ``@name`` takes the username fast path: an
		equality lookup on the username field instead of a scan plus substring
		filter. Usernames are stored lowercase, so the name is folded first.
		"""

		raw = (q or "").strip()
		if not (self.min_query_length <= len(raw) <= self.max_query_length):
			raise InvalidRequest(f"q must be {self.min_query_length}..{self.max_query_length} characters")
		parsed = tokenizer.parse(raw)
		username = parsed.single_mention()
		if username is not None:
			return await self._search_username(username.lower(), area=area, limit=limit, max_scan=max_scan)

		started = time.perf_counter()
		kind = "search_text"
		obs_metrics.inc_query(kind)
		if area is not None and area.cells:
			report = await self.executor.execute(
				area.cells,
				field=area.field,
				per_chunk_limit=self._chunk_limit(area, limit, max_scan),
			)
		else:
			report = await self.executor.run([self._recent(max(max_scan, limit))])
		filters = EntityFilters.build(
			text=parsed.text,
			hashtags=parsed.hashtags,
			mentions=parsed.mentions,
			locations=[location.name for location in parsed.locations],
		)
		return await self._finish(kind, report, limit=limit, filters=filters, started=started)

	async def _search_username(
		self,
		username: str,
		*,
		area: Optional[SpatialSelection],
		limit: int,
		max_scan: int,
	) -> QueryResult:
		started = time.perf_counter()
		kind = "search_username"
		obs_metrics.inc_query(kind)
		equality = (self.config.username_field, username)
		if area is not None and area.cells:
			report = await self.executor.execute(
				area.cells,
				field=area.field,
				equality=equality,
				per_chunk_limit=self._chunk_limit(area, limit, max_scan),
			)
		else:
			store = self.store
			config = self.config

			def _query():
				return store.query_equality(
					config.posts_collection,
					config.username_field,
					username,
					sort_field=config.sort_field,
					descending=True,
					limit=max(max_scan, limit),
				)

			report = await self.executor.run([_query])
		return await self._finish(kind, report, limit=limit, filters=None, started=started)

	def _recent(self, limit: int) -> ChunkQuery:
		store = self.store
		config = self.config

		def _query():
			return store.query_recent(
				config.posts_collection,
				sort_field=config.sort_field,
				descending=True,
				limit=limit,
			)

		return _query

	def _contains(self, field_name: str, value: str, *, limit: int, equality=None) -> ChunkQuery:
		store = self.store
		config = self.config

		def _query():
			return store.query_contains(
				config.posts_collection,
				field_name,
				value,
				sort_field=config.sort_field,
				descending=True,
				limit=limit,
				equality=equality,
			)

		return _query

	def _structured_area(self, query: StructuredQuery) -> Optional[SpatialSelection]:
		if not query.h3_cells:
			return None
		request = AreaRequest(h3=",".join(query.h3_cells), resolution=query.resolution)
		return self.selector.resolve_area(request)

	async def search_structured(self, query: StructuredQuery) -> QueryResult:
		"""Entity search, issuing the most selective store query the filters allow.

		Strategy order: hashtag within cells (one query per cell), hashtag,
		mention, cells, then a bounded recent scan for text-only queries. All
		filters are re-applied in memory afterwards.
		"""

		hashtags = [tag.lower() for tag in query.hashtags if tag]
		mentions = [name for name in query.mentions if name]
		text = (query.text or "").strip()
		if len(text) < self.min_query_length:
			text = ""
		area = self._structured_area(query)
		if not (hashtags or mentions or text or area):
			raise InvalidRequest("at least one search filter is required (hashtags, mentions, text or location)")

		started = time.perf_counter()
		kind = "search_structured"
		obs_metrics.inc_query(kind)
		limit = query.limit
		scan = max(query.max_scan, limit)

		queries: Sequence[ChunkQuery]
		if hashtags and area is not None:
			cells = list(area.cells[: self.config.max_geo_cells_per_structured_query])
			per_cell = max(limit, math.ceil(scan / len(cells)))
			queries = [
				self._contains(self.config.hashtags_field, hashtags[0], limit=per_cell, equality=(area.field, cell))
				for cell in cells
			]
			report = await self.executor.run(queries)
		elif hashtags:
			report = await self.executor.run([self._contains(self.config.hashtags_field, hashtags[0], limit=scan)])
		elif mentions:
			report = await self.executor.run([self._contains(self.config.mentions_field, mentions[0], limit=scan)])
		elif area is not None:
			report = await self.executor.execute(
				area.cells,
				field=area.field,
				per_chunk_limit=self._chunk_limit(area, limit, scan),
			)
		else:
			report = await self.executor.run([self._recent(scan)])

		filters = EntityFilters.build(
			text=text or None,
			hashtags=hashtags,
			mentions=mentions,
			cells=area.cells if area is not None else (),
			resolution=area.resolution if area is not None else None,
			match_all=query.match_all,
		)
		return await self._finish(kind, report, limit=limit, filters=filters, started=started)
