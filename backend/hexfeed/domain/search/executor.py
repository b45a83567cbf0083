"""Chunked fan-out over the document store.

A key set larger than the store's membership ceiling is split into
ceil(N / M) chunk queries that run in waves of bounded concurrency under a
single per-request deadline. Chunk failures degrade recall only: they are
logged and counted, and the request fails only when no chunk completed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence

from hexfeed.domain.posts.models import RawDocument
from hexfeed.domain.search.config import EngineConfig
from hexfeed.domain.search.exceptions import UpstreamTotalFailure
from hexfeed.infra.store import DocumentStore, Equality
from hexfeed.obs import metrics

logger = logging.getLogger(__name__)

ChunkQuery = Callable[[], Awaitable[Sequence[Mapping[str, Any]]]]


@dataclass(slots=True)
class ExecutionReport:
	documents: list[RawDocument] = field(default_factory=list)
	chunks_total: int = 0
	chunks_failed: int = 0
	chunks_timed_out: int = 0

	@property
	def chunks_completed(self) -> int:
		return self.chunks_total - self.chunks_failed - self.chunks_timed_out

	@property
	def timed_out(self) -> bool:
		return self.chunks_timed_out > 0

	@property
	def partial(self) -> bool:
		return self.chunks_failed > 0 or self.chunks_timed_out > 0


def partition(keys: Iterable[str], size: int) -> list[list[str]]:
	"""Split ``keys`` (deduplicated, order kept) into lists of at most ``size``."""

	unique = list(dict.fromkeys(keys))
	size = max(1, size)
	return [unique[start : start + size] for start in range(0, len(unique), size)]


class ChunkedQueryExecutor:
	def __init__(self, store: DocumentStore, config: EngineConfig) -> None:
		self._store = store
		self._config = config
		self._ceiling = min(config.membership_limit, store.max_membership_values)
		if config.membership_limit > store.max_membership_values:
			logger.warning(
				"feed.executor.membership_clamped",
				extra={"configured": config.membership_limit, "store_max": store.max_membership_values},
			)

	@property
	def membership_ceiling(self) -> int:
		return self._ceiling

	def chunk_count(self, keys: Iterable[str]) -> int:
		return len(partition(keys, self._ceiling))

	async def execute(
		self,
		keys: Iterable[str],
		*,
		field: str,
		per_chunk_limit: int,
		equality: Optional[Equality] = None,
		concurrency: Optional[int] = None,
		collection: Optional[str] = None,
		timeout: Optional[float] = None,
	) -> ExecutionReport:
		"""Membership query over ``keys`` on ``field``, sorted by time descending."""

		target = collection or self._config.posts_collection
		queries: list[ChunkQuery] = []
		for chunk in partition(keys, self._ceiling):
			queries.append(self._membership_query(target, field, chunk, per_chunk_limit, equality))
		return await self.run(queries, concurrency=concurrency, timeout=timeout)

	def _membership_query(
		self,
		collection: str,
		field: str,
		chunk: list[str],
		limit: int,
		equality: Optional[Equality],
	) -> ChunkQuery:
		def _query() -> Awaitable[Sequence[Mapping[str, Any]]]:
			return self._store.query_membership(
				collection,
				field,
				chunk,
				sort_field=self._config.sort_field,
				descending=True,
				limit=limit,
				equality=equality,
			)

		return _query

	async def run(
		self,
		queries: Sequence[ChunkQuery],
		*,
		concurrency: Optional[int] = None,
		timeout: Optional[float] = None,
	) -> ExecutionReport:
		"""Run prepared chunk queries in waves under one deadline and collect their union."""

		report = ExecutionReport(chunks_total=len(queries))
		if not queries:
			return report
		width = max(1, concurrency or self._config.chunk_concurrency)
		budget = self._config.request_timeout_seconds if timeout is None else timeout
		loop = asyncio.get_running_loop()
		deadline = loop.time() + budget

		for start in range(0, len(queries), width):
			remaining = deadline - loop.time()
			if remaining <= 0:
				report.chunks_timed_out += len(queries) - start
				break
			tasks = [asyncio.ensure_future(query()) for query in queries[start : start + width]]
			_, pending = await asyncio.wait(tasks, timeout=remaining)
			for task in pending:
				task.cancel()
			if pending:
				await asyncio.gather(*pending, return_exceptions=True)
			for offset, task in enumerate(tasks):
				if task in pending:
					report.chunks_timed_out += 1
					continue
				error = task.exception()
				if error is not None:
					report.chunks_failed += 1
					logger.warning(
						"feed.executor.chunk_failed",
						extra={"chunk": start + offset, "error": type(error).__name__, "detail": str(error)},
					)
					continue
				report.documents.extend(self._narrow(task.result()))
			if pending:
				# later waves never start once the deadline passed
				report.chunks_timed_out += max(0, len(queries) - (start + width))
				break

		metrics.observe_chunks(report.chunks_total)
		metrics.inc_chunk("ok", report.chunks_completed)
		metrics.inc_chunk("failed", report.chunks_failed)
		metrics.inc_chunk("timeout", report.chunks_timed_out)
		if report.timed_out:
			logger.warning(
				"feed.executor.timeout",
				extra={
					"timeout_s": budget,
					"completed": report.chunks_completed,
					"timed_out": report.chunks_timed_out,
				},
			)
		if report.chunks_completed == 0:
			raise UpstreamTotalFailure()
		if report.chunks_failed:
			logger.info(
				"feed.executor.partial_failure",
				extra={"failed": report.chunks_failed, "total": report.chunks_total},
			)
		return report

	@staticmethod
	def _narrow(rows: Sequence[Mapping[str, Any]]) -> list[RawDocument]:
		return [RawDocument.from_store(row) for row in rows if isinstance(row, Mapping)]
