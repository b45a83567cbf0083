import logging

import h3
import pytest

from hexfeed.domain.search.config import EngineConfig
from hexfeed.domain.search.exceptions import UpstreamTotalFailure
from hexfeed.domain.search.executor import ChunkedQueryExecutor, partition
from hexfeed.infra.store import MemoryDocumentStore

CENTER = (39.1150, -84.5189)
FIELD = "geolocator.h3_res7"


def _cells(count):
	center = h3.latlng_to_cell(*CENTER, 7)
	cells = list(h3.grid_disk(center, 4))
	assert len(cells) >= count
	return cells[:count]


async def _seed_one_per_cell(store, post_factory, cells):
	docs = []
	for cell in cells:
		lat, lng = h3.cell_to_latlng(cell)
		docs.append(post_factory(point=(lat, lng)))
	await store.seed("posts", docs)
	return docs


def test_partition_dedupes_and_keeps_order():
	assert partition(["a", "b", "a", "c", "d"], 2) == [["a", "b"], ["c", "d"]]
	assert partition([], 3) == []


@pytest.mark.parametrize("count,expected", [(1, 1), (10, 1), (11, 2), (19, 2), (37, 4)])
def test_chunk_count_is_ceiling(memory_store, count, expected):
	executor = ChunkedQueryExecutor(memory_store, EngineConfig(membership_limit=10))
	assert executor.chunk_count(_cells(count)) == expected


def test_membership_limit_clamped_to_store(caplog):
	store = MemoryDocumentStore(max_membership_values=4)
	with caplog.at_level(logging.WARNING):
		executor = ChunkedQueryExecutor(store, EngineConfig(membership_limit=10))
	assert executor.membership_ceiling == 4
	assert any(record.getMessage() == "feed.executor.membership_clamped" for record in caplog.records)


@pytest.mark.asyncio
async def test_every_chunk_respects_ceiling_and_union_is_complete(memory_store, post_factory):
	cells = _cells(37)
	docs = await _seed_one_per_cell(memory_store, post_factory, cells)
	executor = ChunkedQueryExecutor(memory_store, EngineConfig(membership_limit=10))

	report = await executor.execute(cells, field=FIELD, per_chunk_limit=50)

	membership_calls = [call for call in memory_store.calls if call.method == "membership"]
	assert len(membership_calls) == 4
	assert all(len(call.tokens) <= 10 for call in membership_calls)
	assert report.chunks_total == 4
	assert report.chunks_completed == 4
	assert not report.partial
	assert {doc.message_id for doc in report.documents} == {doc["messageId"] for doc in docs}


@pytest.mark.asyncio
async def test_concurrency_is_bounded(memory_store):
	memory_store.delay_for = lambda call: 0.01
	executor = ChunkedQueryExecutor(memory_store, EngineConfig(membership_limit=10, chunk_concurrency=2))

	report = await executor.execute(_cells(37), field=FIELD, per_chunk_limit=10)

	assert report.chunks_completed == 4
	assert memory_store.max_in_flight == 2


@pytest.mark.asyncio
async def test_partial_failure_keeps_other_chunks(memory_store, post_factory, caplog):
	cells = _cells(20)
	await _seed_one_per_cell(memory_store, post_factory, cells)
	doomed = set(cells[:10])
	memory_store.fail_when = lambda call: call.method == "membership" and doomed.intersection(call.tokens)
	executor = ChunkedQueryExecutor(memory_store, EngineConfig(membership_limit=10))

	with caplog.at_level(logging.INFO):
		report = await executor.execute(cells, field=FIELD, per_chunk_limit=50)

	assert report.chunks_failed == 1
	assert report.chunks_completed == 1
	assert report.partial
	assert len(report.documents) == 10
	messages = [record.getMessage() for record in caplog.records]
	assert "feed.executor.chunk_failed" in messages
	assert "feed.executor.partial_failure" in messages


@pytest.mark.asyncio
async def test_total_failure_raises(memory_store):
	memory_store.fail_when = lambda call: True
	executor = ChunkedQueryExecutor(memory_store, EngineConfig(membership_limit=10))

	with pytest.raises(UpstreamTotalFailure) as excinfo:
		await executor.execute(_cells(15), field=FIELD, per_chunk_limit=10)
	assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_slow_chunk_times_out_and_degrades(memory_store, post_factory, caplog):
	cells = _cells(20)
	await _seed_one_per_cell(memory_store, post_factory, cells)
	slow = set(cells[10:])
	memory_store.delay_for = lambda call: 5.0 if slow.intersection(call.tokens) else 0.0
	executor = ChunkedQueryExecutor(memory_store, EngineConfig(membership_limit=10))

	with caplog.at_level(logging.WARNING):
		report = await executor.execute(cells, field=FIELD, per_chunk_limit=50, timeout=0.2)

	assert report.timed_out
	assert report.chunks_timed_out == 1
	assert report.chunks_completed == 1
	assert len(report.documents) == 10
	assert any(record.getMessage() == "feed.executor.timeout" for record in caplog.records)


@pytest.mark.asyncio
async def test_waves_after_deadline_never_start(memory_store):
	memory_store.delay_for = lambda call: 5.0 if call.tokens[0] == first else 0.0
	cells = _cells(30)
	first = cells[0]
	executor = ChunkedQueryExecutor(memory_store, EngineConfig(membership_limit=10, chunk_concurrency=1))

	with pytest.raises(UpstreamTotalFailure):
		await executor.execute(cells, field=FIELD, per_chunk_limit=10, timeout=0.1)

	assert len([call for call in memory_store.calls if call.method == "membership"]) == 1


@pytest.mark.asyncio
async def test_no_keys_is_an_empty_report(memory_store):
	executor = ChunkedQueryExecutor(memory_store, EngineConfig())
	report = await executor.execute([], field=FIELD, per_chunk_limit=10)
	assert report.chunks_total == 0
	assert report.documents == []
	assert memory_store.calls == []
