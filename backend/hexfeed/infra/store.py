"""Document store adapters.

The query engine only relies on the narrow primitives exposed here: a
membership lookup over a bounded token list, an equality lookup, array
containment, an unfiltered recent scan and a batch get by id. Every query
is sorted on a single field and capped by a result limit.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Sequence

from hexfeed.infra import postgres

logger = logging.getLogger(__name__)

Document = dict[str, Any]
Equality = tuple[str, Any]

_FIELD_RE = re.compile(r"^[A-Za-z0-9_]+(\.[A-Za-z0-9_]+)*$")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
	collection TEXT NOT NULL,
	doc_id TEXT NOT NULL,
	data JSONB NOT NULL,
	PRIMARY KEY (collection, doc_id)
);
CREATE INDEX IF NOT EXISTS documents_collection_time_idx
	ON documents (collection, (data->>'time') DESC);
"""


class StoreQueryError(Exception):
	"""Raised when a query violates the store's shape limits."""


class DocumentStore(Protocol):
	max_membership_values: int

	async def query_membership(
		self,
		collection: str,
		field: str,
		tokens: Sequence[str],
		*,
		sort_field: str,
		descending: bool = True,
		limit: int,
		equality: Optional[Equality] = None,
	) -> list[Document]: ...

	async def query_equality(
		self,
		collection: str,
		field: str,
		value: Any,
		*,
		sort_field: str,
		descending: bool = True,
		limit: int,
	) -> list[Document]: ...

	async def query_contains(
		self,
		collection: str,
		field: str,
		value: str,
		*,
		sort_field: str,
		descending: bool = True,
		limit: int,
		equality: Optional[Equality] = None,
	) -> list[Document]: ...

	async def query_recent(
		self,
		collection: str,
		*,
		sort_field: str,
		descending: bool = True,
		limit: int,
	) -> list[Document]: ...

	async def get_many(self, collection: str, ids: Sequence[str]) -> dict[str, Document]: ...


def _field_path(name: str) -> list[str]:
	if not _FIELD_RE.match(name):
		raise StoreQueryError(f"invalid_field:{name}")
	return name.split(".")


def _check_tokens(tokens: Sequence[str], ceiling: int) -> list[str]:
	values = list(tokens)
	if not values:
		raise StoreQueryError("empty_membership")
	if len(values) > ceiling:
		raise StoreQueryError(f"membership_too_large:{len(values)}>{ceiling}")
	return values


def _check_limit(limit: int) -> int:
	if limit <= 0:
		raise StoreQueryError("limit_must_be_positive")
	return int(limit)


class PostgresDocumentStore:
	"""JSONB-backed store on a single ``documents`` table."""

	def __init__(self, *, max_membership_values: int = 30) -> None:
		self.max_membership_values = max_membership_values

	async def ensure_schema(self) -> None:
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			await conn.execute(_SCHEMA)
		logger.info("store.schema.ensured", extra={"table": "documents"})

	@staticmethod
	def _decode(raw: Any) -> Document:
		if isinstance(raw, (bytes, str)):
			return json.loads(raw)
		return dict(raw)

	async def _select(
		self,
		collection: str,
		*,
		where: list[tuple[str, list[Any]]],
		sort_field: str,
		descending: bool,
		limit: int,
	) -> list[Document]:
		params: list[Any] = [collection]
		clauses = ["collection = $1"]
		for template, values in where:
			placeholders = []
			for value in values:
				params.append(value)
				placeholders.append(f"${len(params)}")
			clauses.append(template.format(*placeholders))
		params.append(_field_path(sort_field))
		sort_param = f"${len(params)}"
		params.append(_check_limit(limit))
		limit_param = f"${len(params)}"
		direction = "DESC" if descending else "ASC"
		sql = (
			"SELECT data FROM documents WHERE "
			+ " AND ".join(clauses)
			+ f" ORDER BY (data #>> {sort_param}::text[]) {direction} NULLS LAST LIMIT {limit_param}"
		)
		pool = await postgres.get_pool()
		rows = await pool.fetch(sql, *params)
		return [self._decode(row["data"]) for row in rows]

	@staticmethod
	def _equality_clause(equality: Optional[Equality]) -> list[tuple[str, list[Any]]]:
		if equality is None:
			return []
		name, value = equality
		return [("(data #>> {0}::text[]) = {1}", [_field_path(name), str(value)])]

	async def query_membership(self, collection, field, tokens, *, sort_field, descending=True, limit, equality=None):
		values = _check_tokens(tokens, self.max_membership_values)
		where = [("(data #>> {0}::text[]) = ANY({1}::text[])", [_field_path(field), values])]
		where.extend(self._equality_clause(equality))
		return await self._select(collection, where=where, sort_field=sort_field, descending=descending, limit=limit)

	async def query_equality(self, collection, field, value, *, sort_field, descending=True, limit):
		where = self._equality_clause((field, value))
		return await self._select(collection, where=where, sort_field=sort_field, descending=descending, limit=limit)

	async def query_contains(self, collection, field, value, *, sort_field, descending=True, limit, equality=None):
		where = [("(data #> {0}::text[]) ? {1}", [_field_path(field), str(value)])]
		where.extend(self._equality_clause(equality))
		return await self._select(collection, where=where, sort_field=sort_field, descending=descending, limit=limit)

	async def query_recent(self, collection, *, sort_field, descending=True, limit):
		return await self._select(collection, where=[], sort_field=sort_field, descending=descending, limit=limit)

	async def get_many(self, collection, ids):
		unique = [value for value in dict.fromkeys(ids) if value]
		if not unique:
			return {}
		pool = await postgres.get_pool()
		rows = await pool.fetch(
			"SELECT doc_id, data FROM documents WHERE collection = $1 AND doc_id = ANY($2::text[])",
			collection,
			unique,
		)
		return {str(row["doc_id"]): self._decode(row["data"]) for row in rows}


@dataclass(slots=True)
class StoreCall:
	"""One query issued against the in-memory store."""

	method: str
	collection: str
	field: Optional[str] = None
	tokens: tuple[Any, ...] = ()
	equality: Optional[Equality] = None
	limit: int = 0


def lookup(document: Mapping[str, Any], path: str) -> Any:
	current: Any = document
	for part in path.split("."):
		if not isinstance(current, Mapping):
			return None
		current = current.get(part)
	return current


@dataclass
class MemoryDocumentStore:
	"""In-memory store with the same query semantics as the Postgres adapter.

	``fail_when`` and ``delay_for`` inject per-call failures and latency.
	"""

	max_membership_values: int = 10
	fail_when: Optional[Callable[[StoreCall], bool]] = None
	delay_for: Optional[Callable[[StoreCall], float]] = None
	calls: list[StoreCall] = field(default_factory=list)
	max_in_flight: int = 0
	_collections: dict[str, dict[str, Document]] = field(default_factory=dict)
	_in_flight: int = 0
	_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

	async def reset(self) -> None:
		async with self._lock:
			self._collections.clear()
			self.calls.clear()
			self.max_in_flight = 0

	async def seed(self, collection: str, documents: Iterable[Document]) -> None:
		for document in documents:
			doc_id = document.get("_id") or f"{document.get('deviceId')}:{document.get('messageId')}"
			await self.upsert(collection, str(doc_id), document)

	async def upsert(self, collection: str, doc_id: str, document: Document) -> None:
		async with self._lock:
			payload = {key: value for key, value in document.items() if key != "_id"}
			self._collections.setdefault(collection, {})[doc_id] = payload

	async def delete(self, collection: str, doc_id: str) -> None:
		async with self._lock:
			self._collections.get(collection, {}).pop(doc_id, None)

	async def _run(self, call: StoreCall, matches: Callable[[Document], bool], sort_field: str, descending: bool) -> list[Document]:
		self.calls.append(call)
		self._in_flight += 1
		self.max_in_flight = max(self.max_in_flight, self._in_flight)
		try:
			if self.delay_for is not None:
				delay = self.delay_for(call)
				if delay > 0:
					await asyncio.sleep(delay)
			else:
				await asyncio.sleep(0)
			if self.fail_when is not None and self.fail_when(call):
				raise StoreQueryError(f"injected_failure:{call.method}")
			async with self._lock:
				documents = [dict(doc) for doc in self._collections.get(call.collection, {}).values() if matches(doc)]
		finally:
			self._in_flight -= 1

		def _sort_key(doc: Document) -> tuple[bool, str]:
			value = lookup(doc, sort_field)
			present = isinstance(value, str)
			return (present if descending else not present, value if present else "")

		documents.sort(key=_sort_key, reverse=descending)
		return documents[: _check_limit(call.limit)]

	@staticmethod
	def _equals(doc: Document, equality: Optional[Equality]) -> bool:
		if equality is None:
			return True
		name, value = equality
		return lookup(doc, name) == value

	async def query_membership(self, collection, field, tokens, *, sort_field, descending=True, limit, equality=None):
		_field_path(field)
		values = set(_check_tokens(tokens, self.max_membership_values))
		call = StoreCall("membership", collection, field, tuple(tokens), equality, limit)
		return await self._run(
			call,
			lambda doc: lookup(doc, field) in values and self._equals(doc, equality),
			sort_field,
			descending,
		)

	async def query_equality(self, collection, field, value, *, sort_field, descending=True, limit):
		_field_path(field)
		call = StoreCall("equality", collection, field, (value,), None, limit)
		return await self._run(call, lambda doc: lookup(doc, field) == value, sort_field, descending)

	async def query_contains(self, collection, field, value, *, sort_field, descending=True, limit, equality=None):
		_field_path(field)
		call = StoreCall("contains", collection, field, (value,), equality, limit)

		def _matches(doc: Document) -> bool:
			items = lookup(doc, field)
			return isinstance(items, list) and value in items and self._equals(doc, equality)

		return await self._run(call, _matches, sort_field, descending)

	async def query_recent(self, collection, *, sort_field, descending=True, limit):
		call = StoreCall("recent", collection, None, (), None, limit)
		return await self._run(call, lambda doc: True, sort_field, descending)

	async def get_many(self, collection, ids):
		self.calls.append(StoreCall("get_many", collection, None, tuple(ids)))
		if self.fail_when is not None and self.fail_when(self.calls[-1]):
			raise StoreQueryError("injected_failure:get_many")
		async with self._lock:
			docs = self._collections.get(collection, {})
			return {doc_id: dict(docs[doc_id]) for doc_id in ids if doc_id in docs}


_store: Optional[DocumentStore] = None


def build_document_store(backend: str, *, max_membership_values: int) -> DocumentStore:
	if backend.lower() == "memory":
		return MemoryDocumentStore(max_membership_values=max_membership_values)
	return PostgresDocumentStore(max_membership_values=max_membership_values)


def set_document_store(store: Optional[DocumentStore]) -> None:
	global _store
	_store = store


def get_document_store() -> DocumentStore:
	global _store
	if _store is None:
		from hexfeed.settings import settings

		_store = build_document_store(settings.store_backend, max_membership_values=settings.membership_limit)
	return _store
