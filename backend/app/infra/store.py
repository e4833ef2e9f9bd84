"""Content store clients.

The content store holds memorial documents and search logs as JSON documents.
Every store answers ``fetch``/``count``/``create`` for a ``FilterExpression``;
each call is bounded by ``settings.store_timeout_seconds`` and failures surface
as ``StoreError``.
"""

from __future__ import annotations

import asyncio
import copy
from collections import deque
from datetime import date, datetime
from difflib import SequenceMatcher
from time import perf_counter
from typing import Any, Awaitable, Iterable, Mapping, Optional, TypeVar

from app.domain.search.expressions import (
	COMPOSITE_FIELDS,
	FIELD_DEFAULTS,
	FIELD_PATHS,
	FilterExpression,
	Predicate,
	TextQuery,
)
from app.domain.search.models import MediaFlags, MemorialRecord, parse_date, parse_datetime
from app.obs import metrics as obs_metrics
from app.settings import settings


T = TypeVar("T")

_MIN_TS = float("-inf")


class StoreError(Exception):
	"""Raised when the content store fails or times out; callers may retry."""

	retryable = True

	def __init__(self, operation: str, reason: str) -> None:
		super().__init__(f"{operation}: {reason}")
		self.operation = operation
		self.reason = reason


class ContentStore:
	"""Base class timing and guarding every store call."""

	name = "abstract"

	def __init__(self, *, timeout: Optional[float] = None) -> None:
		self._timeout = timeout if timeout is not None else settings.store_timeout_seconds

	async def fetch(self, expression: FilterExpression) -> list[dict[str, Any]]:
		return await self._guarded("fetch", self._fetch(expression))

	async def count(self, expression: FilterExpression) -> int:
		return await self._guarded("count", self._count(expression))

	async def create(self, document: Mapping[str, Any]) -> None:
		await self._guarded("create", self._create(dict(document)))

	async def close(self) -> None:
		return None

	async def _fetch(self, expression: FilterExpression) -> list[dict[str, Any]]:
		raise NotImplementedError

	async def _count(self, expression: FilterExpression) -> int:
		raise NotImplementedError

	async def _create(self, document: dict[str, Any]) -> None:
		raise NotImplementedError

	async def _guarded(self, operation: str, call: Awaitable[T]) -> T:
		start = perf_counter()
		try:
			return await asyncio.wait_for(call, timeout=self._timeout)
		except asyncio.TimeoutError as exc:
			obs_metrics.inc_store_error(operation)
			raise StoreError(operation, "timeout") from exc
		except StoreError:
			obs_metrics.inc_store_error(operation)
			raise
		except Exception as exc:
			obs_metrics.inc_store_error(operation)
			raise StoreError(operation, exc.__class__.__name__) from exc
		finally:
			obs_metrics.observe_store(operation, perf_counter() - start)


def _lookup(document: Mapping[str, Any], path: tuple[str, ...]) -> Any:
	value: Any = document
	for key in path:
		if not isinstance(value, Mapping):
			return None
		value = value.get(key)
	return value


def _field_value(document: Mapping[str, Any], field: str) -> Any:
	value = _lookup(document, FIELD_PATHS[field])
	if value in (None, "") and field in FIELD_DEFAULTS:
		return FIELD_DEFAULTS[field]
	return value


def _comparable(raw: Any, target: Any) -> tuple[Any, Any]:
	if isinstance(target, datetime):
		return parse_datetime(raw), target
	if isinstance(target, date):
		return parse_date(raw), target
	return raw, target


def _searchable_fields(document: Mapping[str, Any]) -> list[str]:
	fields = [str(document.get(key) or "") for key in ("name", "subtitle", "description", "biography", "life_story")]
	fields.extend(str(tag) for tag in document.get("tags") or ())
	for entry in document.get("timeline") or ():
		if isinstance(entry, Mapping):
			fields.append(str(entry.get("title") or ""))
			fields.append(str(entry.get("description") or ""))
	return [field.lower() for field in fields if field]


def _tokens(text: str) -> list[str]:
	return [token.strip(".,;:!?\"'()") for token in text.split()]


class _TextMatcher:
	"""Per-document text matching and scoring over the searchable fields."""

	def __init__(self, document: Mapping[str, Any], *, fuzzy_ratio: float) -> None:
		self._name = str(document.get("name") or "").lower()
		self._fields = _searchable_fields(document)
		self._fuzzy_ratio = fuzzy_ratio
		self._tokens: Optional[list[str]] = None

	def _fuzzy(self, term: str) -> float:
		if " " in term:
			return 0.0
		if self._tokens is None:
			self._tokens = [token for field in self._fields for token in _tokens(field) if token]
		best = 0.0
		for token in self._tokens:
			ratio = SequenceMatcher(None, term, token).ratio()
			if ratio > best:
				best = ratio
		return best if best >= self._fuzzy_ratio else 0.0

	def strength(self, term: str, *, fuzzy: bool) -> float:
		if term in self._name:
			return 1.0 if term in _tokens(self._name) else 0.85
		if any(term in field for field in self._fields):
			return 0.6
		if fuzzy:
			return 0.5 * self._fuzzy(term)
		return 0.0

	def score(self, query: TextQuery) -> float:
		"""Mean best strength across groups; 0.0 when any group has no match."""
		strengths = []
		for group in query.groups:
			best = max((self.strength(term, fuzzy=query.fuzzy) for term in group), default=0.0)
			if best <= 0.0:
				return 0.0
			strengths.append(best)
		if not strengths:
			return 1.0
		return min(1.0, sum(strengths) / len(strengths))


def _matches(document: Mapping[str, Any], predicate: Predicate) -> bool:
	op = predicate.op
	value = predicate.value
	if op == "visible":
		if _field_value(document, "privacy") == "public":
			return True
		return value is not None and document.get("owner_id") == value
	if op == "has_media":
		return MediaFlags.parse(document.get("media")).has(str(value))
	if op == "has_coordinates":
		return MemorialRecord.from_document(document).proximity_point() is not None
	if op == "year_range":
		if value.mode == "all" or value.cutoff is None:
			return True
		created = parse_datetime(document.get("_createdAt"))
		if created is None:
			return False
		return created >= value.cutoff if value.mode == "recent" else created < value.cutoff
	if op == "text":
		return True  # scored separately
	paths = [FIELD_PATHS[name] for name in COMPOSITE_FIELDS.get(predicate.field, (predicate.field,))]
	raw_values = [_lookup(document, path) for path in paths]
	if op == "icontains":
		needle = str(value).lower()
		for raw in raw_values:
			candidates = raw if isinstance(raw, (list, tuple)) else [raw]
			if any(candidate and needle in str(candidate).lower() for candidate in candidates):
				return True
		return False
	raw = _field_value(document, predicate.field) if predicate.field in FIELD_PATHS else raw_values[0]
	if op == "overlaps":
		wanted = {str(item).lower() for item in value}
		return any(str(item).lower() in wanted for item in raw or ())
	if op == "eq":
		return raw == value
	if op == "neq":
		return raw != value
	left, right = _comparable(raw, value)
	if left is None:
		return False
	if op == "gte":
		return left >= right
	if op == "lte":
		return left <= right
	if op == "lt":
		return left < right
	raise ValueError(f"unsupported predicate op: {op}")


def _created_ts(document: Mapping[str, Any]) -> float:
	created = parse_datetime(document.get("_createdAt"))
	return created.timestamp() if created else _MIN_TS


def _sort(documents: list[dict[str, Any]], sort_by: Optional[str]) -> list[dict[str, Any]]:
	if sort_by in ("date_desc", "date_asc"):
		dated = [doc for doc in documents if parse_date(doc.get("died"))]
		undated = [doc for doc in documents if not parse_date(doc.get("died"))]
		dated.sort(key=lambda doc: parse_date(doc.get("died")), reverse=sort_by == "date_desc")
		return dated + undated
	if sort_by in ("name_asc", "name_desc"):
		return sorted(
			documents,
			key=lambda doc: str(doc.get("name") or "").lower(),
			reverse=sort_by == "name_desc",
		)
	return sorted(documents, key=lambda doc: (-doc.get("_score", 0.0), -_created_ts(doc)))


class MemoryContentStore(ContentStore):
	"""In-process store used for development and tests."""

	name = "memory"

	def __init__(
		self,
		*,
		log_capacity: Optional[int] = None,
		timeout: Optional[float] = None,
		fuzzy_ratio: Optional[float] = None,
	) -> None:
		super().__init__(timeout=timeout)
		self._lock = asyncio.Lock()
		self._memorials: dict[str, dict[str, Any]] = {}
		self._logs: deque[dict[str, Any]] = deque(maxlen=log_capacity or settings.memory_store_log_capacity)
		self._fuzzy_ratio = fuzzy_ratio if fuzzy_ratio is not None else settings.search_fuzzy_token_ratio

	async def reset(self) -> None:
		async with self._lock:
			self._memorials.clear()
			self._logs.clear()

	async def seed(self, documents: Iterable[Mapping[str, Any]]) -> None:
		async with self._lock:
			for document in documents:
				self._put(dict(document))

	def _put(self, document: dict[str, Any]) -> None:
		if document.get("_type") == "search_log":
			self._logs.append(document)
		else:
			self._memorials[str(document["_id"])] = document

	def _collection(self, doc_type: str) -> list[dict[str, Any]]:
		if doc_type == "search_log":
			return list(self._logs)
		return [doc for doc in self._memorials.values() if doc.get("_type", "memorial") == doc_type]

	def _matching(self, expression: FilterExpression) -> list[dict[str, Any]]:
		text_query = expression.text_query
		results: list[dict[str, Any]] = []
		for document in self._collection(expression.doc_type):
			if not all(_matches(document, predicate) for predicate in expression.predicates):
				continue
			score = 1.0
			if text_query is not None and text_query.groups:
				score = _TextMatcher(document, fuzzy_ratio=self._fuzzy_ratio).score(text_query)
				if score <= 0.0:
					continue
			annotated = copy.deepcopy(document)
			annotated["_score"] = score
			results.append(annotated)
		return results

	async def _fetch(self, expression: FilterExpression) -> list[dict[str, Any]]:
		async with self._lock:
			matches = _sort(self._matching(expression), expression.sort_by)
		start = max(0, expression.offset)
		return matches[start : start + max(0, expression.limit)]

	async def _count(self, expression: FilterExpression) -> int:
		async with self._lock:
			return len(self._matching(expression))

	async def _create(self, document: dict[str, Any]) -> None:
		if not document.get("_id") or not document.get("_type"):
			raise ValueError("document requires _id and _type")
		async with self._lock:
			self._put(copy.deepcopy(document))

	@property
	def log_count(self) -> int:
		return len(self._logs)


_store: Optional[ContentStore] = None


def get_store() -> ContentStore:
	global _store
	if _store is None:
		_store = MemoryContentStore()
	return _store


def set_store(store: Optional[ContentStore]) -> None:
	global _store
	_store = store


async def seed_memory_store(documents: Iterable[Mapping[str, Any]]) -> None:
	store = get_store()
	if not isinstance(store, MemoryContentStore):
		raise RuntimeError("seeding requires the memory content store")
	await store.seed(documents)


async def reset_memory_state() -> None:
	set_store(MemoryContentStore())
