"""Postgres-backed content store over a JSONB ``documents`` table.

Expressions compile to SQL with ``$n`` placeholders; user values only ever
travel in the parameter list.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, Optional

import asyncpg

from app.domain.search.expressions import (
	COMPOSITE_FIELDS,
	FIELD_DEFAULTS,
	FIELD_PATHS,
	FilterExpression,
	Predicate,
	TextQuery,
)
from app.domain.search.models import parse_datetime
from app.infra.store import ContentStore
from app.settings import settings

SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS pg_trgm;
CREATE TABLE IF NOT EXISTS documents (
	id TEXT PRIMARY KEY,
	doc_type TEXT NOT NULL,
	created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
	body JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS documents_type_created_idx ON documents (doc_type, created_at DESC);
CREATE INDEX IF NOT EXISTS documents_name_trgm_idx ON documents USING gin (lower(body->>'name') gin_trgm_ops);
"""

_SEARCH_TEXT = (
	"lower(concat_ws(' ', body->>'name', body->>'subtitle', body->>'description', "
	"body->>'biography', body->>'life_story', body->>'tags', "
	"jsonb_path_query_array(body, '$.timeline[*].*')::text))"
)
_NAME = "lower(coalesce(body->>'name', ''))"
_TAG_ELEMENTS = "jsonb_array_elements_text(COALESCE(body->'tags', '[]'::jsonb)) AS t(tag)"

_ORDER_BY = {
	None: "_score DESC, created_at DESC",
	"relevance": "_score DESC, created_at DESC",
	"date_desc": "left(body->>'died', 10) DESC NULLS LAST, created_at DESC",
	"date_asc": "left(body->>'died', 10) ASC NULLS LAST, created_at DESC",
	"name_asc": f"{_NAME} ASC, created_at DESC",
	"name_desc": f"{_NAME} DESC, created_at DESC",
}


def escape_like(value: str) -> str:
	return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _path_sql(field: str) -> str:
	if field == "created_at":
		return "created_at"
	path = FIELD_PATHS[field]
	if len(path) == 1:
		column = f"(body->>'{path[0]}')"
	else:
		column = f"(body #>> '{{{','.join(path)}}}')"
	default = FIELD_DEFAULTS.get(field)
	if default is not None:
		return f"COALESCE(NULLIF({column}, ''), '{default}')"
	return column


_PRIVACY = _path_sql("privacy")


class _Compiler:
	"""Accumulates bound parameters while rendering predicates."""

	def __init__(self) -> None:
		self.params: list[Any] = []

	def bind(self, value: Any) -> str:
		self.params.append(value)
		return f"${len(self.params)}"

	def predicate(self, predicate: Predicate) -> Optional[str]:
		op = predicate.op
		value = predicate.value
		if op == "visible":
			if value is None:
				return f"{_PRIVACY} = 'public'"
			return f"({_PRIVACY} = 'public' OR (body->>'owner_id') = {self.bind(str(value))})"
		if op == "text":
			return self.text(value)
		if op == "has_media":
			key = self.bind(str(value))
			return f"COALESCE(body->'media'->>{key}, 'false') NOT IN ('false', '[]', '', 'null')"
		if op == "has_coordinates":
			return (
				"((body #> '{died_at,coordinates,lat}') IS NOT NULL AND (body #> '{died_at,coordinates,lng}') IS NOT NULL"
				" OR (body #> '{resting_place,coordinates,lat}') IS NOT NULL"
				" AND (body #> '{resting_place,coordinates,lng}') IS NOT NULL)"
			)
		if op == "year_range":
			if value.mode == "all" or value.cutoff is None:
				return None
			comparison = ">=" if value.mode == "recent" else "<"
			return f"created_at {comparison} {self.bind(value.cutoff)}"
		if op == "icontains":
			pattern = self.bind(f"%{escape_like(str(value))}%")
			clauses = []
			for name in COMPOSITE_FIELDS.get(predicate.field, (predicate.field,)):
				if name == "tags":
					clauses.append(f"EXISTS (SELECT 1 FROM {_TAG_ELEMENTS} WHERE t.tag ILIKE {pattern} ESCAPE '\\')")
				else:
					clauses.append(f"{_path_sql(name)} ILIKE {pattern} ESCAPE '\\'")
			return "(" + " OR ".join(clauses) + ")"
		if op == "overlaps":
			wanted = self.bind([str(item).lower() for item in value])
			return f"EXISTS (SELECT 1 FROM {_TAG_ELEMENTS} WHERE lower(t.tag) = ANY({wanted}::text[]))"
		column = _path_sql(predicate.field)
		if predicate.field == "died" and isinstance(value, date):
			column = "left(body->>'died', 10)"
			value = value.isoformat()
		if op == "eq":
			return f"{column} = {self.bind(value)}"
		if op == "neq":
			return f"{column} IS DISTINCT FROM {self.bind(value)}"
		operators = {"gte": ">=", "lte": "<=", "lt": "<"}
		if op in operators:
			return f"{column} {operators[op]} {self.bind(value)}"
		raise ValueError(f"unsupported predicate op: {op}")

	def text(self, query: TextQuery) -> Optional[str]:
		groups = []
		for group in query.groups:
			alternatives = []
			for term in group:
				pattern = self.bind(f"%{escape_like(term)}%")
				clause = f"{_SEARCH_TEXT} ILIKE {pattern} ESCAPE '\\'"
				if query.fuzzy and " " not in term:
					raw = self.bind(term)
					threshold = self.bind(settings.search_fuzzy_similarity)
					clause = (
						f"({clause} OR similarity({_NAME}, {raw}) > {threshold}"
						f" OR word_similarity({raw}, {_SEARCH_TEXT}) > {threshold})"
					)
				alternatives.append(clause)
			if alternatives:
				groups.append("(" + " OR ".join(alternatives) + ")")
		if not groups:
			return None
		return " AND ".join(groups)

	def where(self, expression: FilterExpression) -> str:
		clauses = [f"doc_type = {self.bind(expression.doc_type)}"]
		for predicate in expression.predicates:
			clause = self.predicate(predicate)
			if clause:
				clauses.append(clause)
		return " AND ".join(clauses)

	def score(self, expression: FilterExpression) -> str:
		query = expression.text_query
		if query is None or not query.groups:
			return "1.0"
		text = self.bind(query.text.lower())
		return f"GREATEST(similarity({_NAME}, {text}), word_similarity({text}, {_SEARCH_TEXT}))"


def compile_select(expression: FilterExpression) -> tuple[str, list[Any]]:
	compiler = _Compiler()
	score = compiler.score(expression)
	where = compiler.where(expression)
	order_by = _ORDER_BY.get(expression.sort_by, _ORDER_BY[None])
	limit = compiler.bind(max(0, expression.limit))
	offset = compiler.bind(max(0, expression.offset))
	sql = (
		f"SELECT body, created_at, {score} AS _score FROM documents WHERE {where} "
		f"ORDER BY {order_by} LIMIT {limit} OFFSET {offset}"
	)
	return sql, compiler.params


def compile_count(expression: FilterExpression) -> tuple[str, list[Any]]:
	compiler = _Compiler()
	where = compiler.where(expression)
	return f"SELECT COUNT(*) FROM documents WHERE {where}", compiler.params


async def ensure_schema(pool: asyncpg.Pool) -> None:
	async with pool.acquire() as conn:
		await conn.execute(SCHEMA_SQL)


async def connect(dsn: Optional[str] = None) -> "PostgresContentStore":
	"""Open a pool against ``dsn`` (default ``POSTGRES_URL``) and make sure the table exists."""

	pool = await asyncpg.create_pool(
		dsn=dsn or settings.postgres_url,
		min_size=settings.postgres_min_pool_size,
		max_size=settings.postgres_max_pool_size,
	)
	await ensure_schema(pool)
	return PostgresContentStore(pool)


def _row_document(row: Any) -> dict[str, Any]:
	body = row["body"]
	document = json.loads(body) if isinstance(body, str) else dict(body)
	created_at = row["created_at"]
	if created_at is not None:
		document["_createdAt"] = created_at.isoformat()
	document["_score"] = max(0.0, min(1.0, float(row["_score"] or 0.0)))
	return document


class PostgresContentStore(ContentStore):
	name = "postgres"

	def __init__(self, pool: asyncpg.Pool, *, timeout: Optional[float] = None) -> None:
		super().__init__(timeout=timeout)
		self._pool = pool

	async def close(self) -> None:
		await self._pool.close()

	async def _fetch(self, expression: FilterExpression) -> list[dict[str, Any]]:
		sql, params = compile_select(expression)
		async with self._pool.acquire() as conn:
			rows = await conn.fetch(sql, *params)
		return [_row_document(row) for row in rows]

	async def _count(self, expression: FilterExpression) -> int:
		sql, params = compile_count(expression)
		async with self._pool.acquire() as conn:
			total = await conn.fetchval(sql, *params)
		return int(total or 0)

	async def _create(self, document: dict[str, Any]) -> None:
		if not document.get("_id") or not document.get("_type"):
			raise ValueError("document requires _id and _type")
		created_at = parse_datetime(document.get("_createdAt")) or datetime.now(timezone.utc)
		async with self._pool.acquire() as conn:
			await conn.execute(
				"INSERT INTO documents (id, doc_type, created_at, body) VALUES ($1, $2, $3, $4::jsonb) "
				"ON CONFLICT (id) DO NOTHING",
				str(document["_id"]),
				str(document["_type"]),
				created_at,
				json.dumps(document, default=str),
			)
