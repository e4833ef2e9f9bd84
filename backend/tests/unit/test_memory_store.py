import asyncio
from datetime import date

import pytest

from app.domain.search.expressions import FilterExpression, Predicate, TextQuery, memorial_expression, public_only
from app.domain.search.query import QueryProcessor
from app.domain.search.schemas import AdvancedOptions, SearchFilters
from app.infra.store import ContentStore, MemoryContentStore, StoreError


def _text(*terms: str, fuzzy: bool = False) -> Predicate:
	return Predicate("text", "text", TextQuery(groups=tuple((term,) for term in terms), fuzzy=fuzzy))


@pytest.fixture
def documents(make_memorial):
	return [
		make_memorial("m1", "John Smith", died="2020-03-01", city="Austin", state="TX", tags=["Veteran"]),
		make_memorial("m2", "Mary Smithson", died="2021-07-10", city="Denver", state="CO"),
		make_memorial("m3", "Private Person", privacy="private", owner_id="owner-1"),
		make_memorial(
			"m4",
			"Alan Jones",
			died="2019-01-01",
			description="A loving grandfather",
			media={"photos": ["a.jpg"], "videos": []},
		),
	]


@pytest.mark.asyncio
async def test_visibility_hides_private_unless_owner(documents):
	store = MemoryContentStore()
	await store.seed(documents)
	anonymous = await store.fetch(memorial_expression(public_only()))
	assert {doc["_id"] for doc in anonymous} == {"m1", "m2", "m4"}
	owner = await store.fetch(memorial_expression(Predicate("privacy", "visible", "owner-1")))
	assert "m3" in {doc["_id"] for doc in owner}


@pytest.mark.asyncio
async def test_text_scores_name_token_above_substring(documents):
	store = MemoryContentStore()
	await store.seed(documents)
	results = await store.fetch(memorial_expression(public_only(), _text("smith")))
	assert [doc["_id"] for doc in results] == ["m1", "m2"]
	assert results[0]["_score"] == 1.0
	assert results[1]["_score"] == pytest.approx(0.85)


@pytest.mark.asyncio
async def test_every_term_group_must_match(documents):
	store = MemoryContentStore()
	await store.seed(documents)
	results = await store.fetch(memorial_expression(public_only(), _text("smith", "grandfather")))
	assert results == []
	assert await store.count(memorial_expression(public_only(), _text("grandfather"))) == 1


@pytest.mark.asyncio
async def test_fuzzy_matching_tolerates_typos(documents):
	store = MemoryContentStore()
	await store.seed(documents)
	assert await store.fetch(memorial_expression(_text("smiht"))) == []
	results = await store.fetch(memorial_expression(_text("smithh", fuzzy=True)))
	assert [doc["_id"] for doc in results] == ["m1"]
	assert 0 < results[0]["_score"] <= 0.5


@pytest.mark.asyncio
async def test_structured_predicates(documents):
	store = MemoryContentStore()
	await store.seed(documents)

	async def ids(*predicates: Predicate) -> list[str]:
		return [doc["_id"] for doc in await store.fetch(memorial_expression(*predicates, sort_by="name_asc"))]

	assert await ids(Predicate("died", "gte", date(2020, 1, 1))) == ["m1", "m2"]
	assert await ids(Predicate("city", "icontains", "aus")) == ["m1"]
	assert await ids(Predicate("location", "icontains", "co")) == ["m2"]
	assert await ids(Predicate("tags", "overlaps", ("veteran",))) == ["m1"]
	assert await ids(Predicate("media", "has_media", "photos")) == ["m4"]
	assert await ids(Predicate("media", "has_media", "videos")) == []


@pytest.mark.asyncio
async def test_date_sort_puts_undated_last(documents):
	store = MemoryContentStore()
	await store.seed(documents)
	results = await store.fetch(memorial_expression(Predicate("privacy", "visible", "owner-1"), sort_by="date_desc"))
	assert [doc["_id"] for doc in results] == ["m2", "m1", "m4", "m3"]


@pytest.mark.asyncio
async def test_paging_and_zero_limit(documents):
	store = MemoryContentStore()
	await store.seed(documents)
	expression = memorial_expression(public_only(), sort_by="name_asc")
	page = await store.fetch(expression.page(limit=1, offset=1))
	assert [doc["_id"] for doc in page] == ["m1"]
	assert await store.fetch(expression.page(limit=0)) == []
	assert await store.count(expression.page(limit=0)) == 3


@pytest.mark.asyncio
async def test_results_are_copies(documents):
	store = MemoryContentStore()
	await store.seed(documents)
	first = await store.fetch(memorial_expression(public_only()))
	first[0]["name"] = "changed"
	again = await store.fetch(memorial_expression(public_only()))
	assert "changed" not in {doc["name"] for doc in again}


@pytest.mark.asyncio
async def test_search_logs_are_bounded():
	store = MemoryContentStore(log_capacity=2)
	for index in range(3):
		await store.create({"_id": f"log-{index}", "_type": "search_log", "query": "x"})
	assert store.log_count == 2
	logs = await store.fetch(FilterExpression(doc_type="search_log", limit=10))
	assert {doc["_id"] for doc in logs} == {"log-1", "log-2"}


@pytest.mark.asyncio
async def test_create_requires_identity():
	store = MemoryContentStore()
	with pytest.raises(StoreError) as excinfo:
		await store.create({"name": "no id"})
	assert excinfo.value.operation == "create"
	assert excinfo.value.retryable


class SlowStore(ContentStore):
	async def _fetch(self, expression):
		await asyncio.sleep(1)
		return []


@pytest.mark.asyncio
async def test_timeouts_surface_as_store_error():
	store = SlowStore(timeout=0.01)
	with pytest.raises(StoreError) as excinfo:
		await store.fetch(FilterExpression())
	assert excinfo.value.reason == "timeout"


def test_unknown_predicate_rejected():
	with pytest.raises(ValueError):
		Predicate("name", "regex", ".*")
	with pytest.raises(ValueError):
		Predicate("favourite_colour", "eq", "blue")


@pytest.mark.asyncio
async def test_missing_privacy_and_status_take_record_defaults():
	store = MemoryContentStore()
	await store.seed(
		[
			{"_id": "m1", "_type": "memorial", "name": "John Smith"},
			{"_id": "m2", "_type": "memorial", "name": "Jane Doe", "died": "2024-01-01", "status": ""},
			{"_id": "m3", "_type": "memorial", "name": "Draft Person", "status": "draft"},
		]
	)
	visible = await store.fetch(memorial_expression(public_only()))
	assert {doc["_id"] for doc in visible} == {"m1", "m2", "m3"}
	published = await store.fetch(memorial_expression(Predicate("status", "eq", "published")))
	assert {doc["_id"] for doc in published} == {"m1", "m2"}
	not_protected = await store.count(memorial_expression(Predicate("privacy", "neq", "password-protected")))
	assert not_protected == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["died", "funeral", "family memorial", "born austin"])
async def test_synonyms_never_narrow_results(make_memorial, query):
	store = MemoryContentStore()
	await store.seed(
		[
			make_memorial("m1", "Ruth Hale", description="She died peacefully at home"),
			make_memorial("m2", "Otto Berg", description="Passed away surrounded by family"),
			make_memorial("m3", "Lena Park", description="A funeral service will be held in Austin"),
			make_memorial("m4", "Ivan Cole", description="Celebration of life and remembrance for loved ones"),
			make_memorial("m5", "Nora Vance", description="Born in Austin, a family memorial tribute"),
			make_memorial("m6", "Paul Reed", description="Gardener and birdwatcher"),
		]
	)
	processor = QueryProcessor()
	plain = processor.build(query, SearchFilters(limit=100))
	widened = processor.build(query, SearchFilters(limit=100), options=AdvancedOptions(synonyms=True))
	plain_ids = {doc["_id"] for doc in await store.fetch(plain)}
	widened_ids = {doc["_id"] for doc in await store.fetch(widened)}
	assert plain_ids <= widened_ids
	assert await store.count(plain) <= await store.count(widened)
