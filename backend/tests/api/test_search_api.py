from types import SimpleNamespace

import pytest
import pytest_asyncio

from app.infra import rate_limit
from app.infra.store import ContentStore, seed_memory_store, set_store


@pytest_asyncio.fixture
async def seeded(make_memorial):
	await seed_memory_store(
		[
			make_memorial("m1", "John Smith", died="2020-03-01", city="Austin", state="TX", tags=["veteran"]),
			make_memorial("m2", "Mary Smithson", died="2021-07-10", city="Denver", state="CO"),
			make_memorial("m3", "Hidden Smith", privacy="private", owner_id="owner-1"),
		]
	)


@pytest.mark.asyncio
async def test_search_get_endpoint(api_client, seeded):
	response = await api_client.get("/search", params={"q": "smith"})
	payload = response.json()
	assert response.status_code == 200
	assert [item["memorial"]["id"] for item in payload["results"]] == ["m1", "m2"]
	assert payload["total"] == 2
	assert payload["results"][0]["highlights"][0]["field"] == "name"
	assert "X-RateLimit-Remaining" in response.headers
	assert response.headers.get("X-Request-Id")


@pytest.mark.asyncio
async def test_search_get_with_filters(api_client, seeded):
	response = await api_client.get("/search", params={"q": "", "city": "austin", "tags": "veteran,educator"})
	payload = response.json()
	assert response.status_code == 200
	assert [item["memorial"]["id"] for item in payload["results"]] == ["m1"]


@pytest.mark.asyncio
async def test_owner_header_reveals_private(api_client, seeded):
	response = await api_client.get("/search", params={"q": "hidden"}, headers={"X-User-Id": "owner-1"})
	assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_search_post_endpoint(api_client, seeded):
	response = await api_client.post(
		"/search",
		json={"query": "smith", "filters": {"location": {"state": "CO"}, "limit": 5}},
	)
	payload = response.json()
	assert response.status_code == 200
	assert [item["memorial"]["id"] for item in payload["results"]] == ["m2"]


@pytest.mark.asyncio
async def test_search_post_advanced(api_client, seeded):
	response = await api_client.post(
		"/search",
		json={"query": "smith from Austin", "advanced": True, "options": {"location_nlp": True}},
	)
	payload = response.json()
	assert response.status_code == 200
	assert payload["query"] == "smith"
	assert [item["memorial"]["id"] for item in payload["results"]] == ["m1"]


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"query": 42}, {"query": None}])
async def test_search_post_requires_string_query(api_client, body):
	response = await api_client.post("/search", json=body)
	assert response.status_code == 400
	assert response.json()["detail"] == "query_required"


@pytest.mark.asyncio
async def test_search_rejects_bad_paging(api_client):
	response = await api_client.get("/search", params={"q": "x", "limit": 500})
	assert response.status_code == 400
	assert response.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_search_rejects_inverted_dates(api_client):
	response = await api_client.get(
		"/search", params={"q": "x", "start_date": "2022-01-01", "end_date": "2021-01-01"}
	)
	assert response.status_code == 400


@pytest.mark.asyncio
async def test_suggestions_endpoint(api_client, seeded):
	response = await api_client.get("/search/suggestions", params={"q": "smi"})
	payload = response.json()
	assert response.status_code == 200
	texts = [item["text"] for item in payload["suggestions"]]
	assert "John Smith" in texts
	assert "Hidden Smith" not in texts
	short = await api_client.get("/search/suggestions", params={"q": "s"})
	assert short.json() == {"suggestions": []}


class FailingStore(ContentStore):
	async def _fetch(self, expression):
		raise ConnectionError("store offline")

	async def _count(self, expression):
		raise ConnectionError("store offline")


@pytest.mark.asyncio
async def test_store_failure_is_retryable_500(api_client):
	set_store(FailingStore())
	response = await api_client.get("/search", params={"q": "smith"})
	payload = response.json()
	assert response.status_code == 500
	assert payload["detail"] == "store_unavailable"
	assert payload["retryable"] is True


@pytest.mark.asyncio
async def test_rate_limit_returns_429(api_client, fake_redis, monkeypatch):
	now = 1_700_000_010.0
	monkeypatch.setattr(rate_limit, "time", SimpleNamespace(time=lambda: now))
	slot = int(now // 60)
	key = f"rl:general:203.0.113.50:/search/suggestions:{slot}:60"
	await fake_redis.set(key, rate_limit.GENERAL.limit)
	response = await api_client.get(
		"/search/suggestions", params={"q": "smith"}, headers={"X-Forwarded-For": "203.0.113.50"}
	)
	assert response.status_code == 429
	assert response.json()["detail"] == "rate_limited"
	assert response.headers["Retry-After"] == "30"
	assert response.headers["X-RateLimit-Remaining"] == "0"
