from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from app.domain.obituaries import schemas
from app.domain.obituaries.service import ObituaryService
from app.domain.search.policy import SearchPolicyError
from app.infra.store import seed_memory_store

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
PHILLY = (39.9526, -75.1652)
# due north of Philadelphia, about 40 miles away
NORTH_40 = (40.5326, -75.1652)
PITTSBURGH = (40.4406, -79.9959)


def _ago(days: int) -> datetime:
	return NOW - timedelta(days=days)


def _died(days: int) -> str:
	return _ago(days).date().isoformat()


@pytest_asyncio.fixture
async def seeded(make_memorial):
	await seed_memory_store(
		[
			make_memorial("near", "Ann Near", died=_died(2), created_at=_ago(2), coordinates=PHILLY, view_count=5),
			make_memorial(
				"mid",
				"Bob Mid",
				died=_died(10),
				created_at=_ago(10),
				coordinates=NORTH_40,
				view_count=50,
				guestbook_count=10,
			),
			make_memorial("far", "Cal Far", died=_died(1), created_at=NOW, coordinates=PITTSBURGH),
			make_memorial("old", "Dee Old", died=_died(90), created_at=_ago(90), coordinates=PHILLY),
			make_memorial(
				"draft", "Eve Draft", died=_died(1), created_at=_ago(1), coordinates=PHILLY, status="draft"
			),
			make_memorial(
				"locked",
				"Fay Locked",
				died=_died(1),
				created_at=_ago(1),
				coordinates=PHILLY,
				privacy="password-protected",
			),
			make_memorial("nowhere", "Gus Nowhere", died=_died(1), created_at=_ago(1)),
			make_memorial("undated", "Hal Undated", created_at=_ago(1), coordinates=PHILLY),
		]
	)


def _service() -> ObituaryService:
	return ObituaryService(now=lambda: NOW)


@pytest.mark.asyncio
async def test_nearby_requires_coordinates():
	with pytest.raises(SearchPolicyError) as excinfo:
		await _service().nearby(schemas.ObituaryQuery(lat=39.9))
	assert excinfo.value.detail == "location_required"


@pytest.mark.asyncio
async def test_nearby_filters_radius_period_and_status(seeded):
	response = await _service().nearby(schemas.ObituaryQuery(lat=PHILLY[0], lng=PHILLY[1], radius=50, period=30))
	assert [entry.id for entry in response.obituaries] == ["near", "mid"]
	assert response.count == 2
	assert response.obituaries[0].days_ago == 2
	assert response.obituaries[0].distance == 0.0
	assert response.obituaries[1].distance == pytest.approx(40.1, abs=0.2)


@pytest.mark.asyncio
async def test_nearby_sorts_by_engagement(seeded):
	query = schemas.ObituaryQuery(lat=PHILLY[0], lng=PHILLY[1], radius=50, sort_by="engagement")
	response = await _service().nearby(query)
	assert [entry.id for entry in response.obituaries] == ["mid", "near"]
	assert response.obituaries[0].engagement == 70


@pytest.mark.asyncio
async def test_nearby_converts_kilometres(seeded):
	query = schemas.ObituaryQuery(lat=PHILLY[0], lng=PHILLY[1], radius=50, unit="km")
	response = await _service().nearby(query)
	# 50 km is about 31 miles
	assert [entry.id for entry in response.obituaries] == ["near"]
	assert response.filters.unit == "km"


@pytest.mark.asyncio
async def test_equator_origin_is_valid(seeded):
	response = await _service().nearby(schemas.ObituaryQuery(lat=0, lng=0, radius=10))
	assert response.count == 0
	assert response.location.lat == 0


@pytest.mark.asyncio
async def test_feed_without_location_ranks_by_recency(seeded):
	response = await _service().discovery_feed(schemas.ObituaryFeedQuery(limit=3))
	assert [entry.id for entry in response.obituaries] == ["far", "nowhere", "near"]
	assert response.location is None
	assert all(entry.proximity_score == 0.5 for entry in response.obituaries)
	assert all(entry.distance is None for entry in response.obituaries)


@pytest.mark.asyncio
async def test_feed_hides_drafts_and_protected(seeded):
	response = await _service().discovery_feed(schemas.ObituaryFeedQuery())
	ids = {entry.id for entry in response.obituaries}
	assert ids == {"near", "mid", "far", "old", "nowhere"}


@pytest.mark.asyncio
async def test_feed_rejects_half_coordinates():
	with pytest.raises(SearchPolicyError) as excinfo:
		await _service().discovery_feed(schemas.ObituaryFeedQuery(lat=10))
	assert excinfo.value.detail == "incomplete_coordinates"


@pytest.mark.asyncio
async def test_feed_with_location_prefers_nearby(seeded):
	query = schemas.ObituaryFeedQuery(lat=PHILLY[0], lng=PHILLY[1], max_distance=100)
	response = await _service().discovery_feed(query)
	near = next(entry for entry in response.obituaries if entry.id == "near")
	far = next(entry for entry in response.obituaries if entry.id == "far")
	assert near.proximity_score > far.proximity_score
	assert far.proximity_score == 0.0
	assert response.max_distance == 100.0


@pytest.mark.asyncio
async def test_missing_status_is_treated_as_published():
	await seed_memory_store(
		[
			{
				"_id": "bare",
				"_type": "memorial",
				"_createdAt": _ago(3).isoformat(),
				"name": "Ida Bare",
				"died": _died(3),
				"died_at": {"place": "Philadelphia", "coordinates": {"lat": PHILLY[0], "lng": PHILLY[1]}},
			}
		]
	)
	nearby = await _service().nearby(schemas.ObituaryQuery(lat=PHILLY[0], lng=PHILLY[1]))
	assert [entry.id for entry in nearby.obituaries] == ["bare"]
	assert nearby.obituaries[0].days_ago == 3
	feed = await _service().discovery_feed(schemas.ObituaryFeedQuery())
	assert [entry.id for entry in feed.obituaries] == ["bare"]


@pytest.mark.asyncio
async def test_nearby_measures_from_resting_place_first(make_memorial):
	await seed_memory_store(
		[
			make_memorial(
				"buried-home",
				"Joe Home",
				died=_died(4),
				created_at=_ago(4),
				city="Pittsburgh",
				coordinates=PITTSBURGH,
				resting_place={"cemetery": "Laurel Hill", "coordinates": {"lat": PHILLY[0], "lng": PHILLY[1]}},
			)
		]
	)
	nearby = await _service().nearby(schemas.ObituaryQuery(lat=PHILLY[0], lng=PHILLY[1], radius=10))
	assert [entry.id for entry in nearby.obituaries] == ["buried-home"]
	assert nearby.obituaries[0].distance == 0.0
	feed = await _service().discovery_feed(schemas.ObituaryFeedQuery(lat=PHILLY[0], lng=PHILLY[1]))
	# the discovery feed keeps the place of death
	assert feed.obituaries[0].distance == pytest.approx(257, abs=10)
