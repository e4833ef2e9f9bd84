import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from app.domain.search.search_log import get_search_logger
from app.infra.store import reset_memory_state
from app.main import app
from app.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from app.infra.redis import redis_client
	client = FakeRedis(decode_responses=True)
	previous = redis_client.use(client)
	try:
		yield client
	finally:
		redis_client.use(previous)
		await client.flushall()


@pytest_asyncio.fixture(autouse=True)
async def memory_store():
	await reset_memory_state()
	try:
		yield
	finally:
		await get_search_logger().drain()
		await reset_memory_state()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Run every test against the in-process store in dev mode."""
	original_env = settings.environment
	original_backend = settings.content_store_backend
	settings.environment = "dev"
	settings.content_store_backend = "memory"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.content_store_backend = original_backend


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client


@pytest.fixture
def make_memorial():
	"""Factory for memorial documents as the content store holds them."""

	def _make(
		doc_id: str,
		name: str,
		*,
		died: Optional[str] = None,
		created_at: Optional[datetime] = None,
		city: str = "",
		state: str = "",
		coordinates: Optional[tuple[float, float]] = None,
		**extra: Any,
	) -> dict[str, Any]:
		created = created_at or datetime.now(timezone.utc) - timedelta(days=1)
		document: dict[str, Any] = {
			"_id": doc_id,
			"_type": "memorial",
			"_createdAt": created.isoformat(),
			"name": name,
			"slug": name.lower().replace(" ", "-"),
			"privacy": "public",
			"status": "published",
			"location": {"city": city, "state": state, "country": "USA"},
			"tags": [],
		}
		if died is not None:
			document["died"] = died
		if coordinates is not None:
			document["died_at"] = {
				"place": city or "Somewhere",
				"coordinates": {"lat": coordinates[0], "lng": coordinates[1]},
			}
		document.update(extra)
		return document

	return _make
