import pytest

from app.settings import settings


@pytest.mark.asyncio
async def test_health_live(api_client):
	response = await api_client.get("/health/live")
	assert response.status_code == 200
	assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_health_ready_checks_redis_and_store(api_client):
	response = await api_client.get("/health/ready")
	payload = response.json()
	assert response.status_code == 200
	assert payload["checks"]["redis"]["ok"] is True
	assert payload["checks"]["store"]["backend"] == "memory"


@pytest.mark.asyncio
async def test_metrics_require_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", "secret")
	denied = await api_client.get("/metrics")
	assert denied.status_code == 403
	allowed = await api_client.get("/metrics", headers={"Authorization": "Bearer secret"})
	assert allowed.status_code == 200
	assert "memorials_" in allowed.text


@pytest.mark.asyncio
async def test_metrics_accept_admin_header_and_public_flag(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_admin_token", "secret")
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	wrong = await api_client.get("/metrics", headers={"X-Admin-Token": "nope"})
	assert wrong.status_code == 403
	right = await api_client.get("/metrics", headers={"X-Admin-Token": "secret"})
	assert right.status_code == 200
	monkeypatch.setattr(settings, "obs_metrics_public", True)
	public = await api_client.get("/metrics")
	assert public.status_code == 200


@pytest.mark.asyncio
async def test_request_id_is_echoed(api_client):
	response = await api_client.get("/health/live", headers={"X-Request-Id": "req-123"})
	assert response.headers["X-Request-Id"] == "req-123"


@pytest.mark.asyncio
async def test_error_bodies_carry_request_id(api_client):
	response = await api_client.get("/obituaries", headers={"X-Request-Id": "req-456"})
	assert response.status_code == 400
	assert response.json()["request_id"] == "req-456"
