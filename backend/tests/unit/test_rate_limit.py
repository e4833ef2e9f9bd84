import pytest

from app.infra.rate_limit import allow, check

NOW = 1_700_000_010.0


@pytest.mark.asyncio
async def test_rate_limit_allows_within_budget():
    assert await allow("hb", "u5", limit=2, window_seconds=60)
    assert await allow("hb", "u5", limit=2, window_seconds=60)


@pytest.mark.asyncio
async def test_rate_limit_blocks_when_budget_exhausted():
    await allow("nearby", "u6", limit=1, window_seconds=60)
    assert not await allow("nearby", "u6", limit=1, window_seconds=60)


@pytest.mark.asyncio
async def test_check_reports_remaining_and_reset():
    first = await check("general", "203.0.113.1:/search", limit=2, window_seconds=60, now=NOW)
    assert first.allowed
    assert first.remaining == 1
    assert first.reset_at == 1_700_000_040
    headers = first.headers()
    assert headers["X-RateLimit-Limit"] == "2"
    assert "Retry-After" not in headers


@pytest.mark.asyncio
async def test_denied_result_carries_retry_after():
    for _ in range(2):
        await check("general", "203.0.113.2:/search", limit=2, window_seconds=60, now=NOW)
    denied = await check("general", "203.0.113.2:/search", limit=2, window_seconds=60, now=NOW)
    assert not denied.allowed
    assert denied.remaining == 0
    assert denied.headers()["Retry-After"] == "30"


@pytest.mark.asyncio
async def test_windows_are_independent():
    await check("general", "203.0.113.3:/search", limit=1, window_seconds=60, now=NOW)
    later = await check("general", "203.0.113.3:/search", limit=1, window_seconds=60, now=NOW + 60)
    assert later.allowed
