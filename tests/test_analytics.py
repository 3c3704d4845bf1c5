"""Tests for the cached analytics layer against a scripted upstream."""

import httpx
import pytest

from analytics import StockAnalytics
from cache import TTLCache
from errors import UpstreamDecodeError, UpstreamHTTPError, UpstreamTimeout
from upstream import CredentialStore, UpstreamClient

from conftest import UPSTREAM_URL, samples


def make_analytics(fake_upstream, clock):
	upstream = UpstreamClient(CredentialStore("t"), httpx.AsyncClient(transport=fake_upstream.transport))
	return StockAnalytics(upstream, TTLCache(default_ttl=300, clock=clock), base_url=UPSTREAM_URL)


@pytest.mark.asyncio
async def test_all_stocks_is_cached(fake_upstream, clock):
	fake_upstream.json("/stocks", {"stocks": {"Nvidia Corporation": "NVDA"}})
	analytics = make_analytics(fake_upstream, clock)

	first = await analytics.get_all_stocks()
	second = await analytics.get_all_stocks()
	assert first.stocks == {"Nvidia Corporation": "NVDA"}
	assert second == first
	assert fake_upstream.calls("/stocks") == 1


@pytest.mark.asyncio
async def test_current_price_uses_short_ttl(fake_upstream, clock):
	fake_upstream.json("/stocks/NVDA", {"stock": {"price": 120.5, "lastUpdatedAt": "2025-05-08T04:11:42Z"}})
	fake_upstream.json("/stocks/NVDA", samples(1.0, 2.0), minutes=50)
	analytics = make_analytics(fake_upstream, clock)

	price = await analytics.get_current_price("NVDA")
	assert price.price == 120.5
	assert price.last_updated_at == "2025-05-08T04:11:42Z"
	await analytics.get_price_history("NVDA")

	clock.advance(61)
	await analytics.get_current_price("NVDA")
	await analytics.get_price_history("NVDA")
	params = [r.url.params.get("minutes") for r in fake_upstream.requests]
	# price refetched after 60s, history still served from cache
	assert params == [None, "50", None]


@pytest.mark.asyncio
async def test_history_defaults_to_fifty_minutes(fake_upstream, clock):
	fake_upstream.json("/stocks/AMD", samples(3.0, 4.0, 5.0), minutes=50)
	analytics = make_analytics(fake_upstream, clock)

	history = await analytics.get_price_history("AMD")
	assert history.time_range == "50 minutes"
	assert [s.price for s in history.price_history] == [3.0, 4.0, 5.0]


@pytest.mark.asyncio
async def test_average_price(fake_upstream, clock):
	fake_upstream.json("/stocks/AMD", samples(1.0, 2.0, 2.0), minutes=10)
	analytics = make_analytics(fake_upstream, clock)

	avg = await analytics.get_average_price("AMD", minutes=10)
	assert avg.average_price == 1.666667
	assert avg.time_range == "10 minutes"
	assert len(avg.price_history) == 3


@pytest.mark.asyncio
async def test_average_of_empty_history_is_zero(fake_upstream, clock):
	fake_upstream.json("/stocks/AMD", [], minutes=50)
	analytics = make_analytics(fake_upstream, clock)
	assert (await analytics.get_average_price("AMD")).average_price == 0.0


@pytest.mark.asyncio
async def test_correlation_truncates_to_shorter_prefix(fake_upstream, clock):
	fake_upstream.json("/stocks/AAA", samples(1.0, 2.0, 3.0, 100.0, -50.0), minutes=30)
	fake_upstream.json("/stocks/BBB", samples(2.0, 4.0, 6.0), minutes=30)
	analytics = make_analytics(fake_upstream, clock)

	result = await analytics.get_correlation("AAA", "BBB", minutes=30)
	assert result.correlation == 1.0
	assert result.time_range == "30 minutes"
	a, b = result.stocks["AAA"], result.stocks["BBB"]
	assert [s.price for s in a.price_history] == [1.0, 2.0, 3.0]
	assert [s.price for s in b.price_history] == [2.0, 4.0, 6.0]
	assert a.average_price == 2.0
	assert b.average_price == 4.0


@pytest.mark.asyncio
async def test_correlation_with_single_sample_is_zero(fake_upstream, clock):
	fake_upstream.json("/stocks/AAA", samples(1.0, 2.0), minutes=50)
	fake_upstream.json("/stocks/BBB", samples(9.0), minutes=50)
	analytics = make_analytics(fake_upstream, clock)

	result = await analytics.get_correlation("AAA", "BBB")
	assert result.correlation == 0.0
	assert len(result.stocks["AAA"].price_history) == 1


@pytest.mark.asyncio
async def test_correlation_fails_whole_and_is_not_cached(fake_upstream, clock):
	fake_upstream.json("/stocks/AAA", samples(1.0, 2.0, 3.0), minutes=50)
	fake_upstream.json("/stocks/BBB", {"message": "down"}, status=500, minutes=50)
	analytics = make_analytics(fake_upstream, clock)

	with pytest.raises(UpstreamHTTPError):
		await analytics.get_correlation("AAA", "BBB")
	assert len(analytics.cache) == 0

	fake_upstream.json("/stocks/BBB", samples(3.0, 2.0, 1.0), minutes=50)
	result = await analytics.get_correlation("AAA", "BBB")
	assert result.correlation == -1.0


@pytest.mark.asyncio
async def test_timeout_propagates(fake_upstream, clock):
	fake_upstream.fail("/stocks", httpx.ConnectTimeout)
	analytics = make_analytics(fake_upstream, clock)
	with pytest.raises(UpstreamTimeout):
		await analytics.get_all_stocks()


@pytest.mark.asyncio
async def test_malformed_history_is_decode_error(fake_upstream, clock):
	fake_upstream.json("/stocks/AAA", {"priceHistory": "nope"}, minutes=50)
	analytics = make_analytics(fake_upstream, clock)
	with pytest.raises(UpstreamDecodeError):
		await analytics.get_price_history("AAA")
