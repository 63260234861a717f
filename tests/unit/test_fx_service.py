from datetime import date

import httpx
import pytest

from circulerp.services import fx_service


@pytest.fixture(autouse=True)
def _clear_cache():
    fx_service.clear_cache()
    yield
    fx_service.clear_cache()


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_eur_is_identity_without_lookup():
    def handler(request):
        raise AssertionError("no request expected")

    async with _client(handler) as client:
        assert await fx_service.get_eur_rate("eur", date(2024, 1, 2), client=client) == 1.0


@pytest.mark.asyncio
async def test_rate_is_fetched_and_memoized():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"amount": 1.0, "rates": {"EUR": 0.9123}})

    async with _client(handler) as client:
        first = await fx_service.get_eur_rate("usd", date(2024, 1, 2), client=client)
        second = await fx_service.get_eur_rate("USD", date(2024, 1, 2), client=client)

    assert first == second == 0.9123
    assert len(calls) == 1
    assert calls[0].url.path.endswith("/2024-01-02")
    assert calls[0].url.params["from"] == "USD"
    assert calls[0].url.params["to"] == "EUR"


@pytest.mark.asyncio
async def test_failed_lookup_is_one_and_not_cached():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    async with _client(handler) as client:
        assert await fx_service.get_eur_rate("GBP", date(2024, 1, 2), client=client) == 1.0
        assert await fx_service.get_eur_rate("GBP", date(2024, 1, 2), client=client) == 1.0

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_malformed_payload_is_one():
    async with _client(lambda request: httpx.Response(200, json={"rates": {}})) as client:
        assert await fx_service.get_eur_rate("USD", date(2024, 1, 3), client=client) == 1.0
