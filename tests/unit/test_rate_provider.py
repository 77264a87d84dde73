"""Tests for the rate providers."""

from decimal import Decimal

import httpx
import pytest

from src.config import Settings
from src.currency.provider import (
    HttpRateProvider,
    StaticRateProvider,
    build_rate_provider,
    rebase_rates,
)
from src.errors import UpstreamFailureError

API_URL = "https://rates.example.com/latest"


def rate_api(payload=None, status_code=200, calls=None, content=None):
    """MockTransport answering every request with the given payload."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        if content is not None:
            return httpx.Response(status_code, content=content)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


class TestRebase:
    def test_identity_when_base_is_one(self):
        rates = rebase_rates({"USD": Decimal("1"), "EUR": Decimal("0.85")}, "USD", "test")
        assert rates == {"USD": Decimal("1"), "EUR": Decimal("0.85")}

    def test_rebase_onto_other_currency(self):
        rates = rebase_rates({"USD": Decimal("1"), "EUR": Decimal("0.5")}, "EUR", "test")
        assert rates["EUR"] == Decimal("1")
        assert rates["USD"] == Decimal("2")

    def test_missing_base(self):
        with pytest.raises(UpstreamFailureError):
            rebase_rates({"EUR": Decimal("0.85")}, "USD", "test")


class TestStaticProvider:
    @pytest.mark.asyncio
    async def test_defaults(self):
        rates = await StaticRateProvider().get_rates()
        assert rates["JPY"] == Decimal("110.0")
        assert set(rates) == {"USD", "EUR", "GBP", "JPY", "CAD", "AUD"}

    @pytest.mark.asyncio
    async def test_rebased_for_non_usd_base(self):
        rates = await StaticRateProvider(base_currency="GBP").get_rates()
        assert rates["GBP"] == Decimal("1")
        assert rates["USD"] == Decimal("1.333333")

    @pytest.mark.asyncio
    async def test_metadata(self):
        metadata = await StaticRateProvider(source="fixture").get_metadata()
        assert metadata.source == "fixture"
        assert metadata.last_updated is not None


class TestHttpProvider:
    @pytest.mark.asyncio
    async def test_fetch_and_parse(self):
        transport = rate_api({"base": "USD", "rates": {"EUR": 0.85, "GBP": 0.75}})
        provider = HttpRateProvider(API_URL, "USD", transport=transport)

        rates = await provider.get_rates()

        assert rates == {"USD": Decimal("1"), "EUR": Decimal("0.85"), "GBP": Decimal("0.75")}
        metadata = await provider.get_metadata()
        assert metadata.source == API_URL
        assert metadata.last_updated is not None

    @pytest.mark.asyncio
    async def test_rebases_payload_in_other_base(self):
        transport = rate_api({"base": "EUR", "rates": {"USD": 2, "GBP": 0.8}})
        provider = HttpRateProvider(API_URL, "USD", transport=transport)

        rates = await provider.get_rates()

        assert rates["USD"] == Decimal("1")
        assert rates["EUR"] == Decimal("0.5")
        assert rates["GBP"] == Decimal("0.4")

    @pytest.mark.asyncio
    async def test_cached_until_forced(self):
        calls = []
        transport = rate_api({"base": "USD", "rates": {"EUR": 0.85}}, calls=calls)
        provider = HttpRateProvider(API_URL, "USD", cache_ttl=300, transport=transport)

        await provider.get_rates()
        await provider.get_rates()
        assert len(calls) == 1

        await provider.get_rates(force=True)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_sends_api_key(self):
        calls = []
        transport = rate_api({"rates": {"EUR": 0.85}}, calls=calls)
        provider = HttpRateProvider(API_URL, "USD", api_key="secret", transport=transport)

        await provider.get_rates()

        assert calls[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_http_error(self):
        provider = HttpRateProvider(API_URL, "USD", transport=rate_api({}, status_code=503))

        with pytest.raises(UpstreamFailureError) as exc:
            await provider.get_rates()
        assert exc.value.context["source"] == API_URL

    @pytest.mark.asyncio
    async def test_not_json(self):
        provider = HttpRateProvider(API_URL, "USD", transport=rate_api(content=b"<html>"))

        with pytest.raises(UpstreamFailureError):
            await provider.get_rates()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"rates": {}},
            {"rates": [1, 2]},
            {"rates": {"EUR": "abc"}},
            {"rates": {"USD": 1, "EUR": "NaN"}},
            {"rates": {"USD": 1, "EUR": "Infinity"}},
        ],
    )
    async def test_bad_payload(self, payload):
        provider = HttpRateProvider(API_URL, "USD", transport=rate_api(payload))

        with pytest.raises(UpstreamFailureError):
            await provider.get_rates()

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self):
        provider = HttpRateProvider(API_URL, "USD", transport=rate_api({}, status_code=500))
        with pytest.raises(UpstreamFailureError):
            await provider.get_rates()

        provider.transport = rate_api({"rates": {"EUR": 0.9}})
        rates = await provider.get_rates()
        assert rates["EUR"] == Decimal("0.9")


class TestBuildProvider:
    def test_static_without_url(self):
        provider = build_rate_provider(Settings(currency_api_url=None, default_currency="EUR"))
        assert isinstance(provider, StaticRateProvider)
        assert provider.base_currency == "EUR"

    def test_http_with_url(self):
        provider = build_rate_provider(
            Settings(currency_api_url=API_URL, rate_cache_ttl_seconds=60)
        )
        assert isinstance(provider, HttpRateProvider)
        assert provider.url == API_URL
