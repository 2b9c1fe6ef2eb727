"""Tests for the provider fallback chain."""

import time

import pytest

from levelwatch.errors import ProviderError, PriceUnavailableError
from levelwatch.services import price_source
from levelwatch.services.price_source import (
    PriceSource, YahooChartProvider, FinnhubProvider, AlphaVantageProvider, build_price_source,
)
from conftest import FakeProvider


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")


def test_first_usable_provider_wins():
    first = FakeProvider("yahoo", ProviderError("yahoo", "down"))
    second = FakeProvider("finnhub", 401.5)
    third = FakeProvider("alphavantage", 999.0)
    quote = PriceSource([first, second, third], timeout=1.0).get_price("tsla")

    assert quote.price == pytest.approx(401.5)
    assert quote.source == "finnhub"
    assert quote.symbol == "TSLA"
    assert third.calls == 0


def test_unusable_price_falls_through():
    zero = FakeProvider("finnhub", ValueError("unusable price 0.0"))
    good = FakeProvider("alphavantage", 400.0)
    quote = PriceSource([zero, good], timeout=1.0).get_price("TSLA")
    assert quote.source == "alphavantage"


def test_all_providers_fail():
    providers = [
        FakeProvider("yahoo", ProviderError("yahoo", "rate limited")),
        FakeProvider("finnhub", RuntimeError("boom")),
    ]
    with pytest.raises(PriceUnavailableError) as exc:
        PriceSource(providers, timeout=1.0).get_price("TSLA")
    assert [f.provider for f in exc.value.failures] == ["yahoo", "finnhub"]


def test_slow_provider_times_out():
    class Slow(FakeProvider):
        def fetch(self, symbol, timeout):
            time.sleep(3)
            return 1.0

    source = PriceSource([Slow("slow", 1.0), FakeProvider("fast", 402.0)], timeout=0.5)
    quote = source.get_price("TSLA")
    assert quote.source == "fast"


def test_yahoo_backoff_is_persisted(test_db, monkeypatch):
    calls = []

    def fake_get(url, **kwargs):
        calls.append(url)
        return FakeResponse(status_code=429)

    monkeypatch.setattr(price_source.requests, "get", fake_get)
    provider = YahooChartProvider(backoff_seconds=60)

    with pytest.raises(ProviderError, match="429"):
        provider.fetch("TSLA", timeout=1)
    # A fresh provider instance honours the stored deadline without calling out
    with pytest.raises(ProviderError, match="backing off"):
        YahooChartProvider().fetch("TSLA", timeout=1)
    assert len(calls) == 1


def test_yahoo_parses_chart_meta(test_db, monkeypatch):
    payload = {"chart": {"result": [{"meta": {"regularMarketPrice": 402.12}}]}}
    monkeypatch.setattr(price_source.requests, "get", lambda url, **kw: FakeResponse(payload=payload))
    assert YahooChartProvider().fetch("TSLA", timeout=1) == pytest.approx(402.12)


def test_finnhub_requires_key():
    with pytest.raises(ProviderError, match="API key"):
        FinnhubProvider(api_key="").fetch("TSLA", timeout=1)


def test_finnhub_zero_price_rejected(monkeypatch):
    monkeypatch.setattr(price_source.requests, "get", lambda url, **kw: FakeResponse(payload={"c": 0}))
    with pytest.raises(ValueError):
        FinnhubProvider(api_key="k").fetch("TSLA", timeout=1)


def test_alphavantage_global_quote(monkeypatch):
    payload = {"Global Quote": {"05. price": "398.7600"}}
    monkeypatch.setattr(price_source.requests, "get", lambda url, **kw: FakeResponse(payload=payload))
    assert AlphaVantageProvider(api_key="k").fetch("TSLA", timeout=1) == pytest.approx(398.76)


def test_build_price_source_skips_unknown():
    from levelwatch.config import Settings
    cfg = Settings(price_providers=["finnhub", "nope", "alphavantage"])
    source = build_price_source(cfg)
    assert [p.name for p in source.providers] == ["finnhub", "alphavantage"]
