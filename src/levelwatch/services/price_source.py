"""Ordered chain of price providers with per-provider timeouts.

Yahoo (chart API) -> yfinance -> Finnhub -> Alpha Vantage. The first provider
to return a usable price wins; the rest are not called.
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime

import requests

from levelwatch.config import settings
from levelwatch.errors import ProviderError, PriceUnavailableError
from levelwatch.schemas import PriceQuote
from levelwatch.services import run_state

logger = logging.getLogger(__name__)

YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
FINNHUB_QUOTE_URL = "https://finnhub.io/api/v1/quote"
ALPHAVANTAGE_URL = "https://www.alphavantage.co/query"

YAHOO_BACKOFF_KEY = "yahoo_backoff_until"


def _usable(value) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"non-numeric price {value!r}")
    if not math.isfinite(price) or price <= 0:
        raise ValueError(f"unusable price {price}")
    return price


class PriceProvider:
    """A single upstream. Subclasses implement ``fetch`` and raise on failure."""

    name = "base"

    def fetch(self, symbol: str, timeout: float) -> float:
        raise NotImplementedError


class YahooChartProvider(PriceProvider):
    name = "yahoo"

    def __init__(self, backoff_seconds: int = None):
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.yahoo_backoff_seconds

    def fetch(self, symbol, timeout):
        until = run_state.get_meta(YAHOO_BACKOFF_KEY)
        if until and time.time() < until:
            raise ProviderError(self.name, f"rate limited, backing off for {until - time.time():.0f}s")

        resp = requests.get(
            YAHOO_CHART_URL.format(symbol=symbol),
            params={"interval": "1d", "range": "1d"},
            headers={"User-Agent": "Mozilla/5.0"},
            timeout=timeout,
        )
        if resp.status_code in (403, 429):
            run_state.set_meta(YAHOO_BACKOFF_KEY, time.time() + self.backoff_seconds)
            raise ProviderError(
                self.name, f"rate limited ({resp.status_code}), backing off for {self.backoff_seconds}s"
            )
        resp.raise_for_status()

        data = resp.json()
        try:
            meta = data["chart"]["result"][0]["meta"]
        except (KeyError, IndexError, TypeError):
            raise ProviderError(self.name, "malformed chart response")
        return _usable(meta.get("regularMarketPrice"))


class YFinanceProvider(PriceProvider):
    name = "yfinance"

    def fetch(self, symbol, timeout):
        import yfinance as yf

        ticker = yf.Ticker(symbol)
        price = getattr(ticker.fast_info, "last_price", None)
        if price is None:
            df = ticker.history(period="1d", interval="1m")
            if df is None or df.empty:
                raise ProviderError(self.name, "no data returned")
            price = df["Close"].iloc[-1]
        return _usable(price)


class FinnhubProvider(PriceProvider):
    name = "finnhub"

    def __init__(self, api_key: str = None):
        self.api_key = api_key if api_key is not None else settings.finnhub_api_key

    def fetch(self, symbol, timeout):
        if not self.api_key:
            raise ProviderError(self.name, "API key not configured")
        resp = requests.get(
            FINNHUB_QUOTE_URL,
            params={"symbol": symbol, "token": self.api_key},
            timeout=timeout,
        )
        resp.raise_for_status()
        # Finnhub answers unknown symbols with c=0
        return _usable(resp.json().get("c"))


class AlphaVantageProvider(PriceProvider):
    name = "alphavantage"

    def __init__(self, api_key: str = None):
        self.api_key = api_key if api_key is not None else settings.alphavantage_api_key

    def fetch(self, symbol, timeout):
        resp = requests.get(
            ALPHAVANTAGE_URL,
            params={"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self.api_key or "demo"},
            timeout=timeout,
        )
        resp.raise_for_status()
        quote = resp.json().get("Global Quote") or {}
        if not quote.get("05. price"):
            raise ProviderError(self.name, "no price data")
        return _usable(quote["05. price"])


PROVIDERS = {
    "yahoo": YahooChartProvider,
    "yfinance": YFinanceProvider,
    "finnhub": FinnhubProvider,
    "alphavantage": AlphaVantageProvider,
}


class PriceSource:
    """Tries each provider in order; raises PriceUnavailableError when all fail."""

    def __init__(self, providers: list[PriceProvider], timeout: float = None):
        self.providers = providers
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="price")

    def _call(self, provider: PriceProvider, symbol: str) -> float:
        # The provider's own HTTP timeout may not cover every library call (yfinance)
        future = self._pool.submit(provider.fetch, symbol, self.timeout)
        try:
            return future.result(timeout=self.timeout + 1)
        except FutureTimeout:
            future.cancel()
            raise ProviderError(provider.name, f"timed out after {self.timeout}s")

    def get_price(self, symbol: str) -> PriceQuote:
        symbol = symbol.upper()
        failures = []
        for provider in self.providers:
            try:
                price = self._call(provider, symbol)
            except ProviderError as e:
                logger.warning(f"Price provider failed: {e}")
                failures.append(e)
                continue
            except Exception as e:
                err = ProviderError(provider.name, str(e) or type(e).__name__)
                logger.warning(f"Price provider failed: {err}")
                failures.append(err)
                continue

            if failures:
                logger.info(f"{symbol} ${price:.2f} from {provider.name} after {len(failures)} fallback(s)")
            return PriceQuote(symbol=symbol, price=price, observed_at=datetime.utcnow(), source=provider.name)

        raise PriceUnavailableError(symbol, failures)


def build_price_source(cfg=None) -> PriceSource:
    cfg = cfg or settings
    providers = []
    for name in cfg.price_providers:
        cls = PROVIDERS.get(name.strip().lower())
        if cls is None:
            logger.warning(f"Unknown price provider '{name}', skipping")
            continue
        providers.append(cls())
    return PriceSource(providers, timeout=cfg.provider_timeout_seconds)
