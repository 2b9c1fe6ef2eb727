"""Shared fixtures: a throwaway SQLite database per test, fake providers and channels."""

import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from levelwatch import db
from levelwatch.errors import ProviderError
from levelwatch.services.dispatcher import Channel, NotificationDispatcher
from levelwatch.services.price_source import PriceProvider, PriceSource

SAMPLE_REPORT = """# TSLA Daily Report

## Executive Summary
| Metric | Value |
|---|---|
| **Close** | $395.20 |
| **Change** | -1.8% |
| **Volume** | 98.5M |

## Mode: 🟡 YELLOW (Improving)
- Holding above the 50-day
- Volume drying up

## Entry Quality: 3/5

## Key Levels
| Level | Price | Action | Reason |
|-------|-------|--------|--------|
| Breakout Trigger | $420.00 | Add on confirmation | Range high |
| Trim Zone | $410.00 | Trim 25% | Prior rejection |
| Support | $385.00 | Nibble | 50-day SMA |
| Master Eject | $380.00 | Exit all positions | structure broken |

## Position Sizing
- **Stance:** Cautious accumulation
- **Daily Cap:** 10-15%
- **Vehicle:** Shares

## Game Plan
- IF price holds $385 THEN nibble
- IF price loses $380 THEN exit all positions
"""


@pytest.fixture
def sample_report():
    return SAMPLE_REPORT


@pytest.fixture
def test_db(tmp_path, monkeypatch):
    """Point every get_session()/init_db() call at a fresh file-backed SQLite db."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(db, "SessionLocal", sessionmaker(bind=engine))
    db.init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(test_db):
    s = db.get_session()
    yield s
    s.close()


class FakeProvider(PriceProvider):
    """Returns a fixed price, or raises when price is an exception."""

    def __init__(self, name, price):
        self.name = name
        self.price = price
        self.calls = 0

    def fetch(self, symbol, timeout):
        self.calls += 1
        if isinstance(self.price, Exception):
            raise self.price
        return self.price


class RecordingChannel(Channel):
    def __init__(self, name="recorder", fail=False, delay=0.0):
        self.name = name
        self.fail = fail
        self.delay = delay
        self.events = []
        self.notices = []

    def send_trigger(self, event):
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        self.events.append(event)

    def send_notice(self, notice):
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        self.notices.append(notice)


@pytest.fixture
def make_source():
    def factory(price):
        return PriceSource([FakeProvider("fake", price)], timeout=1.0)
    return factory


@pytest.fixture
def failing_source():
    return PriceSource([
        FakeProvider("yahoo", ProviderError("yahoo", "rate limited")),
        FakeProvider("finnhub", ProviderError("finnhub", "API key not configured")),
    ], timeout=1.0)


@pytest.fixture
def recorder():
    return RecordingChannel()


@pytest.fixture
def dispatcher(recorder):
    return NotificationDispatcher([recorder], timeout=2.0)
