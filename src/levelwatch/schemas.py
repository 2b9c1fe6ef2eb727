"""Structured payloads produced by the report parser and consumed by the monitor."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Direction(str, Enum):
    UPSIDE = "upside"
    DOWNSIDE = "downside"


class Mode(str, Enum):
    """Traffic-light regime, ordered from most to least aggressive."""
    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"


# Most conservative mode, used whenever the regime cannot be determined
DEFAULT_MODE = Mode.RED


class KeyMetrics(BaseModel):
    close: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    change_pct: Optional[float] = None
    volume: Optional[float] = None


class Regime(BaseModel):
    mode: Mode = DEFAULT_MODE
    label: str = ""
    reasons: list[str] = Field(default_factory=list)


class EntryQuality(BaseModel):
    score: int = Field(default=1, ge=1, le=5)
    label: str = "Poor"
    factors: list[str] = Field(default_factory=list)


class AlertLevelSpec(BaseModel):
    level_name: str
    price: float
    direction: Direction
    action: str = ""
    reason: str = ""


class PositionGuidance(BaseModel):
    stance: str = ""
    daily_cap_pct: Optional[int] = None
    size_recommendation: str = ""
    vehicle: str = ""
    notes: list[str] = Field(default_factory=list)


class Scenario(BaseModel):
    condition: str
    action: str


class ForecastOutcome(BaseModel):
    prediction: str
    result: str  # correct | incorrect | partial


class PerformanceReview(BaseModel):
    correct: int
    total: int
    forecasts: list[ForecastOutcome] = Field(default_factory=list)


class ExtractedFields(BaseModel):
    key_metrics: KeyMetrics = Field(default_factory=KeyMetrics)
    regime: Regime = Field(default_factory=Regime)
    entry_quality: EntryQuality = Field(default_factory=EntryQuality)
    alert_levels: list[AlertLevelSpec] = Field(default_factory=list)
    master_eject: Optional[float] = None
    position_guidance: PositionGuidance = Field(default_factory=PositionGuidance)
    scenarios: list[Scenario] = Field(default_factory=list)
    performance_review: Optional[PerformanceReview] = None


class ParseResult(BaseModel):
    fields: ExtractedFields
    warnings: list[str] = Field(default_factory=list)


class PriceQuote(BaseModel):
    symbol: str
    price: float
    observed_at: datetime
    source: str


class TriggerEvent(BaseModel):
    """A level that crossed during a tick and won the conditional write."""
    alert_level_id: int
    report_id: int
    symbol: str
    level_name: str
    price: float
    direction: Direction
    action: str = ""
    reason: str = ""
    current_price: float
    previous_price: Optional[float] = None
    cold_start: bool = False
    triggered_at: datetime
    mode: Mode = DEFAULT_MODE
    stance: str = ""
    master_eject: Optional[float] = None


class ChannelResult(BaseModel):
    channel: str
    success: bool
    error: Optional[str] = None
