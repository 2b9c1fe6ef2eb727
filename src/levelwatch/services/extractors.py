"""Field extractors for daily reports.

Every extractor walks an ordered list of strategies and keeps the first one
that matches. Strategies are plain functions returning a value or None, so
a new report format only needs a new entry in the relevant list.

Extractors return ``(value, warnings)`` and never raise on bad input.
"""

import logging
import math
import re
from typing import Callable, Optional

from levelwatch.modes import EMOJI_MODES, MODE_INFO, MODE_VOCABULARY
from levelwatch.schemas import (
    AlertLevelSpec, Direction, EntryQuality, ForecastOutcome, KeyMetrics, Mode,
    DEFAULT_MODE, PerformanceReview, PositionGuidance, Regime, Scenario,
)

logger = logging.getLogger(__name__)

NUMBER = r"(\d[\d,]*(?:\.\d+)?)"

DOWNSIDE_KEYWORDS = re.compile(r"support|eject|stop|floor|protect|exit|cut|downside", re.I)
HEADER_NAMES = {"level", "levels", "name", "alert", "price", "level name"}

VOLUME_SUFFIX = {"K": 1_000, "M": 1_000_000, "B": 1_000_000_000}

ENTRY_QUALITY_LABELS = {
    1: "Poor",
    2: "Below Average",
    3: "Average",
    4: "Good",
    5: "Excellent",
}

Strategy = Callable[[str], Optional[object]]


def first_match(strategies: list[Strategy], text: str) -> tuple[Optional[object], bool]:
    """Run strategies in priority order; the first non-None result wins."""
    for strategy in strategies:
        value = strategy(text)
        if value is not None:
            return value, True
    return None, False


def to_float(raw) -> Optional[float]:
    """Lenient number parse; None for anything unparseable or non-finite."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        cleaned = raw
    else:
        cleaned = str(raw).replace("$", "").replace(",", "").replace("*", "").replace("%", "").strip()
        cleaned = cleaned.lstrip("+")
    try:
        value = float(cleaned)
    except (ValueError, OverflowError):
        return None
    return value if math.isfinite(value) else None


def _clean(text: str) -> str:
    return text.replace("**", "").replace("__", "").strip()


def _bullets(text: str) -> list[str]:
    return [_clean(m.group(1)) for m in re.finditer(r"^\s*[-*•]\s+(.+)$", text, re.M)]


def _label_number(label: str) -> re.Pattern:
    """Number adjacent to a label, tolerant of markdown bold and table pipes."""
    return re.compile(
        rf"\b{label}\b\**\s*[:|\-–]?\s*\**\s*\$?\s*{NUMBER}", re.I
    )


def _search_float(pattern: re.Pattern, group: int = 1) -> Strategy:
    def strategy(text: str) -> Optional[float]:
        match = pattern.search(text)
        if not match:
            return None
        return to_float(match.group(group))
    return strategy


# ── Key metrics ───────────────────────────────────────────────

CURRENT_PRICE_ROW = re.compile(rf"\|\s*\**Current\s*Price\**\s*\|\s*\**\$?{NUMBER}", re.I)
PRICE_TABLE = re.compile(rf"\*\*Price\*\*\s*\|\s*\$?{NUMBER}\s*\(([^)]+)\)", re.I)
SIGNED_PCT = re.compile(r"([+-]\d+(?:\.\d+)?)\s*%")
CHANGE_PCT = re.compile(r"\bchange\b[^\d\n+-]{0,12}([+-]?\d+(?:\.\d+)?)\s*%", re.I)
VOLUME = re.compile(rf"\bvolume\b\**\s*[:|]?\s*\**\s*{NUMBER}\s*([KMB])?\b", re.I)


def _price_table_change(text: str) -> Optional[float]:
    match = PRICE_TABLE.search(text)
    if not match:
        return None
    pct = SIGNED_PCT.search(match.group(2)) or re.search(r"(\d+(?:\.\d+)?)\s*%", match.group(2))
    return to_float(pct.group(1)) if pct else None


def _volume(text: str) -> Optional[float]:
    match = VOLUME.search(text)
    if not match:
        return None
    value = to_float(match.group(1))
    if value is None:
        return None
    suffix = (match.group(2) or "").upper()
    return value * VOLUME_SUFFIX.get(suffix, 1)


def _header_value(header: dict, *keys) -> Optional[object]:
    for key in keys:
        if header.get(key) not in (None, ""):
            return header[key]
    return None


def extract_key_metrics(section: str, full_text: str, header: dict) -> tuple[KeyMetrics, list[str]]:
    scope = section or full_text

    close_strategies = [
        lambda _: to_float(_header_value(header, "price_close", "close")),
        lambda _: _search_float(CURRENT_PRICE_ROW)(full_text),
        lambda _: _search_float(PRICE_TABLE)(full_text),
        lambda _: _search_float(_label_number("close"))(scope),
        lambda _: _search_float(_label_number("close"))(full_text),
        lambda _: _search_float(_label_number("price"))(section) if section else None,
    ]
    close, _ = first_match(close_strategies, scope)

    change_strategies = [
        lambda _: to_float(_header_value(header, "price_change_pct", "change_pct")),
        lambda _: _price_table_change(full_text),
        _search_float(CHANGE_PCT),
        _search_float(SIGNED_PCT),
    ]
    change_pct, _ = first_match(change_strategies, scope)

    metrics = KeyMetrics(
        close=close,
        open=_search_float(_label_number("open"))(scope),
        high=_search_float(_label_number("high"))(scope),
        low=_search_float(_label_number("low"))(scope),
        change_pct=change_pct,
        volume=_volume(scope),
    )

    warnings = []
    if metrics.close is None or metrics.close <= 0:
        metrics.close = None
        warnings.append("Could not extract close price")
    return metrics, warnings


# ── Regime ────────────────────────────────────────────────────

MODE_WORDS = "green|yellow|orange|red"
HEADING_MODE = re.compile(
    rf"#+\s*\W*\s*Mode:\s*(?:[🔴🟠🟡🟢]\s*)?\**({MODE_WORDS})\**(?:\s*\(([^)]+)\))?", re.I
)
TABLE_MODE = re.compile(
    rf"\*\*Mode\*\*\s*\|\s*(?:[🔴🟠🟡🟢]\s*)?\**({MODE_WORDS})(?:\s*\(([^)]+)\))?", re.I
)
WORD_MODE = re.compile(rf"\b({MODE_WORDS})\s+mode\b", re.I)
EMOJI_MODE = re.compile(r"([🔴🟠🟡🟢])\s*\**\s*(?:green|yellow|orange|red)\b", re.I)


def parse_mode_string(value) -> Optional[tuple[Mode, str]]:
    """'Yellow (Improving)' -> (YELLOW, 'Improving'); vocabulary words also accepted."""
    if not value:
        return None
    text = str(value).strip()
    match = re.match(rf"^\W*({MODE_WORDS})\s*(?:\(([^)]+)\))?", text, re.I)
    if match:
        return Mode(match.group(1).lower()), (match.group(2) or "").strip()
    if text in EMOJI_MODES:
        return EMOJI_MODES[text], ""
    return _vocabulary_mode(text)


def _vocabulary_mode(text: str) -> Optional[tuple[Mode, str]]:
    lowered = text.lower()
    # Check the most conservative mode first so mixed wording fails safe
    for mode in (Mode.RED, Mode.ORANGE, Mode.YELLOW, Mode.GREEN):
        for word in MODE_VOCABULARY[mode]:
            if re.search(rf"\b{re.escape(word)}\b", lowered):
                return mode, ""
    return None


def _pattern_mode(pattern: re.Pattern) -> Strategy:
    def strategy(text: str):
        match = pattern.search(text)
        if not match:
            return None
        subtype = match.group(2) if pattern.groups >= 2 else None
        return Mode(match.group(1).lower()), (subtype or "").strip()
    return strategy


def _emoji_mode(text: str):
    match = EMOJI_MODE.search(text)
    return (EMOJI_MODES[match.group(1)], "") if match else None


def extract_regime(section: str, full_text: str, header: dict) -> tuple[Regime, list[str]]:
    strategies = [
        lambda _: parse_mode_string(_header_value(header, "mode")),
        lambda _: _pattern_mode(HEADING_MODE)(full_text),
        lambda _: _pattern_mode(TABLE_MODE)(full_text),
        lambda _: _pattern_mode(WORD_MODE)(full_text),
        lambda _: _emoji_mode(full_text),
        lambda _: _vocabulary_mode(section) if section else None,
    ]
    found, matched = first_match(strategies, full_text)
    if not matched:
        info = MODE_INFO[DEFAULT_MODE]
        return (
            Regime(mode=DEFAULT_MODE, label="UNKNOWN MODE", reasons=_bullets(section)),
            [f"Could not extract regime; defaulting to {DEFAULT_MODE.value.upper()} ({info['cap']} daily cap)"],
        )

    mode, subtype = found
    label = f"{mode.value.upper()} ({subtype}) MODE" if subtype else f"{mode.value.upper()} MODE"
    return Regime(mode=mode, label=label, reasons=_bullets(section)), []


# ── Entry quality ─────────────────────────────────────────────

ENTRY_QUALITY = re.compile(r"Entry\s*Quality[^\d\n]{0,12}(\d)\s*/\s*5", re.I)
SCORE_LABEL = re.compile(r"(?:score|quality|rating)[^\d\n]{0,6}(\d)(?:\s*/\s*5)?", re.I)
OUT_OF_FIVE = re.compile(r"(\d)\s*/\s*5")


def extract_entry_quality(section: str, full_text: str, mode: Mode) -> tuple[EntryQuality, list[str]]:
    strategies = [
        lambda _: _search_float(ENTRY_QUALITY)(full_text),
        lambda _: _search_float(SCORE_LABEL)(section) if section else None,
        lambda _: _search_float(OUT_OF_FIVE)(section) if section else None,
    ]
    score, matched = first_match(strategies, full_text)
    if matched:
        score = min(max(int(score), 1), 5)
    else:
        score = MODE_INFO[mode]["entry_quality"]
    return EntryQuality(
        score=score,
        label=ENTRY_QUALITY_LABELS[score],
        factors=_bullets(section),
    ), []


# ── Alert levels ──────────────────────────────────────────────

# Row patterns stay on one line so an optional trailing cell can't eat the next row
EMOJI_ROW = re.compile(
    rf"^[ \t]*\|[ \t]*(🟢|🟡|🔴)[ \t]*\|[ \t]*\**\$?[ \t]*{NUMBER}[ \t]*\**[ \t]*\|"
    rf"[ \t]*([^|\n]+?)[ \t]*\|[ \t]*([^|\n]*?)[ \t]*\|(?:[ \t]*([^|\n]*?)[ \t]*\|)?",
    re.M,
)
TABLE_ROW = re.compile(
    rf"^[ \t]*\|[ \t]*([^|\n]+?)[ \t]*\|[ \t]*\**\$?[ \t]*{NUMBER}[ \t]*\**[ \t]*\|"
    rf"[ \t]*([^|\n]*?)[ \t]*\|(?:[ \t]*([^|\n]*?)[ \t]*\|)?",
    re.M,
)
LINE_LEVEL = re.compile(
    rf"^\s*(?:[-*•]\s+)?\**([^:\n|$]+?)\**\s*:\s*\**\s*\$?\s*{NUMBER}\s*\**\s*[-–—]\s*(.+?)\s*$",
    re.M,
)
HEADER_LEVEL_UPSIDE = re.compile(r"trim|breakout|take profit", re.I)
HEADER_LEVEL_DOWNSIDE = re.compile(r"nibble|pause|buy", re.I)


def classify_direction(level_name: str, action: str) -> Direction:
    if DOWNSIDE_KEYWORDS.search(level_name) or DOWNSIDE_KEYWORDS.search(action):
        return Direction.DOWNSIDE
    return Direction.UPSIDE


def _is_label_row(name: str) -> bool:
    lowered = name.lower().strip()
    return (
        not lowered
        or lowered in HEADER_NAMES
        or lowered.startswith("---")
        or lowered.startswith(":--")
        or "current price" in lowered
    )


def _header_levels(header: dict) -> Optional[list[AlertLevelSpec]]:
    levels = header.get("levels")
    if not isinstance(levels, list) or not levels:
        return None
    close = to_float(header.get("price_close")) or 0.0

    specs = []
    for level in levels:
        if not isinstance(level, dict):
            continue
        name = str(level.get("name") or "").strip()
        price = to_float(level.get("price"))
        action = level.get("action")
        # Null action marks the current-price row
        if not action or not name or price is None or price <= 0 or _is_label_row(name):
            continue
        action = str(action).strip()
        if DOWNSIDE_KEYWORDS.search(name) or DOWNSIDE_KEYWORDS.search(action):
            direction = Direction.DOWNSIDE
        elif HEADER_LEVEL_UPSIDE.search(action):
            direction = Direction.UPSIDE
        elif HEADER_LEVEL_DOWNSIDE.search(action):
            direction = Direction.DOWNSIDE
        else:
            direction = Direction.UPSIDE if price > close else Direction.DOWNSIDE
        specs.append(AlertLevelSpec(level_name=name, price=price, direction=direction, action=action))
    return specs or None


def _emoji_table(text: str) -> Optional[list[AlertLevelSpec]]:
    specs = []
    for match in EMOJI_ROW.finditer(text):
        emoji, raw_price, name, action, reason = match.groups()
        price = to_float(raw_price)
        name, action, reason = _clean(name), _clean(action), _clean(reason or "")
        if price is None or price <= 0 or _is_label_row(name):
            continue
        if emoji == "🔴":
            direction = Direction.DOWNSIDE
        elif emoji == "🟢":
            direction = Direction.UPSIDE
        else:
            direction = classify_direction(name, action)
            reason = reason or "Caution level"
        specs.append(AlertLevelSpec(
            level_name=name, price=price, direction=direction, action=action, reason=reason,
        ))
    return specs or None


def _pipe_table(text: str) -> Optional[list[AlertLevelSpec]]:
    specs = []
    for match in TABLE_ROW.finditer(text):
        name, raw_price, action, reason = match.groups()
        price = to_float(raw_price)
        name, action, reason = _clean(name), _clean(action), _clean(reason or "")
        if price is None or price <= 0 or _is_label_row(name) or name in EMOJI_MODES:
            continue
        specs.append(AlertLevelSpec(
            level_name=name,
            price=price,
            direction=classify_direction(name, action),
            action=action,
            reason=reason,
        ))
    return specs or None


def _line_levels(text: str) -> Optional[list[AlertLevelSpec]]:
    specs = []
    for match in LINE_LEVEL.finditer(text):
        name, raw_price, action = match.groups()
        price = to_float(raw_price)
        name, action = _clean(name), _clean(action)
        if price is None or price <= 0 or _is_label_row(name):
            continue
        specs.append(AlertLevelSpec(
            level_name=name,
            price=price,
            direction=classify_direction(name, action),
            action=action,
        ))
    return specs or None


def _sort_levels(specs: list[AlertLevelSpec]) -> list[AlertLevelSpec]:
    """Upside first, then downside; each from highest to lowest price."""
    return sorted(
        specs,
        key=lambda s: (0 if s.direction == Direction.UPSIDE else 1, -s.price),
    )


def extract_alert_levels(section: str, full_text: str, header: dict) -> tuple[list[AlertLevelSpec], list[str]]:
    strategies = [lambda _: _header_levels(header)]
    # Tables elsewhere in the report (metrics, sizing) are not levels
    if section:
        strategies += [_emoji_table, _pipe_table, _line_levels]
    specs, matched = first_match(strategies, section)
    if not matched:
        return [], ["Could not extract any alert levels"]
    return _sort_levels(specs), []


MASTER_EJECT = re.compile(
    rf"Master\s*Eject(?:\s*Level)?\**\s*[:|]?\s*\**\s*\$?\s*{NUMBER}", re.I
)


def extract_master_eject(levels: list[AlertLevelSpec], full_text: str, header: dict) -> tuple[Optional[float], list[str]]:
    def from_levels(_):
        for spec in levels:
            if "eject" in spec.level_name.lower():
                return spec.price
        return None

    strategies = [
        lambda _: to_float(_header_value(header, "master_eject")),
        from_levels,
        _search_float(MASTER_EJECT),
    ]
    price, matched = first_match(strategies, full_text)
    if not matched or price <= 0:
        return None, ["Could not extract Master Eject price"]
    return price, []


# ── Position guidance ─────────────────────────────────────────

DAILY_CAP = re.compile(r"Daily\s*Cap\**\s*[:|]?\s*\**\s*(\d+)(?:\s*[-–]\s*(\d+))?\s*%", re.I)
CAP = re.compile(r"\bcap\b[^\d\n]{0,5}(\d+)\s*%", re.I)
STANCE_ROW = re.compile(r"\|\s*\**(?:Posture|Positioning|Stance)\**\s*\|\s*([^|\n]+?)\s*\|", re.I)
STANCE_LINE = re.compile(r"\b(?:stance|posture)\**\s*:\s*\**\s*([^\n.*]+)", re.I)
VEHICLE_ROW = re.compile(r"\|\s*\**Vehicle\**\s*\|\s*([^|\n]+?)\s*\|", re.I)
VEHICLE_LINE = re.compile(r"\bVehicle\**\s*:\s*\**\s*([^\n*]+)", re.I)
SIZE = re.compile(r"\b(full|partial|toe-in|minimal|none|zero|nibbles?)\b", re.I)


def _daily_cap(text: str) -> Optional[int]:
    match = DAILY_CAP.search(text)
    if match:
        low = int(match.group(1))
        high = int(match.group(2)) if match.group(2) else low
        return round((low + high) / 2)
    match = CAP.search(text)
    return int(match.group(1)) if match else None


def _header_cap(value) -> Optional[int]:
    cap = to_float(value)
    if cap is None or not 0 < cap <= 100:
        return None
    return int(cap)


def _stance(text: str) -> Optional[str]:
    match = STANCE_ROW.search(text) or STANCE_LINE.search(text)
    if not match:
        return None
    stance = re.sub(r"^[🟢🟡🟠🔴]\s*", "", _clean(match.group(1)))
    return stance.split("—")[0].strip() or None


def _vehicle(text: str) -> Optional[str]:
    match = VEHICLE_ROW.search(text) or VEHICLE_LINE.search(text)
    return _clean(match.group(1)) if match else None


def extract_position_guidance(section: str, full_text: str, header: dict, mode: Mode) -> tuple[PositionGuidance, list[str]]:
    header_cap = _header_value(header, "daily_cap_pct")
    cap, cap_found = first_match([
        lambda _: _header_cap(header_cap),
        lambda _: _daily_cap(section) if section else None,
        lambda _: _daily_cap(full_text),
    ], full_text)
    stance, stance_found = first_match([
        lambda _: _header_value(header, "positioning", "posture"),
        lambda _: _stance(section) if section else None,
        lambda _: _stance(full_text),
    ], full_text)
    vehicle, _ = first_match([
        lambda _: _header_value(header, "vehicle"),
        lambda _: _vehicle(section or full_text),
    ], full_text)
    size_match = SIZE.search(section) if section else None

    guidance = PositionGuidance(
        stance=str(stance or ""),
        daily_cap_pct=cap if cap_found else MODE_INFO[mode]["cap_pct"],
        size_recommendation=size_match.group(1).capitalize() if size_match else "",
        vehicle=str(vehicle or ""),
        notes=_bullets(section),
    )

    warnings = []
    if not section and not cap_found and not stance_found:
        warnings.append("Could not locate position guidance")
    return guidance, warnings


# ── Scenarios ─────────────────────────────────────────────────

IF_THEN = re.compile(
    r"^\s*(?:[-*•]\s*|\d+\.\s*)?\**IF\**\s*:?\s*(.+?)\s*(?:\bTHEN\b|→|->)\s*:?\s*(.+?)\s*$",
    re.I | re.M,
)
NUMBERED = re.compile(r"^\s*\d+\.\s*(?!IF\b)\**([^:\n]+?)\**\s*:\s+(.+?)\s*$", re.I | re.M)


def extract_scenarios(section: str, full_text: str) -> tuple[list[Scenario], list[str]]:
    scope = section or full_text
    scenarios = []
    seen = set()

    patterns = [IF_THEN, NUMBERED] if section else [IF_THEN]
    for pattern in patterns:
        for match in pattern.finditer(scope):
            condition, action = _clean(match.group(1)), _clean(match.group(2))
            condition = condition.rstrip(",:")
            if not condition or not action or condition in seen:
                continue
            seen.add(condition)
            scenarios.append(Scenario(condition=condition, action=action))

    if not scenarios:
        return [], ["Could not extract game plan scenarios"]
    return scenarios, []


# ── Performance review ────────────────────────────────────────

SCORECARD = re.compile(r"Scorecard[^\d\n]{0,5}(\d+)\s*/\s*(\d+)", re.I)
SCORE_OF = re.compile(r"(\d+)\s*(?:/|of)\s*(\d+)")
FORECAST = re.compile(
    r"^\s*[-*•]\s*(.+?)\s*[:—–-]+\s*\**\s*(incorrect|correct|partial|hit|miss|✓|✗|✅|❌)",
    re.I | re.M,
)
FORECAST_RESULTS = {
    "correct": "correct", "hit": "correct", "✓": "correct", "✅": "correct",
    "incorrect": "incorrect", "miss": "incorrect", "✗": "incorrect", "❌": "incorrect",
    "partial": "partial",
}


def extract_performance_review(section: str) -> tuple[Optional[PerformanceReview], list[str]]:
    # Not every report reviews a prior day; absence is not a warning
    if not section:
        return None, []

    def score(pattern):
        def strategy(text):
            match = pattern.search(text)
            return (int(match.group(1)), int(match.group(2))) if match else None
        return strategy

    found, matched = first_match([score(SCORECARD), score(SCORE_OF)], section)
    if not matched:
        return None, []

    correct, total = found
    forecasts = [
        ForecastOutcome(
            prediction=_clean(m.group(1)),
            result=FORECAST_RESULTS[m.group(2).lower()],
        )
        for m in FORECAST.finditer(section)
    ]
    return PerformanceReview(correct=correct, total=total, forecasts=forecasts), []
