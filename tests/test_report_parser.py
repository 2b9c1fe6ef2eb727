"""Tests for the daily report parser."""

import pytest

from levelwatch.schemas import Direction, Mode
from levelwatch.services.report_parser import (
    parse_report, split_sections, read_header, validate_extracted,
)


def _level(result, name):
    return next(lvl for lvl in result.fields.alert_levels if lvl.level_name == name)


def test_master_eject_row_parses_as_downside():
    text = (
        "## Key Levels\n"
        "| Level | Price | Action | Reason |\n"
        "|---|---|---|---|\n"
        "| Master Eject | $380.00 | Exit all positions | structure broken |\n"
    )
    result = parse_report(text)
    lvl = _level(result, "Master Eject")
    assert lvl.price == pytest.approx(380.00)
    assert lvl.direction == Direction.DOWNSIDE
    assert lvl.action == "Exit all positions"
    assert lvl.reason == "structure broken"
    assert result.fields.master_eject == pytest.approx(380.00)


def test_full_report(sample_report):
    result = parse_report(sample_report)
    f = result.fields

    assert result.warnings == []
    assert f.key_metrics.close == pytest.approx(395.20)
    assert f.key_metrics.change_pct == pytest.approx(-1.8)
    assert f.key_metrics.volume == pytest.approx(98_500_000)
    assert f.regime.mode == Mode.YELLOW
    assert f.regime.label == "YELLOW (Improving) MODE"
    assert f.entry_quality.score == 3
    assert f.position_guidance.stance == "Cautious accumulation"
    assert f.position_guidance.vehicle == "Shares"
    assert len(f.scenarios) == 2
    assert f.performance_review is None


def test_levels_sorted_upside_then_downside(sample_report):
    levels = parse_report(sample_report).fields.alert_levels
    assert [(lvl.level_name, lvl.direction) for lvl in levels] == [
        ("Breakout Trigger", Direction.UPSIDE),
        ("Trim Zone", Direction.UPSIDE),
        ("Support", Direction.DOWNSIDE),
        ("Master Eject", Direction.DOWNSIDE),
    ]


def test_header_and_separator_rows_are_discarded(sample_report):
    names = [lvl.level_name for lvl in parse_report(sample_report).fields.alert_levels]
    assert "Level" not in names
    assert not any(name.startswith("-") for name in names)


def test_graceful_degradation():
    result = parse_report("Lorem ipsum dolor sit amet.")
    f = result.fields
    assert f.key_metrics.close is None
    assert f.alert_levels == []
    assert f.master_eject is None
    assert f.scenarios == []
    assert f.performance_review is None
    assert result.warnings
    assert "Could not extract close price" in result.warnings
    assert "Could not extract any alert levels" in result.warnings


@pytest.mark.parametrize("raw", ["", None, 42, "###\n|||\n---", "\x00\x01 garbage $$$ | |"])
def test_never_raises(raw):
    result = parse_report(raw)
    assert result.warnings


def test_unknown_regime_defaults_to_most_conservative():
    result = parse_report("Nothing here says anything about the market.")
    assert result.fields.regime.mode == Mode.RED
    assert any("regime" in w for w in result.warnings)
    # Default entry quality and cap follow the defensive mode
    assert result.fields.entry_quality.score == 1
    assert result.fields.position_guidance.daily_cap_pct == 5


def test_deterministic(sample_report):
    first = parse_report(sample_report).model_dump_json()
    second = parse_report(sample_report).model_dump_json()
    assert first == second


def test_line_fallback_when_no_table():
    text = (
        "## Alerts to Set\n"
        "- Breakout: $420 - Add on strength\n"
        "- Stop Loss: $380 - Exit everything\n"
    )
    levels = parse_report(text).fields.alert_levels
    assert [(lvl.level_name, lvl.price, lvl.direction) for lvl in levels] == [
        ("Breakout", 420.0, Direction.UPSIDE),
        ("Stop Loss", 380.0, Direction.DOWNSIDE),
    ]


def test_emoji_table_rows():
    text = (
        "## Levels Map\n"
        "| | Price | Level | Action |\n"
        "|---|---|---|---|\n"
        "| 🟢 | $460 | Breakout | Trim 20% |\n"
        "| 🟡 | $430 | Pivot | Watch |\n"
        "| 🔴 | $400 | Master Eject | Exit all |\n"
    )
    result = parse_report(text)
    levels = {lvl.level_name: lvl for lvl in result.fields.alert_levels}
    assert set(levels) == {"Breakout", "Pivot", "Master Eject"}
    assert levels["Breakout"].direction == Direction.UPSIDE
    assert levels["Pivot"].reason == "Caution level"
    assert levels["Master Eject"].direction == Direction.DOWNSIDE
    assert result.fields.master_eject == pytest.approx(400)


def test_non_numeric_price_rows_are_skipped():
    text = (
        "## Key Levels\n"
        "| Level | Price | Action |\n"
        "| Resistance | TBD | Watch |\n"
        "| Support | $385 | Nibble |\n"
    )
    levels = parse_report(text).fields.alert_levels
    assert [lvl.level_name for lvl in levels] == ["Support"]


def test_yaml_front_matter_preferred():
    text = (
        "---\n"
        "mode: green\n"
        "price_close: 402.5\n"
        "master_eject: 371\n"
        "levels:\n"
        "  - {name: Current Price, price: 402.5, action: null}\n"
        "  - {name: Trim Zone, price: 430, action: Trim 20%}\n"
        "  - {name: Nibble Zone, price: 390, action: Nibble}\n"
        "  - {name: Master Eject, price: 371, action: Exit all}\n"
        "---\n"
        "# Report\n"
        "Close: $999\n"
    )
    result = parse_report(text)
    f = result.fields
    assert f.regime.mode == Mode.GREEN
    assert f.key_metrics.close == pytest.approx(402.5)
    assert f.master_eject == pytest.approx(371)
    levels = {lvl.level_name: lvl.direction for lvl in f.alert_levels}
    assert levels == {
        "Trim Zone": Direction.UPSIDE,
        "Nibble Zone": Direction.DOWNSIDE,
        "Master Eject": Direction.DOWNSIDE,
    }


def test_report_data_comment():
    text = '<!-- REPORT_DATA {"mode": "orange", "price_close": 250.0} -->\n# Report\n'
    header, body, warnings = read_header(text)
    assert header == {"mode": "orange", "price_close": 250.0}
    assert "REPORT_DATA" not in body
    assert warnings == []
    assert parse_report(text).fields.regime.mode == Mode.ORANGE


def test_broken_header_is_a_warning():
    text = "<!-- REPORT_DATA {not json} -->\n# Report\n"
    result = parse_report(text)
    assert any("REPORT_DATA" in w for w in result.warnings)


def test_split_sections_unknown_heading_closes_section():
    body = "## Key Levels\nline a\n## Random Thoughts\nline b\n## Game Plan\nline c\n"
    sections = split_sections(body)
    assert "line a" in sections["key_levels"]
    assert "line b" not in sections["key_levels"]
    assert "line c" in sections["game_plan"]


def test_performance_review():
    text = (
        "## Previous Day Review\n"
        "Scorecard: 2/3\n"
        "- Hold above $380: correct\n"
        "- Push to $420: incorrect\n"
    )
    review = parse_report(text).fields.performance_review
    assert (review.correct, review.total) == (2, 3)
    assert [f.result for f in review.forecasts] == ["correct", "incorrect"]


def test_validate_extracted(sample_report):
    assert validate_extracted(parse_report(sample_report).fields) == []
    problems = validate_extracted(parse_report("nothing").fields)
    assert "Valid close price is required" in problems
    assert "Master Eject price is required" in problems
    assert "At least 2 alert levels are required" in problems


@pytest.mark.parametrize("header", [
    "---\nmode: yellow\ndaily_cap_pct: '1e999'\n---\n# Report\n",
    "---\nmode: yellow\ndaily_cap_pct: .inf\nprice_close: .nan\n---\n# Report\n",
    '<!-- REPORT_DATA {"mode": "yellow", "daily_cap_pct": NaN, "price_close": Infinity} -->\n# Report\n',
])
def test_non_finite_header_values_are_ignored(header):
    result = parse_report(header)
    f = result.fields
    assert f.key_metrics.close is None
    assert "Could not extract close price" in result.warnings
    # Falls back to the mode's default cap
    assert f.position_guidance.daily_cap_pct == 15


def test_non_finite_header_level_is_skipped():
    text = (
        "---\n"
        "price_close: 400\n"
        "levels:\n"
        "  - {name: Trim Zone, price: .nan, action: Trim 20%}\n"
        "  - {name: Breakout, price: 1e999, action: Add}\n"
        "  - {name: Master Eject, price: 371, action: Exit all}\n"
        "---\n"
    )
    levels = parse_report(text).fields.alert_levels
    assert [(lvl.level_name, lvl.price) for lvl in levels] == [("Master Eject", 371.0)]


def test_tables_outside_levels_section_are_not_levels():
    text = (
        "## Executive Summary\n"
        "| Metric | Value | Note |\n"
        "|---|---|---|\n"
        "| **Close** | $395.20 | down on the day |\n"
        "| **High** | $401.00 | intraday |\n"
        "\n"
        "- Breakout: $420 - Add on strength\n"
    )
    result = parse_report(text)
    assert result.fields.key_metrics.close == pytest.approx(395.20)
    assert result.fields.alert_levels == []
    assert "Could not extract any alert levels" in result.warnings
