"""Daily report parser: free-form markdown -> structured fields + warnings.

Pipeline: structured header (YAML front matter or a REPORT_DATA json comment)
-> section split on markdown headings -> independent field extractors.
The parser is pure. It performs no I/O, never raises on malformed input,
and returns the same result for the same text.
"""

import json
import logging
import re

import yaml

from levelwatch.services import extractors
from levelwatch.schemas import ExtractedFields, ParseResult

logger = logging.getLogger(__name__)

PARSER_VERSION = "1.4.0"

FRONT_MATTER = re.compile(r"\A\s*---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)", re.S)
REPORT_DATA = re.compile(r"<!--\s*REPORT_DATA\s*(.*?)-->", re.S)
HEADING = re.compile(r"^\s*#{1,6}\s+(.*)$")

# Heading title -> section name; first pattern that matches wins
SECTION_PATTERNS = [
    ("previous_review", re.compile(r"previous\s+day|yesterday|performance\s+review|scorecard", re.I)),
    ("key_levels", re.compile(r"key\s+levels|levels\s+map|alert\s+levels|alerts(\s+to\s+set)?\b|price\s+levels", re.I)),
    ("position", re.compile(r"position|sizing", re.I)),
    ("game_plan", re.compile(r"game\s+plan|bottom\s+line|scenarios", re.I)),
    ("entry_quality", re.compile(r"entry\s+quality|should\s+you\s+be\s+buying", re.I)),
    ("regime", re.compile(r"regime|\bmode\b", re.I)),
    ("key_metrics", re.compile(r"executive\s+summary|key\s+metrics|price\s+action|market\s+snapshot|summary", re.I)),
]


def read_header(text: str) -> tuple[dict, str, list[str]]:
    """Split an optional structured header from the markdown body."""
    match = FRONT_MATTER.match(text)
    if match:
        try:
            data = yaml.safe_load(match.group(1))
        except yaml.YAMLError:
            return {}, text[match.end():], ["Found front matter but failed to parse YAML"]
        if isinstance(data, dict) and data:
            return data, text[match.end():], []

    match = REPORT_DATA.search(text)
    if match:
        body = (text[:match.start()] + text[match.end():]).strip()
        try:
            data = json.loads(match.group(1).strip())
        except ValueError:
            return {}, body, ["Found REPORT_DATA comment but failed to parse JSON"]
        if isinstance(data, dict):
            return data, body, []
        return {}, body, ["REPORT_DATA comment is not a JSON object"]

    return {}, text, []


def classify_heading(title: str):
    for name, pattern in SECTION_PATTERNS:
        if pattern.search(title):
            return name
    return None


def split_sections(body: str) -> dict[str, str]:
    """Group lines under recognised headings. Unrecognised headings close the
    current section; a repeated section name appends to the earlier text."""
    sections: dict[str, list[str]] = {}
    current = None

    for line in body.splitlines():
        heading = HEADING.match(line)
        if heading:
            current = classify_heading(heading.group(1))
            if current:
                sections.setdefault(current, []).append(line)
            continue
        if current:
            sections[current].append(line)

    return {name: "\n".join(lines).strip() for name, lines in sections.items()}


def parse_report(raw_text) -> ParseResult:
    """Parse a daily report. Always returns a result; problems become warnings."""
    text = raw_text if isinstance(raw_text, str) else ""
    text = text.replace("\r\n", "\n")

    header, body, warnings = read_header(text)
    sections = split_sections(body)

    def section(name):
        return sections.get(name, "")

    key_metrics, w = extractors.extract_key_metrics(section("key_metrics"), body, header)
    warnings += w
    regime, w = extractors.extract_regime(section("regime"), body, header)
    warnings += w
    entry_quality, w = extractors.extract_entry_quality(section("entry_quality"), body, regime.mode)
    warnings += w
    alert_levels, w = extractors.extract_alert_levels(section("key_levels"), body, header)
    warnings += w
    master_eject, w = extractors.extract_master_eject(alert_levels, body, header)
    warnings += w
    position, w = extractors.extract_position_guidance(section("position"), body, header, regime.mode)
    warnings += w
    scenarios, w = extractors.extract_scenarios(section("game_plan"), body)
    warnings += w
    performance, w = extractors.extract_performance_review(section("previous_review"))
    warnings += w

    fields = ExtractedFields(
        key_metrics=key_metrics,
        regime=regime,
        entry_quality=entry_quality,
        alert_levels=alert_levels,
        master_eject=master_eject,
        position_guidance=position,
        scenarios=scenarios,
        performance_review=performance,
    )
    if warnings:
        logger.debug(f"Parsed report with {len(warnings)} warnings: {warnings}")
    return ParseResult(fields=fields, warnings=warnings)


parse = parse_report


def validate_extracted(fields: ExtractedFields) -> list[str]:
    """Problems that make a report unfit for monitoring."""
    problems = []
    if not fields.key_metrics.close:
        problems.append("Valid close price is required")
    if not fields.master_eject:
        problems.append("Master Eject price is required")
    if len(fields.alert_levels) < 2:
        problems.append("At least 2 alert levels are required")
    return problems
