"""Message rendering for level triggers and report announcements.

One renderer per channel format: Discord embed dict, Telegram HTML, and an
email subject/html/text triple.
"""

import html
from datetime import datetime

from levelwatch.modes import mode_info
from levelwatch.schemas import Direction, TriggerEvent

DOWNSIDE_COLOR = 0xEF4444
UPSIDE_COLOR = 0x22C55E


def _direction_emoji(direction) -> str:
    return "🔻" if Direction(direction) == Direction.DOWNSIDE else "🔺"


def _timestamp(at: datetime = None) -> str:
    return (at or datetime.utcnow()).strftime("%d %b %Y, %H:%M UTC")


def trigger_title(event: TriggerEvent) -> str:
    return f"{_direction_emoji(event.direction)} {event.symbol} {event.level_name} ${event.price:,.2f} hit"


def format_trigger_discord(event: TriggerEvent) -> dict:
    """Discord webhook payload with a single embed."""
    info = mode_info(event.mode)
    fields = [
        {"name": "Level", "value": f"${event.price:,.2f}", "inline": True},
        {"name": "Price", "value": f"${event.current_price:,.2f}", "inline": True},
        {"name": "Direction", "value": event.direction.value.title(), "inline": True},
    ]
    if event.action:
        fields.append({"name": "Action", "value": event.action[:1024], "inline": False})
    if event.reason:
        fields.append({"name": "Why", "value": event.reason[:1024], "inline": False})
    fields.append({"name": "Mode", "value": f"{info['emoji']} {event.mode.value.upper()}", "inline": True})
    fields.append({"name": "Daily cap", "value": info["cap"], "inline": True})
    if event.master_eject:
        fields.append({"name": "Master Eject", "value": f"${event.master_eject:,.2f}", "inline": True})

    footer = "Cold start: no prior sample" if event.cold_start else "levelwatch"
    return {
        "embeds": [{
            "title": trigger_title(event),
            "color": DOWNSIDE_COLOR if event.direction == Direction.DOWNSIDE else UPSIDE_COLOR,
            "fields": fields,
            "footer": {"text": footer},
            "timestamp": event.triggered_at.isoformat(),
        }]
    }


def format_trigger_telegram(event: TriggerEvent) -> str:
    info = mode_info(event.mode)
    esc = html.escape
    lines = [
        f"<b>{esc(trigger_title(event))}</b>",
        f"Now: <b>${event.current_price:,.2f}</b>",
    ]
    if event.previous_price is not None:
        lines.append(f"Previous: ${event.previous_price:,.2f}")
    if event.action:
        lines.append(f"➡️ {esc(event.action)}")
    if event.reason:
        lines.append(f"<i>{esc(event.reason)}</i>")
    lines.append("")
    lines.append(f"Mode: {info['emoji']} <b>{event.mode.value.upper()}</b> | Cap: {info['cap']}")
    if event.master_eject:
        lines.append(f"🛑 Master Eject: ${event.master_eject:,.2f}")
    lines.append(f"<i>{_timestamp(event.triggered_at)}</i>")
    return "\n".join(lines)


def format_trigger_email(event: TriggerEvent) -> tuple[str, str, str]:
    """Returns (subject, html, text)."""
    info = mode_info(event.mode)
    subject = f"[{event.symbol}] {event.level_name} ${event.price:,.2f} triggered"

    rows = [
        ("Level", f"${event.price:,.2f}"),
        ("Current price", f"${event.current_price:,.2f}"),
        ("Direction", event.direction.value.title()),
        ("Action", event.action or "-"),
        ("Reason", event.reason or "-"),
        ("Mode", f"{info['emoji']} {event.mode.value.upper()} ({info['cap']})"),
    ]
    if event.master_eject:
        rows.append(("Master Eject", f"${event.master_eject:,.2f}"))

    body_rows = "".join(
        f"<tr><td style=\"padding:4px 12px 4px 0;color:#666\">{html.escape(k)}</td>"
        f"<td style=\"padding:4px 0\"><b>{html.escape(v)}</b></td></tr>"
        for k, v in rows
    )
    html_body = (
        f"<h2>{html.escape(trigger_title(event))}</h2>"
        f"<table>{body_rows}</table>"
        f"<p style=\"color:#666\">{html.escape(info['guidance'])}</p>"
        f"<p style=\"color:#999;font-size:12px\">{_timestamp(event.triggered_at)}</p>"
    )
    text_body = "\n".join(f"{k}: {v}" for k, v in rows) + f"\n\n{info['guidance']}\n{_timestamp(event.triggered_at)}"
    return subject, html_body, text_body


def format_report_announcement(symbol: str, report_date, fields) -> dict:
    """Channel-neutral summary of a freshly published report.

    Returns {"title", "lines", "color"}; channels render it in their own format.
    """
    info = mode_info(fields.regime.mode)
    lines = []
    if fields.key_metrics.close:
        change = fields.key_metrics.change_pct
        change_text = f" ({change:+.2f}%)" if change is not None else ""
        lines.append(f"Close: ${fields.key_metrics.close:,.2f}{change_text}")
    lines.append(f"Mode: {info['emoji']} {fields.regime.mode.value.upper()} | Cap: {info['cap']}")
    if fields.position_guidance.stance:
        lines.append(f"Stance: {fields.position_guidance.stance}")
    lines.append(f"Entry quality: {fields.entry_quality.score}/5")
    if fields.master_eject:
        lines.append(f"Master Eject: ${fields.master_eject:,.2f}")
    for lvl in fields.alert_levels[:8]:
        lines.append(f"{_direction_emoji(lvl.direction)} ${lvl.price:,.2f} {lvl.level_name}")
    return {
        "title": f"📊 {symbol} daily report {report_date}",
        "lines": lines,
        "color": info["color"],
    }
