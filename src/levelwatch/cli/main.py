"""CLI entry point using Click + Rich."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from levelwatch.config import settings

console = Console()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

HEALTH_COLORS = {"healthy": "green", "warning": "yellow", "critical": "red"}


@click.group()
def cli():
    """Daily report level monitor: parse reports, watch price, alert on crossings."""
    pass


# ── Report commands ────────────────────────────────────────────

@cli.group()
def report():
    """Parse and publish daily reports."""
    pass


def _levels_table(levels: list[dict], title: str) -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("Level", style="cyan bold")
    table.add_column("Price", justify="right")
    table.add_column("Dir", width=9)
    table.add_column("Action")
    for lvl in levels:
        color = "red" if lvl["direction"] == "downside" else "green"
        table.add_row(
            lvl["level_name"],
            f"${lvl['price']:,.2f}",
            f"[{color}]{lvl['direction']}[/]",
            lvl.get("action") or "-",
        )
    return table


@report.command("parse")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print the preview as JSON")
def report_parse(path, as_json):
    """Preview what would be extracted from a report, without saving."""
    from levelwatch.services.publisher import preview_report

    preview = preview_report(path.read_text(encoding="utf-8"))
    if as_json:
        click.echo(json.dumps(preview, indent=2, default=str))
        return

    s = preview["summary"]
    close = f"${s['close']:,.2f}" if s["close"] else "[red]missing[/]"
    eject = f"${s['master_eject']:,.2f}" if s["master_eject"] else "[red]missing[/]"
    console.print(Panel(
        f"Close: {close}  |  Mode: [bold]{s['mode'].upper()}[/]  |  Entry quality: {s['entry_quality']}/5\n"
        f"Stance: {s['stance'] or '-'}  |  Daily cap: {s['daily_cap_pct'] or '-'}%  |  Master Eject: {eject}",
        title=f"[bold]{path.name}[/]",
    ))
    console.print(_levels_table(s["alert_levels"], f"{len(s['alert_levels'])} Alert Levels"))

    for w in preview["warnings"]:
        console.print(f"[yellow]⚠ {w}[/]")
    for p in preview["problems"]:
        console.print(f"[red]✗ {p}[/]")

    threshold = settings.max_publish_warnings
    if len(preview["warnings"]) > threshold:
        console.print(f"[red]{len(preview['warnings'])} warnings exceeds publish threshold ({threshold}); "
                      "publishing will need --force[/]")
    elif not preview["success"]:
        console.print("[red]Report is unfit to monitor; publishing will need --force[/]")
    else:
        console.print("[green]Ready to publish.[/]")


@report.command("publish")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--date", "report_date", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Report date (default: today, exchange time)")
@click.option("--symbol", default=None, help=f"Symbol (default: {settings.symbol})")
@click.option("--force", is_flag=True, help="Publish even when the report fails the warning or validation gate")
@click.option("--announce/--no-announce", default=True, help="Send a new-report notice to channels")
def report_publish(path, report_date, symbol, force, announce):
    """Persist a report and arm its alert levels."""
    from levelwatch.errors import PublishRejectedError
    from levelwatch.services.publisher import publish_report

    try:
        result = publish_report(
            path.read_text(encoding="utf-8"),
            report_date=report_date.date() if report_date else None,
            symbol=symbol,
            force=force,
            announce=announce,
        )
    except PublishRejectedError as e:
        console.print(f"[red]{e}[/]")
        for p in e.problems:
            console.print(f"  [red]✗ {p}[/]")
        for w in e.warnings:
            console.print(f"  [yellow]⚠ {w}[/]")
        sys.exit(1)

    console.print(
        f"[green]Published {result['symbol']} report {result['report_date']}[/] "
        f"(id {result['report_id']}, {result['levels']} levels, {len(result['warnings'])} warnings)"
    )
    if result["forced"]:
        console.print("[yellow]Published with --force[/]")
    for channel, ok in result["announced"].items():
        console.print(f"  {channel}: {'[green]sent[/]' if ok else '[red]failed[/]'}")


# ── Level commands ─────────────────────────────────────────────

@cli.group()
def levels():
    """Inspect alert levels."""
    pass


@levels.command("list")
@click.option("--symbol", default=None)
@click.option("--all", "show_all", is_flag=True, help="Include triggered levels")
def levels_list(symbol, show_all):
    """Levels of the latest report."""
    from levelwatch.db import init_db
    from levelwatch.services.level_store import get_latest_report, get_levels_for_report

    init_db()
    latest = get_latest_report(symbol)
    if latest is None:
        console.print("[yellow]No report published yet. Run `levelwatch report publish FILE`.[/]")
        return

    rows = get_levels_for_report(latest.id)
    if not show_all:
        rows = [lvl for lvl in rows if lvl.is_pending]

    table = Table(title=f"{latest.symbol} levels from {latest.report_date}", show_lines=False)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Level", style="cyan bold")
    table.add_column("Price", justify="right")
    table.add_column("Dir")
    table.add_column("Action")
    table.add_column("Triggered")
    for lvl in sorted(rows, key=lambda x: x.price, reverse=True):
        color = "red" if lvl.direction == "downside" else "green"
        table.add_row(
            str(lvl.id),
            lvl.level_name,
            f"${lvl.price:,.2f}",
            f"[{color}]{lvl.direction}[/]",
            lvl.action or "-",
            lvl.triggered_at.strftime("%Y-%m-%d %H:%M") if lvl.triggered_at else "-",
        )
    console.print(table)


# ── Monitor commands ───────────────────────────────────────────

@cli.group()
def monitor():
    """Run and control the price monitor."""
    pass


@monitor.command("tick")
@click.option("--symbol", default=None)
def monitor_tick(symbol):
    """Run a single monitor tick now."""
    from levelwatch.config import validate_monitor_config
    from levelwatch.db import init_db
    from levelwatch.errors import ConfigurationError
    from levelwatch.services.price_monitor import run_tick

    try:
        validate_monitor_config()
    except ConfigurationError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(2)

    init_db()
    summary = run_tick(symbol=symbol)

    if summary["status"] == "disabled":
        console.print("[yellow]Monitor is disabled. Run `levelwatch monitor enable`.[/]")
        return
    if summary["status"] == "price_unavailable":
        console.print(f"[red]No price: {summary['error']}[/]")
        sys.exit(1)

    prev = f"${summary['previous_price']:,.2f}" if summary["previous_price"] is not None else "none (cold start)"
    console.print(
        f"{summary['symbol']} [bold]${summary['price']:,.2f}[/] via {summary['source']} "
        f"(previous {prev}), {summary['checked']} pending checked"
    )
    for t in summary["triggered"]:
        tag = " [magenta]COLD-START[/]" if t["cold_start"] else ""
        console.print(f"  [bold red]TRIGGERED[/] {t['level_name']} ${t['price']:,.2f} ({t['direction']}){tag}")
    if summary["already_triggered"]:
        console.print(f"  [dim]{summary['already_triggered']} already triggered by another run[/]")


@monitor.command("run")
@click.option("--now", "run_now", is_flag=True, help="Tick immediately before waiting for the schedule")
def monitor_run(run_now):
    """Start the scheduler loop (Ctrl+C to stop)."""
    from levelwatch.errors import ConfigurationError
    from levelwatch.scheduler.monitor_job import start_scheduler

    console.print("[bold green]Starting price monitor...[/]")
    console.print("Press Ctrl+C to stop.\n")
    try:
        start_scheduler(run_now=run_now)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(2)


@monitor.command("enable")
def monitor_enable():
    """Resume monitoring."""
    from levelwatch.db import init_db
    from levelwatch.services.run_state import set_enabled

    init_db()
    set_enabled(True)
    console.print("[green]Monitor enabled.[/]")


@monitor.command("disable")
def monitor_disable():
    """Pause monitoring; ticks become no-ops and health reports critical."""
    from levelwatch.db import init_db
    from levelwatch.services.run_state import set_enabled

    init_db()
    set_enabled(False)
    console.print("[yellow]Monitor disabled.[/]")


# ── Health command ─────────────────────────────────────────────

@cli.command("health")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def health(as_json):
    """Show monitor health, pending levels and recent triggers."""
    from levelwatch.db import init_db
    from levelwatch.services.health import get_health

    init_db()
    h = get_health()
    if as_json:
        click.echo(json.dumps(h, indent=2, default=str))
        return

    status = h["health"]["status"]
    pm = h["price_monitor"]
    color = HEALTH_COLORS.get(status, "white")
    last_price = f"${pm['last_price']:,.2f}" if pm["last_price"] else "-"
    console.print(Panel(
        f"[{color} bold]{status.upper()}[/]: {h['health']['message']}\n"
        f"Market hours: {'yes' if h['health']['is_market_hours'] else 'no'}  |  "
        f"Enabled: {'yes' if pm['enabled'] else 'no'}\n"
        f"Last run: {pm['last_run'] or 'never'} ({pm['stale_minutes'] if pm['stale_minutes'] is not None else '-'} min ago)"
        f"  |  Last price: {last_price}",
        title="[bold]Price Monitor[/]",
    ))
    if pm["last_error"]:
        console.print(f"[red]Last error ({pm['last_error_at']}): {pm['last_error']}[/]")

    alerts = h["alerts"]
    console.print(f"\n[bold]{alerts['pending']} pending[/] (report {alerts['report_date'] or '-'}), "
                  f"{alerts['triggered_last_24h']} triggered in last 24h")
    if alerts["recent_triggers"]:
        table = Table(title="Recent Triggers")
        table.add_column("Level", style="cyan")
        table.add_column("Price", justify="right")
        table.add_column("Dir")
        table.add_column("At")
        for t in alerts["recent_triggers"]:
            table.add_row(t["level"], f"${t['price']:,.2f}", t["direction"], t["triggered_at"])
        console.print(table)


# ── Notify commands ────────────────────────────────────────────

@cli.group()
def notify():
    """Notification channel setup and testing."""
    pass


@notify.command("test")
def notify_test():
    """Send a test notice through every configured channel."""
    from levelwatch.db import init_db
    from levelwatch.services.dispatcher import build_dispatcher

    init_db()
    dispatcher = build_dispatcher()
    if not dispatcher.channels:
        console.print("[red]No channels configured.[/] Set LEVELWATCH_DISCORD_WEBHOOK_URL, "
                      "LEVELWATCH_TELEGRAM_BOT_TOKEN/LEVELWATCH_TELEGRAM_CHAT_ID or "
                      "LEVELWATCH_RESEND_API_KEY/LEVELWATCH_EMAIL_TO.")
        return

    console.print(f"Sending test notice via {', '.join(c.name for c in dispatcher.channels)}...")
    results = dispatcher.dispatch_notice({
        "title": "✅ levelwatch test",
        "lines": [f"Notifications are working. {datetime.utcnow():%Y-%m-%d %H:%M} UTC"],
    })
    for r in results:
        if r.success:
            console.print(f"  [green]{r.channel}: sent[/]")
        else:
            console.print(f"  [red]{r.channel}: {r.error}[/]")


# ── Dashboard command ──────────────────────────────────────────

@cli.command("dashboard")
def launch_dashboard():
    """Launch the Streamlit operator dashboard."""
    import subprocess
    app_path = str(Path(__file__).resolve().parent.parent / "dashboard" / "app.py")
    console.print("[bold green]Launching Streamlit dashboard...[/]")
    subprocess.run(["streamlit", "run", app_path])


if __name__ == "__main__":
    cli()
