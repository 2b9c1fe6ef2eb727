"""Health page: monitor status, staleness and recent triggers."""

import streamlit as st
import pandas as pd

from levelwatch.db import init_db
from levelwatch.services.health import get_health

STATUS_BADGE = {"healthy": "🟢", "warning": "🟡", "critical": "🔴"}


def render():
    st.header("Monitor Health")
    init_db()

    h = get_health()
    health, pm, alerts = h["health"], h["price_monitor"], h["alerts"]

    badge = STATUS_BADGE.get(health["status"], "⚪")
    if health["status"] == "critical":
        st.error(f"{badge} {health['message']}")
    elif health["status"] == "warning":
        st.warning(f"{badge} {health['message']}")
    else:
        st.success(f"{badge} {health['message']}")

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Last price", f"${pm['last_price']:,.2f}" if pm["last_price"] else "-")
    c2.metric("Minutes since run", pm["stale_minutes"] if pm["stale_minutes"] is not None else "-")
    c3.metric("Pending levels", alerts["pending"])
    c4.metric("Triggered (24h)", alerts["triggered_last_24h"])

    st.caption(
        f"Market hours: {'open' if health['is_market_hours'] else 'closed'} | "
        f"Enabled: {'yes' if pm['enabled'] else 'no'} | Last run: {pm['last_run'] or 'never'}"
    )
    if pm["last_error"]:
        st.warning(f"Last error at {pm['last_error_at']}: {pm['last_error']}")

    st.subheader("Recent triggers")
    if alerts["recent_triggers"]:
        st.dataframe(pd.DataFrame(alerts["recent_triggers"]), use_container_width=True, hide_index=True)
    else:
        st.info("No levels triggered in the last 24 hours.")
