"""Levels page: the latest report's alert levels and their state."""

import streamlit as st
import pandas as pd

from levelwatch.db import init_db
from levelwatch.modes import mode_info
from levelwatch.services.level_store import get_latest_report, get_levels_for_report


def render():
    st.header("Alert Levels")
    init_db()

    report = get_latest_report()
    if report is None:
        st.info("No report published yet. Use `levelwatch report publish FILE`.")
        return

    fields = report.extracted_fields or {}
    mode = (fields.get("regime") or {}).get("mode", "red")
    info = mode_info(mode)
    st.subheader(f"{report.symbol} report for {report.report_date}")
    st.markdown(f"{info['emoji']} **{mode.upper()}** mode, daily cap {info['cap']}. {info['guidance']}")
    if fields.get("master_eject"):
        st.markdown(f"🛑 Master Eject: **${fields['master_eject']:,.2f}**")
    if report.parse_warnings:
        with st.expander(f"{len(report.parse_warnings)} parse warnings"):
            for w in report.parse_warnings:
                st.write(f"- {w}")

    levels = get_levels_for_report(report.id)
    if not levels:
        st.warning("This report has no alert levels.")
        return

    df = pd.DataFrame([
        {
            "Level": lvl.level_name,
            "Price": lvl.price,
            "Direction": lvl.direction,
            "Action": lvl.action,
            "Status": "triggered" if lvl.triggered_at else "pending",
            "Triggered at": lvl.triggered_at,
        }
        for lvl in levels
    ]).sort_values("Price", ascending=False)

    show = st.radio("Show", ["All", "Pending", "Triggered"], horizontal=True)
    if show != "All":
        df = df[df["Status"] == show.lower()]
    st.dataframe(
        df,
        use_container_width=True,
        hide_index=True,
        column_config={"Price": st.column_config.NumberColumn(format="$%.2f")},
    )
