"""
HikePAD Sales Performance: Interactive Dashboard

Run with:  streamlit run app.py
Set HIKEPAD_DEMO=1 (or tick "Demo data" in the sidebar) to explore
simulated branches without a database.
"""

import os
import sys
from pathlib import Path

import streamlit as st
import plotly.graph_objects as go
import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent))

from hikepad_dashboard.access import Viewer, can_view_bde_chart
from hikepad_dashboard.auth import authenticate
from hikepad_dashboard.config import ADMIN, BRANCHES, OPERATIONS
from hikepad_dashboard.dashboard import (
    get_available_branches,
    get_available_drives,
    get_available_months,
    get_bde_detail,
    get_dashboard_overview,
)
from hikepad_dashboard.db import get_db
from hikepad_dashboard.pipeline import UploadRejectedError, ingest_upload
from hikepad_dashboard.records import load_records_frame
from hikepad_dashboard.simulator import generate_records
from hikepad_dashboard.transforms import records_to_frame

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="HikePAD Sales Dashboard",
    page_icon="📈",
    layout="wide",
    initial_sidebar_state="expanded",
)

CHANGE_COLORS = {
    "positive": "#2ecc71",
    "negative": "#e74c3c",
    "neutral": "#95a5a6",
}


# ---------------------------------------------------------------------------
# Data loading (cached)
# ---------------------------------------------------------------------------
@st.cache_data
def load_demo_records() -> pd.DataFrame:
    return records_to_frame(generate_records(BRANCHES, n_months=8))


@st.cache_data(ttl=60)
def load_live_records() -> pd.DataFrame:
    return load_records_frame(get_db())


# ---------------------------------------------------------------------------
# Sidebar: mode & login
# ---------------------------------------------------------------------------
st.sidebar.title("HikePAD")
st.sidebar.markdown("Sales Performance Dashboard")
st.sidebar.divider()

demo = st.sidebar.checkbox("Demo data", value=os.getenv("HIKEPAD_DEMO") == "1")

if demo:
    viewer = Viewer(name="Demo Admin", role=ADMIN, branches=list(BRANCHES))
    records = load_demo_records()
else:
    if "user" not in st.session_state:
        st.title("Sign in")
        with st.form("login"):
            user_id = st.text_input("Email or name")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in")
        if submitted:
            ok, info = authenticate(get_db(), user_id, password)
            if ok:
                st.session_state["user"] = info
                st.rerun()
            st.error(info["error"])
        st.stop()

    viewer = Viewer.from_login(st.session_state["user"])
    records = load_live_records()
    if st.sidebar.button("Sign out"):
        del st.session_state["user"]
        st.rerun()

st.sidebar.caption(f"Signed in as **{viewer.name}** ({viewer.role})")

branches = get_available_branches(records, viewer)
selected_branch = st.sidebar.selectbox("Branch", ["All branches"] + branches)
selected_month = st.sidebar.selectbox("Month", ["All months"] + get_available_months(records))
selected_drive = st.sidebar.selectbox("Drive", ["All drives"] + get_available_drives(records))

branch = None if selected_branch == "All branches" else selected_branch
month = None if selected_month == "All months" else selected_month
drive = None if selected_drive == "All drives" else selected_drive

pages = ["Overview", "Teams", "BDE Performance"]
if not demo and viewer.role in (ADMIN, OPERATIONS):
    pages.append("Upload")
page = st.sidebar.radio("Navigate", pages)


# ---------------------------------------------------------------------------
# Helper: KPI card
# ---------------------------------------------------------------------------
def kpi_card(card: dict):
    color = CHANGE_COLORS.get(card["change_type"], CHANGE_COLORS["neutral"])
    value = card["value"]
    value_str = f"{value}%" if card["label"] == "Achievement %" else f"{value:,.0f}"
    change_str = f"{card['change']:+.2f}% vs previous month" if card["change_type"] != "neutral" else "&nbsp;"

    st.markdown(
        f"""
        <div style="background: linear-gradient(135deg, {color}22, {color}11);
                    border-left: 4px solid {color};
                    border-radius: 8px; padding: 16px; margin-bottom: 8px;">
            <div style="font-size: 13px; color: #888; font-weight: 600; text-transform: uppercase;">{card['label']}</div>
            <div style="font-size: 28px; font-weight: 700; color: #222; margin: 4px 0;">{value_str}</div>
            <div style="font-size: 13px; color: {color}; font-weight: 600;">{change_str}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


if records.empty:
    st.warning("No sales data yet. Upload a branch sheet to get started.")
    st.stop()

overview = get_dashboard_overview(records, viewer, branch=branch, month=month, drive=drive)


# ===========================================================================
# PAGE: Overview
# ===========================================================================
if page == "Overview":
    st.title("Overview")
    st.caption(f"{selected_branch} · {selected_month} · {selected_drive}")

    cols = st.columns(3)
    for i, card in enumerate(overview["kpi_cards"]):
        with cols[i % 3]:
            kpi_card(card)

    st.divider()

    st.subheader("Monthly Performance")
    monthly = pd.DataFrame(overview["monthly"])
    if monthly.empty:
        st.info("No monthly data for the selected filters.")
    else:
        fig = go.Figure()
        fig.add_trace(go.Bar(
            x=monthly["label"], y=monthly["target"],
            name="Target", marker_color="#95a5a6",
        ))
        fig.add_trace(go.Bar(
            x=monthly["label"], y=monthly["closed_points"],
            name="Closed Points", marker_color="#3498db",
        ))
        fig.add_trace(go.Scatter(
            x=monthly["label"], y=monthly["achievement"],
            name="Achievement %", mode="lines+markers", yaxis="y2",
            line=dict(color="#e67e22", width=2),
        ))
        fig.update_layout(
            barmode="group",
            height=400,
            yaxis=dict(title="Points"),
            yaxis2=dict(title="Achievement %", overlaying="y", side="right"),
            plot_bgcolor="rgba(0,0,0,0)",
            margin=dict(l=10, r=10, t=10, b=40),
        )
        st.plotly_chart(fig, use_container_width=True)

    st.subheader("Top Achievers")
    top = pd.DataFrame(overview["top_achievers"])
    if top.empty:
        st.info("No active BDEs for the selected filters.")
    else:
        top.insert(0, "rank", range(1, len(top) + 1))
        st.dataframe(top, use_container_width=True, hide_index=True)


# ===========================================================================
# PAGE: Teams
# ===========================================================================
elif page == "Teams":
    st.title("Teams")

    teams = pd.DataFrame(overview["teams"])
    if teams.empty:
        st.info("No teams for the selected filters.")
    else:
        st.dataframe(
            teams[[
                "dbm", "team_name", "team_leader", "bde_count",
                "total_target", "total_admissions", "total_closed_points", "avg_achievement",
            ]],
            use_container_width=True,
            hide_index=True,
        )

        fig = go.Figure(go.Bar(
            x=teams["avg_achievement"],
            y=teams["team_name"],
            orientation="h",
            marker_color=["#2ecc71" if a >= 100 else "#f39c12" if a >= 80 else "#e74c3c"
                          for a in teams["avg_achievement"]],
            text=teams["avg_achievement"].apply(lambda x: f"{x}%"),
            textposition="outside",
        ))
        fig.update_layout(
            title="Achievement by Team",
            xaxis_title="Achievement %",
            height=max(300, len(teams) * 40),
            plot_bgcolor="rgba(0,0,0,0)",
        )
        fig.add_vline(x=100, line_dash="dash", line_color="#888")
        st.plotly_chart(fig, use_container_width=True)


# ===========================================================================
# PAGE: BDE Performance
# ===========================================================================
elif page == "BDE Performance":
    st.title("BDE Performance")

    bdes = pd.DataFrame(overview["bdes"])
    if bdes.empty:
        st.info("No BDEs for the selected filters.")
    else:
        st.dataframe(bdes, use_container_width=True, hide_index=True)

        if not overview["read_only"]:
            chartable = [
                name for name in bdes["name"]
                if can_view_bde_chart(viewer, records[records["bde_name"] == name].iloc[0].to_dict())
            ]
            if chartable:
                selected_bde = st.selectbox("Open BDE", chartable)
                detail = get_bde_detail(records, viewer, selected_bde)
                chart = pd.DataFrame(detail["chart"])

                st.caption(f"{detail['branch']} · Team {detail['team_leader']}")
                fig = go.Figure()
                fig.add_trace(go.Bar(
                    x=chart["label"], y=chart["target"],
                    name="Target", marker_color="#95a5a6",
                ))
                fig.add_trace(go.Bar(
                    x=chart["label"], y=chart["closed_points"],
                    name="Closed Points", marker_color="#3498db",
                ))
                fig.update_layout(
                    title=f"{selected_bde}: 12-month performance",
                    barmode="group",
                    height=350,
                    plot_bgcolor="rgba(0,0,0,0)",
                )
                st.plotly_chart(fig, use_container_width=True)


# ===========================================================================
# PAGE: Upload
# ===========================================================================
elif page == "Upload":
    st.title("Upload Branch Sheet")

    upload_branch = st.selectbox("Branch", BRANCHES)
    uploaded = st.file_uploader("Sheet", type=["csv", "xlsx", "xls"])

    if uploaded is not None and st.button("Upload"):
        try:
            report = ingest_upload(
                get_db(), uploaded.getvalue(), uploaded.name, upload_branch, uploaded.type,
            )
        except UploadRejectedError as e:
            st.error(f"{e.payload['error']}: {e.payload['details']}")
            if e.payload.get("missing_headers"):
                st.write("Missing headers:", ", ".join(e.payload["missing_headers"]))
            if e.payload.get("rejected_rows"):
                st.dataframe(pd.DataFrame(e.payload["rejected_rows"]), hide_index=True)
        else:
            load_live_records.clear()
            st.success(report["message"])
            st.json(report["summary"])
            if report["rejected_rows"]:
                st.subheader("Rejected rows")
                st.dataframe(pd.DataFrame(report["rejected_rows"]), hide_index=True)
