"""Streamlit dashboard for commit-tracker, backed by the FastAPI service."""
from __future__ import annotations

import sys

import httpx
import plotly.graph_objects as go
import streamlit as st

API_URL = "http://localhost:8000"
for arg in sys.argv:
    if arg.startswith("--api-url="):
        API_URL = arg.split("=", 1)[1]

st.set_page_config(page_title="commit-tracker", layout="wide")

_CONCLUSION_COLORS = {"success": "#2ca02c", "failure": "#d62728", "neutral": "#7f7f7f"}


@st.cache_data(ttl=30)
def fetch(endpoint: str, params: dict | None = None) -> list | dict | None:
    try:
        resp = httpx.get(f"{API_URL}{endpoint}", params=params, timeout=30)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()
    except httpx.ConnectError:
        st.error(f"Cannot connect to API at {API_URL}. Is the server running?")
        st.stop()


# ── Sidebar ─────────────────────────────────────────────────────────

st.sidebar.title("commit-tracker")
only = st.sidebar.selectbox("Conclusion", ["all", "success", "failure", "neutral"])

commits = fetch(
    "/api/commits", params=None if only == "all" else {"conclusion": only}
) or []
summary = fetch("/api/summary") or {}

if not commits:
    st.sidebar.warning("No commits recorded yet. Run `commit-tracker` after a commit.")
    st.stop()

tabs = st.tabs(["Overview", "Churn", "Tests", "Test Runs"])
shas = [c["sha"][:7] for c in commits]

# ── Overview ────────────────────────────────────────────────────────

with tabs[0]:
    st.header("Overview")
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Commits", summary.get("commit_count", len(commits)))
    m2.metric("Latest coverage", f"{summary.get('latest_coverage', 0.0):.2f}%")
    m3.metric("Latest result", summary.get("latest_conclusion", "neutral"))
    m4.metric(
        "Lines changed",
        summary.get("total_additions", 0) + summary.get("total_deletions", 0),
    )

    counts = summary.get("conclusions", {})
    fig = go.Figure(go.Pie(
        labels=list(counts.keys()),
        values=list(counts.values()),
        marker={"colors": [_CONCLUSION_COLORS[k] for k in counts]},
        hole=0.4,
    ))
    fig.update_layout(height=320, margin=dict(t=30, b=20, l=20, r=20))
    st.plotly_chart(fig, use_container_width=True)

    st.dataframe(
        [
            {
                "sha": c["sha"][:10],
                "date": str(c["date"])[:19],
                "author": c["author"],
                "message": c["message"].splitlines()[0] if c["message"] else "",
                "conclusion": c["conclusion"],
            }
            for c in reversed(commits)
        ],
        use_container_width=True,
    )

# ── Churn ───────────────────────────────────────────────────────────

with tabs[1]:
    st.header("Lines changed per commit")
    fig = go.Figure()
    fig.add_trace(go.Bar(x=shas, y=[c["additions"] for c in commits], name="Additions",
                         marker_color="#2ca02c"))
    fig.add_trace(go.Bar(x=shas, y=[-c["deletions"] for c in commits], name="Deletions",
                         marker_color="#d62728"))
    fig.update_layout(barmode="relative", height=420, xaxis_title="Commit",
                      yaxis_title="Lines")
    st.plotly_chart(fig, use_container_width=True)

# ── Tests ───────────────────────────────────────────────────────────

with tabs[2]:
    st.header("Coverage and test count")
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=shas, y=[c["coverage"] for c in commits], mode="lines+markers",
        name="Coverage %",
    ))
    fig.add_trace(go.Bar(
        x=shas, y=[c["test_count"] for c in commits], name="Tests",
        marker_color=[_CONCLUSION_COLORS[c["conclusion"]] for c in commits],
        yaxis="y2", opacity=0.5,
    ))
    fig.update_layout(
        height=420,
        yaxis=dict(title="Coverage %", range=[0, 100]),
        yaxis2=dict(title="Tests", overlaying="y", side="right"),
    )
    st.plotly_chart(fig, use_container_width=True)

# ── Test Runs ───────────────────────────────────────────────────────

with tabs[3]:
    st.header("Test-run ledger")
    runs = fetch("/api/test-runs") or []
    if not runs:
        st.info("No test runs logged. Use `commit-tracker --tdd-log`.")
    else:
        s1, s2 = st.columns(2)
        s1.metric("Runs", summary.get("test_runs", len(runs)))
        s2.metric("Successful", summary.get("successful_test_runs", 0))
        st.dataframe(runs, use_container_width=True)
