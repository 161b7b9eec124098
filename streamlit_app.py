# streamlit_app.py
from typing import List, Dict, Optional
import os, json, csv, io
from datetime import date, datetime, time

import streamlit as st
import plotly.graph_objects as go

from chesscal.config import Settings
from chesscal.db.session import EventStore
from chesscal.models.event import CONTINENTS, Event
from chesscal.services.exports import EXPORT_FORMATS
from chesscal.services.queries import EventFilter, EventQuery

APP_PASSWORD = os.getenv("CALENDAR_APP_PASSWORD")  # set in .env or environment

PAGE_SIZE = 200

FORMAT_COLORS = {
    "classical": "#2E86C1", "rapid": "#28B463", "blitz": "#F39C12",
    "bullet": "#E74C3C", "freestyle": "#8E44AD", "other": "#95A5A6",
}


# ---------- tiny utilities ----------
def _norm_format(fmt: Optional[str]) -> str:
    if not fmt: return "other"
    ff = fmt.strip().lower()
    return ff if ff in FORMAT_COLORS else "other"

def _fmt_range(start: datetime, end: datetime) -> str:
    if start.date() == end.date():
        return start.strftime("%d %b %Y")
    if (start.year, start.month) == (end.year, end.month):
        return f"{start:%d}–{end:%d %b %Y}"
    if start.year == end.year:
        return f"{start:%d %b} – {end:%d %b %Y}"
    return f"{start:%d %b %Y} – {end:%d %b %Y}"


# ---------- store (one per dashboard process) ----------
@st.cache_resource
def _store() -> EventStore:
    store = EventStore(Settings.from_env().database_url).open()
    store.create_all()
    return store

def _queries() -> EventQuery:
    return EventQuery(_store())


# ---------- Export ----------
EXPORT_FIELDS = ["title", "start", "end", "location", "continent", "format", "event_type", "rounds", "special", "url"]

def _events_to_rows(events: List[Event]) -> List[dict]:
    rows = []
    for e in events:
        rows.append({
            "title": e.title or "",
            "start": e.start_datetime.date().isoformat(),
            "end": e.end_datetime.date().isoformat(),
            "location": e.location or "",
            "continent": e.continent or "",
            "format": e.format or "",
            "event_type": e.event_type or "",
            "rounds": e.rounds if e.rounds is not None else "",
            "special": "yes" if e.is_special else "no",
            "url": e.url or "",
        })
    return rows

def _export_events_csv_bytes(events: List[Event]) -> bytes:
    buf = io.StringIO()
    w = csv.DictWriter(buf, fieldnames=EXPORT_FIELDS, lineterminator="\n")
    w.writeheader()
    for r in _events_to_rows(events):
        w.writerow(r)
    return buf.getvalue().encode("utf-8-sig")

def _export_events_json_bytes(events: List[Event]) -> bytes:
    return json.dumps(_events_to_rows(events), indent=2).encode("utf-8")


# ---------- charts ----------
def _monthly_counts(events: List[Event]) -> Dict[str, Dict[str, int]]:
    """{"YYYY-MM": {format: count}} keyed by start month, sorted by month."""
    out: Dict[str, Dict[str, int]] = {}
    for e in events:
        month = e.start_datetime.strftime("%Y-%m")
        bucket = out.setdefault(month, {})
        fmt = _norm_format(e.format)
        bucket[fmt] = bucket.get(fmt, 0) + 1
    return dict(sorted(out.items()))

def _build_month_chart(events: List[Event]) -> Optional[go.Figure]:
    counts = _monthly_counts(events)
    if not counts:
        return None
    months = list(counts.keys())
    fig = go.Figure()
    for fmt, color in FORMAT_COLORS.items():
        ys = [counts[m].get(fmt, 0) for m in months]
        if not any(ys): continue
        fig.add_trace(go.Bar(x=months, y=ys, name=fmt.title(), marker=dict(color=color)))
    fig.update_layout(
        barmode="stack",
        legend_title_text="Format",
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0),
        margin=dict(l=40, r=20, t=10, b=40),
        height=360,
    )
    fig.update_xaxes(title="Start month", type="category")
    fig.update_yaxes(title="Tournaments")
    return fig


# ---------- Auth gate ----------
def _login_gate():
    if not APP_PASSWORD:
        return
    if "authed" not in st.session_state:
        st.session_state.authed = False
    if st.session_state.authed:
        return
    st.title("♟️ Chess Calendar")
    st.caption("This dashboard is protected by a simple password gate.")
    pwd = st.text_input("Password", type="password")
    ok = st.button("Enter", type="primary")
    if ok and pwd == APP_PASSWORD:
        st.session_state.authed = True
        st.rerun()
    if ok and pwd != APP_PASSWORD:
        st.error("Incorrect password.")
    st.stop()


# ---------- sidebar ----------
def _sidebar_filter() -> EventFilter:
    st.sidebar.header("Filters")
    search = st.sidebar.text_input("Search title, location or players", key="f_search")
    special = st.sidebar.checkbox("Special events only", key="f_special")
    continent = st.sidebar.selectbox("Continent", options=["Any"] + list(CONTINENTS), key="f_continent")
    fmt = st.sidebar.selectbox("Format", options=["Any"] + list(EXPORT_FORMATS), key="f_format")
    location = st.sidebar.text_input("Location contains", key="f_location")
    players = st.sidebar.text_input("Player", key="f_players")
    window = st.sidebar.date_input("Date window", value=(), key="f_window")

    start_date = end_date = None
    if isinstance(window, (list, tuple)) and len(window) == 2:
        lo, hi = window
        start_date = datetime.combine(lo, time.min)
        end_date = datetime.combine(hi, time.max)
    elif isinstance(window, date):
        start_date = datetime.combine(window, time.min)

    page = st.sidebar.number_input("Page", min_value=1, value=1, step=1, key="f_page")
    return EventFilter(
        special=special,
        continent=None if continent == "Any" else continent,
        format=None if fmt == "Any" else fmt,
        location=location or None,
        search=search or None,
        players=players or None,
        start_date=start_date,
        end_date=end_date,
        limit=PAGE_SIZE,
        offset=(int(page) - 1) * PAGE_SIZE,
    )


# ---------- MAIN APP ----------
def _render_app():
    st.set_page_config(page_title="Chess Calendar", layout="wide")
    _login_gate()

    q = _queries()
    f = _sidebar_filter()
    stats = q.stats()
    page = q.list(f)

    st.title("♟️ Chess Tournament Calendar")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Active tournaments", stats["total_events"])
    c2.metric("Matching filters", page.total_matching)
    c3.metric("Continents", len(stats["by_continent"]))
    c4.metric("Formats", len(stats["by_format"]))

    if not page.records:
        st.info("No tournaments match the current filters. Try clearing the search or widening the date window.")
        st.stop()

    first = f.offset + 1
    st.caption(f"Showing {first}–{f.offset + page.returned} of {page.total_matching}")

    chart = _build_month_chart(page.records)
    if chart is not None:
        st.subheader("Tournaments per month")
        st.plotly_chart(chart, use_container_width=True)

    tab_list, tab_upcoming = st.tabs(["Tournaments", "Next 30 days"])
    with tab_list:
        for e in page.records:
            badge = " ⭐" if e.is_special else ""
            with st.expander(f"{e.title}{badge}  ·  {_fmt_range(e.start_datetime, e.end_datetime)}"):
                st.write(f"**Where:** {', '.join(p for p in (e.venue, e.location) if p) or '-'}")
                meta = [p for p in (e.format, e.event_type, e.continent, e.category) if p]
                if e.rounds:
                    meta.append(f"{e.rounds} rounds")
                if meta:
                    st.caption("  ·  ".join(meta))
                if e.players:
                    st.write(f"**Players:** {e.players}")
                if e.prize_fund:
                    st.write(f"**Prize fund:** {e.prize_fund}")
                if e.description:
                    st.write(e.description)
                links = [(label, u) for label, u in (("Official site", e.url), ("Live games", e.live_games), ("More", e.landing)) if u]
                if links:
                    st.write("  ·  ".join(f"[{label}]({u})" for label, u in links))

        d1, d2 = st.columns(2)
        with d1:
            st.download_button("Download page CSV", data=_export_events_csv_bytes(page.records),
                               file_name="tournaments.csv", mime="text/csv", use_container_width=True)
        with d2:
            st.download_button("Download page JSON", data=_export_events_json_bytes(page.records),
                               file_name="tournaments.json", mime="application/json", use_container_width=True)

    with tab_upcoming:
        soon = q.upcoming(days=30, limit=100)
        if not soon:
            st.caption("Nothing starts in the next 30 days.")
        for e in soon:
            st.write(f"- **{e.title}** · {_fmt_range(e.start_datetime, e.end_datetime)} · {e.location or '-'}")

    with st.sidebar.expander("Breakdown", expanded=False):
        for label, key in (("Continent", "by_continent"), ("Type", "by_type"), ("Format", "by_format")):
            st.write(f"**{label}**")
            for row in stats[key]:
                st.write(f"- {row['value']}: {row['count']}")


if __name__ == "__main__":
    _render_app()
