from __future__ import annotations

import logging
from typing import Optional

import altair as alt
import pandas as pd
import streamlit as st

from core.services.plan_builder import BuilderSession, Notice
from core.services.practice_plans import PracticePlanStore, StorageError
from core.services.timeline import Outcome

logger = logging.getLogger(__name__)

_VARIANT_ICONS = {"destructive": "⚠️", "warning": "⏱️", "default": "✅"}
# Tailwind colour classes from drill_types mapped to chart colours.
_CHART_COLORS = {
    "bg-amber-300": "#fcd34d",
    "bg-sky-300": "#7dd3fc",
    "bg-rose-300": "#fda4af",
    "bg-green-300": "#86efac",
    "bg-violet-300": "#c4b5fd",
    "bg-gray-300": "#d1d5db",
    "bg-muted": "#e5e7eb",
}


def show_result(result: Outcome | Notice) -> None:
    if not result.message:
        return
    icon = _VARIANT_ICONS.get(result.variant, "ℹ️")
    st.toast(f"**{result.title}**: {result.message}" if result.title else result.message, icon=icon)


def _session_key(plan_id: Optional[int]) -> str:
    return f"builder:{plan_id or 'new'}"


def get_builder(store: PracticePlanStore, plan_id: Optional[int], user_id: int) -> BuilderSession:
    key = _session_key(plan_id)
    if key not in st.session_state:
        with st.spinner("Loading drills..."):
            session, notices = BuilderSession.load(store, plan_id=plan_id, created_by=user_id)
        for notice in notices:
            show_result(notice)
        st.session_state[key] = session
    return st.session_state[key]


def _timeline_chart(view: dict) -> alt.Chart:
    rows = [
        {
            "row": idx,
            "name": e["name"] if e["kind"] == "drill" else f"Break ({e['duration']} min)",
            "start": e["start_offset"],
            "end": e["start_offset"] + e["duration"],
            "label": e["start_label"],
            "duration": e["duration"],
            "color": _CHART_COLORS.get(e["color"], _CHART_COLORS["bg-muted"]),
        }
        for idx, e in enumerate(view["entries"])
    ]
    df = pd.DataFrame(rows)
    ticks = [m["offset"] for m in view["markers"]]
    labels = {m["offset"]: m["label"] for m in view["markers"]}
    label_expr = " : ".join(f"datum.value == {k} ? '{v}'" for k, v in labels.items()) + " : ''"
    bars = (
        alt.Chart(df)
        .mark_bar(cornerRadius=4)
        .encode(
            x=alt.X("start:Q", axis=alt.Axis(values=ticks, labelExpr=label_expr, title=None, grid=True)),
            x2="end:Q",
            y=alt.Y("row:O", axis=None),
            color=alt.Color("color:N", scale=None),
            tooltip=["name", "label", "duration"],
        )
    )
    text = alt.Chart(df).mark_text(align="left", dx=4, fontSize=11).encode(x="start:Q", y="row:O", text="name")
    return (bars + text).properties(height=max(200, 40 * len(rows) + 40))


def _catalog_panel(builder: BuilderSession) -> None:
    st.subheader("Available Drills")
    drills = builder.offerable_drills()
    if not drills:
        st.caption("No drills in the catalog yet.")
        return
    for drill in drills:
        cols = st.columns([5, 2, 2])
        cols[0].markdown(f"**{drill.name}** ({drill.duration} min)  \n<small>{drill.category}</small>", unsafe_allow_html=True)
        position = cols[1].number_input(
            "Position",
            min_value=1,
            max_value=len(builder.engine) + 1,
            value=len(builder.engine) + 1,
            key=f"pos-{drill.id}",
            label_visibility="collapsed",
        )
        if cols[2].button("Add", key=f"add-{drill.id}"):
            builder.start_drag_from_catalog(drill.id)
            show_result(builder.drop_on_timeline(int(position) - 1))
            st.rerun()


def _timeline_panel(builder: BuilderSession) -> None:
    st.subheader("Practice Timeline")
    if st.button("Add Break", icon=":material/add_circle:"):
        show_result(builder.add_break())
        st.rerun()

    view = builder.timeline_view()
    if view["empty"]:
        st.info(view["placeholder"])
    else:
        st.altair_chart(_timeline_chart(view), use_container_width=True)
        for idx, entry in enumerate(view["entries"]):
            cols = st.columns([5, 2, 1, 1, 1])
            title = entry["name"] if entry["kind"] == "drill" else "Break"
            cols[0].write(f"{entry['start_label']} · **{title}** · {entry['duration']} min")
            target = cols[1].number_input(
                "Move to",
                min_value=1,
                max_value=len(view["entries"]),
                value=idx + 1,
                key=f"move-{entry['entry_id']}",
                label_visibility="collapsed",
            )
            if cols[2].button("Move", key=f"mv-{entry['entry_id']}") and int(target) - 1 != idx:
                builder.start_drag_from_timeline(entry["entry_id"])
                show_result(builder.drop_on_timeline(int(target) - 1))
                st.rerun()
            if entry["kind"] == "drill" and cols[3].button("Edit", key=f"ed-{entry['entry_id']}"):
                builder.open_entry_details(entry["entry_id"])
                st.rerun()
            if cols[4].button("Remove", key=f"rm-{entry['entry_id']}"):
                builder.start_drag_from_timeline(entry["entry_id"])
                show_result(builder.drop_on_catalog())
                st.rerun()

    if view["overflow_minutes"]:
        st.warning(f"Scheduled drills exceed the practice window by {view['overflow_minutes']} minutes.")
    st.caption(f"Available Time: {view['available_time']} minutes")


def _details_dialog(builder: BuilderSession) -> None:
    entry = builder.selected_entry()
    if entry is None:
        return
    with st.container(border=True):
        st.markdown(f"### {entry.name}")
        if entry.description:
            st.write(entry.description)
        st.caption(f"Category: {entry.category}")
        text = st.text_input("Duration (minutes)", value=builder.edited_duration, key=f"dur-{entry.entry_id}")
        cols = st.columns(2)
        if cols[0].button("Update Duration"):
            show_result(builder.apply_duration_edit(text))
            st.rerun()
        if cols[1].button("Close"):
            builder.close_entry_details()
            st.rerun()


def render(user_id: int, plan_id: Optional[int] = None, store: Optional[PracticePlanStore] = None) -> None:
    store = store or PracticePlanStore()
    builder = get_builder(store, plan_id, user_id)

    header = st.columns([4, 2])
    builder.rename(header[0].text_input("Plan Name", value=builder.plan_name, placeholder="Enter plan name..."))
    label = "Saving..." if builder.is_saving else ("Save Changes" if builder.plan_id else "Create Plan")
    if header[1].button(label, disabled=builder.is_saving, type="primary"):
        result = builder.save(store, created_by=user_id)
        show_result(result)
        if result.ok:
            st.session_state.pop(_session_key(plan_id), None)
            st.rerun()

    window = builder.engine.window.to_header()
    times = st.columns(2)
    start = times[0].time_input("Start Time", value=builder.engine.window.start, step=300)
    end = times[1].time_input("End Time", value=builder.engine.window.end, step=300)
    if (start.strftime("%H:%M"), end.strftime("%H:%M")) != (window["start_time"], window["end_time"]):
        builder.set_window(start.strftime("%H:%M"), end.strftime("%H:%M"))
        st.rerun()

    left, right = st.columns([1, 3])
    with left:
        _catalog_panel(builder)
    with right:
        _timeline_panel(builder)
        _details_dialog(builder)


def plan_list(user_id: int, store: Optional[PracticePlanStore] = None) -> Optional[int]:
    """Render saved plans and return the id picked for editing, if any."""
    store = store or PracticePlanStore()
    try:
        plans = store.list_plans(created_by=user_id)
    except StorageError as e:
        st.error(f"Failed to fetch practice plans: {e}")
        return None
    if not plans:
        st.caption("No practice plans yet.")
        return None
    df = pd.DataFrame(plans)[["id", "name", "start_time", "end_time", "item_count", "total_minutes"]]
    st.dataframe(df, hide_index=True, use_container_width=True)
    choice = st.selectbox("Edit plan", options=[None] + [p["id"] for p in plans], format_func=lambda v: "New plan" if v is None else next(p["name"] for p in plans if p["id"] == v))
    return choice
