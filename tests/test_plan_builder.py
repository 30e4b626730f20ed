"""Tests for the builder session: drag and drop, the details dialog and saving."""

from __future__ import annotations

from typing import Any

import pytest

from core.config import Settings
from core.services.plan_builder import (
    EMPTY_TIMELINE_MESSAGE,
    BuilderSession,
    DragOrigin,
    Notice,
    SessionCode,
)
from core.services.practice_plans import PlanNotFoundError, StorageError
from core.services.timeline import OutcomeCode

CATALOG = [
    {"id": 1, "name": "3-Man Weave", "duration": 15, "category": "Offense", "description": "weave"},
    {"id": 2, "name": "Shell Drill", "duration": 20, "category": "Defense", "description": "rotate"},
    {"id": 3, "name": "Full Court Scrimmage", "duration": 60, "category": "Conditioning", "description": ""},
]
COLORS = {"Offense": "bg-sky-300", "Defense": "bg-rose-300"}


class FakeStore:
    def __init__(self, plans: dict[int, dict[str, Any]] | None = None):
        self.plans = plans or {}
        self.fail_colors = False
        self.fail_catalog = False
        self.fail_save = False
        self.saved: list[tuple[str, Any]] = []

    def list_catalog(self):
        if self.fail_catalog:
            raise StorageError("db down")
        return list(CATALOG)

    def drill_type_colors(self):
        if self.fail_colors:
            raise StorageError("db down")
        return dict(COLORS)

    def get_plan(self, plan_id, created_by=None):
        if plan_id not in self.plans or created_by not in (None, self.plans[plan_id]["created_by"]):
            raise PlanNotFoundError(plan_id)
        return self.plans[plan_id]

    def create_plan(self, payload, created_by):
        if self.fail_save:
            raise StorageError("insert failed")
        self.saved.append(("create", payload))
        return {"id": 42, "name": payload.name, "created_by": created_by}

    def update_plan(self, plan_id, payload, created_by=None):
        if self.fail_save:
            raise StorageError("update failed")
        self.get_plan(plan_id, created_by)
        self.saved.append(("update", payload, created_by))
        return {"id": plan_id, "name": payload.name}


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite://", app_env="test")


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(
        plans={
            7: {
                "id": 7,
                "name": "Tuesday",
                "created_by": 1,
                "start_time": "18:00",
                "end_time": "19:00",
                "items": [
                    {"item_type": "break", "drill_id": None, "drill": None, "duration": 5, "order_index": 1},
                    {"item_type": "drill", "drill_id": 2, "drill": CATALOG[1], "duration": 25, "order_index": 0},
                ],
            }
        }
    )


@pytest.fixture
def builder(store, settings) -> BuilderSession:
    session, notices = BuilderSession.load(store, settings=settings)
    assert notices == []
    return session


def _place(builder: BuilderSession, drill_id: int, index: int | None = None):
    builder.start_drag_from_catalog(drill_id)
    return builder.drop_on_timeline(index)


def test_new_session_uses_default_window(builder):
    assert builder.engine.window.to_header() == {"start_time": "17:30", "end_time": "19:00"}
    assert builder.plan_id is None
    assert len(builder.offerable_drills()) == 3


def test_load_existing_plan_restores_order(store, settings):
    session, notices = BuilderSession.load(store, plan_id=7, settings=settings)
    assert notices == []
    assert session.plan_id == 7
    assert session.plan_name == "Tuesday"
    assert [e.name for e in session.engine.entries] == ["Shell Drill", "Break"]
    assert session.engine.available_time() == 30


def test_load_missing_plan_returns_empty_session_and_notice(store, settings):
    session, notices = BuilderSession.load(store, plan_id=999, settings=settings)
    assert [n.code for n in notices] == [SessionCode.LOAD_FAILED]
    assert notices[0].message == "Failed to load data. Please try again."
    assert session.engine.is_empty
    assert session.catalog == []


def test_load_color_failure_falls_back_to_defaults(store, settings):
    store.fail_colors = True
    session, notices = BuilderSession.load(store, settings=settings)
    assert [n.code for n in notices] == [SessionCode.COLORS_UNAVAILABLE]
    assert session.color_for("Offense") == "bg-muted"
    assert len(session.catalog) == 3


def test_load_catalog_failure(store, settings):
    store.fail_catalog = True
    session, notices = BuilderSession.load(store, settings=settings)
    assert SessionCode.LOAD_FAILED in {n.code for n in notices}
    assert session.offerable_drills() == []


def test_drop_from_catalog_adds_entry(builder):
    outcome = _place(builder, 1)
    assert outcome.code is OutcomeCode.ADDED
    assert builder.drag is None
    assert builder.engine.entries[0].drill_id == 1
    assert builder.engine.available_time() == 75


def test_catalog_stays_offerable_after_placement(builder):
    _place(builder, 1)
    _place(builder, 1)
    assert [d.id for d in builder.offerable_drills()] == [1, 2, 3]
    ids = [e.entry_id for e in builder.engine.entries]
    assert len(ids) == len(set(ids)) == 2


def test_drop_from_catalog_clamps_long_drill(builder):
    _place(builder, 3)
    outcome = _place(builder, 3)
    assert outcome.code is OutcomeCode.DURATION_ADJUSTED
    assert outcome.variant == "warning"
    assert builder.engine.entries[-1].duration == 30


def test_drop_on_full_timeline_is_rejected(builder):
    _place(builder, 3)
    _place(builder, 3)
    outcome = _place(builder, 1)
    assert outcome.code is OutcomeCode.NO_TIME_AVAILABLE
    assert outcome.variant == "destructive"
    assert len(builder.engine) == 2


def test_reorder_by_dragging_within_timeline(builder):
    first = _place(builder, 1).entry
    second = _place(builder, 2).entry
    builder.start_drag_from_timeline(second.entry_id)
    assert builder.drag.origin is DragOrigin.TIMELINE
    outcome = builder.drop_on_timeline(0)
    assert outcome.code is OutcomeCode.MOVED
    assert [e.entry_id for e in builder.engine.entries] == [second.entry_id, first.entry_id]


def test_drop_within_timeline_past_end_moves_to_last(builder):
    first = _place(builder, 1).entry
    _place(builder, 2)
    builder.start_drag_from_timeline(first.entry_id)
    builder.drop_on_timeline(10)
    assert builder.engine.entries[-1].entry_id == first.entry_id


def test_drag_back_to_catalog_removes_entry(builder):
    entry = _place(builder, 2).entry
    builder.start_drag_from_timeline(entry.entry_id)
    outcome = builder.drop_on_catalog()
    assert outcome.code is OutcomeCode.REMOVED
    assert builder.engine.is_empty


def test_catalog_drag_dropped_on_catalog_is_noop(builder):
    builder.start_drag_from_catalog(1)
    result = builder.drop_on_catalog()
    assert isinstance(result, Notice)
    assert result.code is SessionCode.NO_DRAG
    assert builder.engine.is_empty


def test_drop_without_drag(builder):
    result = builder.drop_on_timeline()
    assert isinstance(result, Notice)
    assert result.ok


def test_cancel_drag(builder):
    builder.start_drag_from_catalog(2)
    builder.cancel_drag()
    assert builder.drag is None


def test_unknown_catalog_drill_raises(builder):
    with pytest.raises(KeyError):
        builder.start_drag_from_catalog(404)


def test_add_break_uses_configured_length(builder):
    outcome = builder.add_break()
    assert outcome.entry.duration == 5
    assert outcome.entry.is_break


def test_details_dialog_updates_duration(builder):
    entry = _place(builder, 1).entry
    assert builder.open_entry_details(entry.entry_id)
    assert builder.dialog_open
    assert builder.edited_duration == "15"
    outcome = builder.apply_duration_edit("25")
    assert outcome.code is OutcomeCode.DURATION_UPDATED
    assert builder.engine.get_entry(entry.entry_id).duration == 25
    assert not builder.dialog_open


def test_details_dialog_rejects_non_numeric(builder):
    entry = _place(builder, 1).entry
    builder.open_entry_details(entry.entry_id)
    outcome = builder.apply_duration_edit("abc")
    assert outcome.code is OutcomeCode.INVALID_DURATION
    assert builder.dialog_open
    assert builder.engine.get_entry(entry.entry_id).duration == 15


@pytest.mark.parametrize("text, minutes", [("15.5", 15), ("30 min", 30), (" 20", 20)])
def test_details_dialog_reads_leading_integer(builder, text, minutes):
    entry = _place(builder, 1).entry
    builder.open_entry_details(entry.entry_id)
    outcome = builder.apply_duration_edit(text)
    assert outcome.code is OutcomeCode.DURATION_UPDATED
    assert builder.engine.get_entry(entry.entry_id).duration == minutes


def test_details_dialog_rejects_over_capacity(builder):
    entry = _place(builder, 1).entry
    _place(builder, 3)
    builder.open_entry_details(entry.entry_id)
    outcome = builder.apply_duration_edit("31")
    assert outcome.code is OutcomeCode.INSUFFICIENT_TIME
    assert outcome.message == "The maximum available duration is 30 minutes."
    assert builder.dialog_open


def test_breaks_do_not_open_details(builder):
    entry = builder.add_break().entry
    assert builder.open_entry_details(entry.entry_id) is False
    assert not builder.dialog_open


def test_apply_duration_without_selection_raises(builder):
    with pytest.raises(RuntimeError):
        builder.apply_duration_edit("10")


def test_save_requires_name(builder, store):
    _place(builder, 1)
    notice = builder.save(store, created_by=1)
    assert notice.code is SessionCode.MISSING_PLAN_NAME
    assert notice.message == "Please enter a name for your practice plan."
    assert store.saved == []


def test_save_creates_plan_with_ordered_items(builder, store):
    _place(builder, 2)
    builder.add_break()
    _place(builder, 1, 0)
    builder.rename("Thursday Practice")
    notice = builder.save(store, created_by=3)
    assert notice.code is SessionCode.SAVED
    assert notice.message == "Practice plan created successfully!"
    assert builder.plan_id == 42
    assert not builder.is_saving

    action, payload = store.saved[0]
    assert action == "create"
    assert payload.name == "Thursday Practice"
    assert [(i.item_type, i.drill_id, i.duration, i.order_index) for i in payload.items] == [
        ("drill", 1, 15, 0),
        ("drill", 2, 20, 1),
        ("break", None, 5, 2),
    ]


def test_save_existing_plan_updates(store, settings):
    session, _ = BuilderSession.load(store, plan_id=7, settings=settings)
    notice = session.save(store, created_by=1)
    assert notice.message == "Practice plan updated successfully!"
    assert store.saved[0][0] == "update"
    assert store.saved[0][2] == 1


def test_load_other_coaches_plan_is_refused(store, settings):
    session, notices = BuilderSession.load(store, plan_id=7, settings=settings, created_by=2)
    assert [n.code for n in notices] == [SessionCode.LOAD_FAILED]
    assert session.plan_id is None
    assert session.engine.is_empty


def test_save_over_other_coaches_plan_fails(store, settings):
    session, _ = BuilderSession.load(store, plan_id=7, settings=settings, created_by=1)
    notice = session.save(store, created_by=2)
    assert notice.code is SessionCode.SAVE_FAILED
    assert notice.message == "Failed to update practice plan. Please try again."
    assert store.saved == []


def test_save_failure_keeps_timeline(builder, store):
    _place(builder, 1)
    builder.rename("Plan")
    store.fail_save = True
    notice = builder.save(store, created_by=1)
    assert notice.code is SessionCode.SAVE_FAILED
    assert notice.message == "Failed to create practice plan. Please try again."
    assert not notice.ok
    assert len(builder.engine) == 1
    assert builder.plan_id is None
    assert not builder.is_saving


def test_save_while_saving_is_refused(builder, store):
    builder.rename("Plan")
    builder.is_saving = True
    notice = builder.save(store, created_by=1)
    assert notice.code is SessionCode.SAVE_IN_PROGRESS
    assert store.saved == []


def test_timeline_view_empty_shows_placeholder(builder):
    view = builder.timeline_view()
    assert view["empty"] is True
    assert view["placeholder"] == EMPTY_TIMELINE_MESSAGE
    assert view["entries"] == []
    assert view["markers"] == []
    assert view["available_time"] == 90


def test_timeline_view_entries_and_markers(builder):
    _place(builder, 1)
    builder.add_break()
    _place(builder, 2)
    view = builder.timeline_view()
    assert view["total_duration"] == 40
    assert [e["start_label"] for e in view["entries"]] == ["5:30 PM", "5:45 PM", "5:50 PM"]
    assert [e["color"] for e in view["entries"]] == ["bg-sky-300", "bg-muted", "bg-rose-300"]
    assert view["entries"][0]["width_pct"] == pytest.approx(37.5)
    assert view["entries"][2]["left_pct"] == pytest.approx(50.0)
    assert [m["offset"] for m in view["markers"]] == [0, 15, 30]


def test_timeline_view_reports_overflow_after_window_shrink(builder):
    _place(builder, 3)
    builder.set_window("17:30", "18:00")
    view = builder.timeline_view()
    assert view["overflow_minutes"] == 30
    assert view["available_time"] == 0
