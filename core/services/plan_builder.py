"""Editing session for the practice-plan builder.

Holds the transient state around a ``TimelineEngine`` while a coach edits one
plan: the catalog on offer, the in-flight drag, the drill details dialog and the
save-in-progress flag. Every handler returns ``Outcome`` values; rendering them
(toasts, banners) is left to the page.

Catalog drills stay offerable after they are placed, so the same drill can be
scheduled more than once; each placement gets its own entry id.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from core.config import Settings, get_settings
from core.services.practice_plans import PlanNotFoundError, StorageError
from core.services.timeline import (
    CatalogDrill,
    EntryKind,
    Outcome,
    OutcomeCode,
    PracticeWindow,
    TimelineEngine,
    TimelineEntry,
)
from core.validators import PracticePlanSaveInput

logger = logging.getLogger(__name__)

EMPTY_TIMELINE_MESSAGE = "Drag and drop drills here to build your practice plan."
DEFAULT_TYPE_COLOR = "bg-muted"


class PlanStore(Protocol):
    def list_catalog(self) -> list[dict[str, Any]]: ...

    def drill_type_colors(self) -> dict[str, str]: ...

    def get_plan(self, plan_id: int, created_by: Optional[int] = None) -> dict[str, Any]: ...

    def create_plan(self, payload: PracticePlanSaveInput, created_by: int) -> dict[str, Any]: ...

    def update_plan(
        self, plan_id: int, payload: PracticePlanSaveInput, created_by: Optional[int] = None
    ) -> dict[str, Any]: ...


class DragOrigin(str, Enum):
    CATALOG = "catalog"
    TIMELINE = "timeline"


@dataclass(frozen=True)
class DragPayload:
    entry: TimelineEntry
    origin: DragOrigin


class SessionCode(str, Enum):
    LOAD_FAILED = "load_failed"
    COLORS_UNAVAILABLE = "colors_unavailable"
    MISSING_PLAN_NAME = "missing_plan_name"
    SAVE_IN_PROGRESS = "save_in_progress"
    SAVE_INVALID = "save_invalid"
    SAVE_FAILED = "save_failed"
    SAVED = "saved"
    NO_DRAG = "no_drag"


@dataclass(frozen=True)
class Notice:
    """Session-level message that does not come from a timeline mutation."""

    code: SessionCode
    title: str
    message: str
    variant: str = "destructive"
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.variant != "destructive"


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _parse_minutes(text: str) -> Optional[int]:
    # Leading integer only, so "15.5" reads as 15 and "30 min" as 30.
    match = _LEADING_INT.match(str(text))
    return int(match.group(1)) if match else None


class BuilderSession:
    def __init__(
        self,
        engine: TimelineEngine,
        catalog: Optional[list[CatalogDrill]] = None,
        plan_id: Optional[int] = None,
        plan_name: str = "",
        type_colors: Optional[dict[str, str]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.engine = engine
        self.catalog: list[CatalogDrill] = list(catalog or [])
        self.plan_id = plan_id
        self.plan_name = plan_name
        self.type_colors: dict[str, str] = dict(type_colors or {})
        self.settings = settings or get_settings()
        self.drag: Optional[DragPayload] = None
        self.selected_entry_id: Optional[str] = None
        self.edited_duration: str = ""
        self.is_saving = False

    @classmethod
    def new(cls, settings: Optional[Settings] = None, **kwargs: Any) -> "BuilderSession":
        settings = settings or get_settings()
        window = PracticeWindow.parse(settings.default_start_time, settings.default_end_time)
        return cls(TimelineEngine(window), settings=settings, **kwargs)

    @classmethod
    def load(
        cls,
        store: PlanStore,
        plan_id: Optional[int] = None,
        settings: Optional[Settings] = None,
        created_by: Optional[int] = None,
    ) -> tuple["BuilderSession", list[Notice]]:
        """Open a builder session, pre-populated from a saved plan when ``plan_id`` is given.

        With ``created_by`` set, only that coach's plans can be opened. Load
        failures never raise: the session comes back empty together with an
        error notice so the page can still render.
        """
        settings = settings or get_settings()
        notices: list[Notice] = []

        try:
            colors = store.drill_type_colors()
        except StorageError:
            colors = {}
            notices.append(
                Notice(
                    SessionCode.COLORS_UNAVAILABLE,
                    "Error",
                    "Failed to load drill type colors. Using defaults.",
                    variant="warning",
                )
            )

        try:
            catalog = [CatalogDrill.from_mapping(row) for row in store.list_catalog()]
            if plan_id is None:
                session = cls.new(settings=settings, catalog=catalog, type_colors=colors)
            else:
                plan = store.get_plan(plan_id, created_by=created_by)
                window = PracticeWindow.parse(plan["start_time"], plan["end_time"])
                session = cls(
                    TimelineEngine.from_saved(window, plan.get("items") or []),
                    catalog=catalog,
                    plan_id=plan_id,
                    plan_name=plan.get("name") or "",
                    type_colors=colors,
                    settings=settings,
                )
        except (StorageError, PlanNotFoundError, ValueError) as exc:
            logger.warning("builder_load_failed", extra={"ctx_plan_id": plan_id, "ctx_error": str(exc)})
            notices.append(Notice(SessionCode.LOAD_FAILED, "Error", "Failed to load data. Please try again."))
            session = cls.new(settings=settings, type_colors=colors)
        return session, notices

    # -- catalog --

    def offerable_drills(self) -> list[CatalogDrill]:
        return list(self.catalog)

    def find_drill(self, drill_id: int) -> CatalogDrill:
        for drill in self.catalog:
            if drill.id == drill_id:
                return drill
        raise KeyError(drill_id)

    def color_for(self, category: Optional[str]) -> str:
        return self.type_colors.get(category or "", DEFAULT_TYPE_COLOR)

    # -- drag and drop --

    def start_drag_from_catalog(self, drill_id: int) -> DragPayload:
        self.drag = DragPayload(entry=TimelineEntry.from_drill(self.find_drill(drill_id)), origin=DragOrigin.CATALOG)
        return self.drag

    def start_drag_from_timeline(self, entry_id: str) -> DragPayload:
        self.drag = DragPayload(entry=self.engine.get_entry(entry_id), origin=DragOrigin.TIMELINE)
        return self.drag

    def cancel_drag(self) -> None:
        self.drag = None

    def drop_on_timeline(self, index: Optional[int] = None) -> Outcome | Notice:
        payload = self._take_drag()
        if payload is None:
            return Notice(SessionCode.NO_DRAG, "Nothing to drop", "No item is being dragged.", variant="default")
        match payload.origin:
            case DragOrigin.CATALOG:
                return self.engine.add_entry(payload.entry, index)
            case DragOrigin.TIMELINE:
                last = len(self.engine) - 1
                target = last if index is None else min(index, last)
                return self.engine.move_entry(payload.entry.entry_id, target)
        raise ValueError(f"Unknown drag origin: {payload.origin!r}")

    def drop_on_catalog(self) -> Outcome | Notice:
        payload = self._take_drag()
        if payload is None:
            return Notice(SessionCode.NO_DRAG, "Nothing to drop", "No item is being dragged.", variant="default")
        match payload.origin:
            case DragOrigin.TIMELINE:
                return self.engine.remove_entry(payload.entry.entry_id)
            case DragOrigin.CATALOG:
                return Notice(SessionCode.NO_DRAG, "Nothing to drop", "Drill is already in the catalog.", variant="default")
        raise ValueError(f"Unknown drag origin: {payload.origin!r}")

    def _take_drag(self) -> Optional[DragPayload]:
        payload, self.drag = self.drag, None
        return payload

    # -- direct edits --

    def add_break(self) -> Outcome:
        return self.engine.add_break(duration=self.settings.break_default_minutes)

    def set_window(self, start: str, end: str) -> Outcome:
        return self.engine.set_window(start, end)

    def rename(self, name: str) -> None:
        self.plan_name = name

    # -- details dialog --

    @property
    def dialog_open(self) -> bool:
        return self.selected_entry_id is not None

    def selected_entry(self) -> Optional[TimelineEntry]:
        if self.selected_entry_id is None:
            return None
        return self.engine.get_entry(self.selected_entry_id)

    def open_entry_details(self, entry_id: str) -> bool:
        entry = self.engine.get_entry(entry_id)
        if entry.kind is not EntryKind.DRILL:
            return False
        self.selected_entry_id = entry_id
        self.edited_duration = str(entry.duration)
        return True

    def close_entry_details(self) -> None:
        self.selected_entry_id = None
        self.edited_duration = ""

    def apply_duration_edit(self, text: Optional[str] = None) -> Outcome:
        if self.selected_entry_id is None:
            raise RuntimeError("No timeline entry is selected")
        if text is not None:
            self.edited_duration = text
        minutes = _parse_minutes(self.edited_duration)
        if minutes is None:
            # Non-numeric text is treated like any other non-positive request.
            minutes = 0
        outcome = self.engine.set_entry_duration(self.selected_entry_id, minutes)
        if outcome.applied:
            self.close_entry_details()
        return outcome

    # -- saving --

    def build_save_payload(self) -> PracticePlanSaveInput:
        header, items = self.engine.to_persistable()
        return PracticePlanSaveInput(
            name=self.plan_name,
            start_time=header["start_time"],
            end_time=header["end_time"],
            items=[item.to_dict() for item in items],
        )

    def save(self, store: PlanStore, created_by: int) -> Notice:
        """Persist the plan header and its ordered items.

        A blank name is rejected before any I/O. A failed save leaves the
        timeline untouched and is not retried.
        """
        if not self.plan_name.strip():
            return Notice(SessionCode.MISSING_PLAN_NAME, "Error", "Please enter a name for your practice plan.")
        if self.is_saving:
            return Notice(SessionCode.SAVE_IN_PROGRESS, "Saving", "A save is already in progress.", variant="default")

        try:
            payload = self.build_save_payload()
        except ValidationError as exc:
            return Notice(SessionCode.SAVE_INVALID, "Error", "The practice plan could not be validated.", data={"errors": exc.errors()})

        editing = self.plan_id is not None
        self.is_saving = True
        try:
            if editing:
                saved = store.update_plan(self.plan_id, payload, created_by=created_by)
            else:
                saved = store.create_plan(payload, created_by)
        except (StorageError, PlanNotFoundError) as exc:
            logger.warning("builder_save_failed", extra={"ctx_plan_id": self.plan_id, "ctx_error": str(exc)})
            return Notice(
                SessionCode.SAVE_FAILED,
                "Error",
                f"Failed to {'update' if editing else 'create'} practice plan. Please try again.",
            )
        finally:
            self.is_saving = False

        self.plan_id = saved.get("id", self.plan_id)
        logger.info("builder_saved", extra={"ctx_plan_id": self.plan_id, "ctx_items": len(payload.items)})
        return Notice(
            SessionCode.SAVED,
            "Success",
            f"Practice plan {'updated' if editing else 'created'} successfully!",
            variant="default",
            data={"plan": saved},
        )

    # -- rendering --

    def timeline_view(self) -> dict[str, Any]:
        engine = self.engine
        view: dict[str, Any] = {
            "start_time": engine.window.to_header()["start_time"],
            "end_time": engine.window.to_header()["end_time"],
            "capacity": engine.capacity,
            "total_duration": engine.total_duration,
            "available_time": engine.available_time(),
            "overflow_minutes": engine.overflow_minutes,
            "empty": engine.is_empty,
            "placeholder": EMPTY_TIMELINE_MESSAGE if engine.is_empty else None,
            "entries": [],
            "markers": [],
        }
        if engine.is_empty:
            return view

        for index, (entry, layout) in enumerate(zip(engine.entries, engine.layouts())):
            view["entries"].append(
                {
                    "entry_id": entry.entry_id,
                    "kind": entry.kind.value,
                    "drill_id": entry.drill_id,
                    "name": entry.name,
                    "category": entry.category,
                    "duration": entry.duration,
                    "start_offset": engine.entry_start_offset(index),
                    "start_label": engine.start_label(index),
                    "left_pct": round(layout.offset_fraction * 100, 4),
                    "width_pct": round(layout.width_fraction * 100, 4),
                    "color": DEFAULT_TYPE_COLOR if entry.kind is EntryKind.BREAK else self.color_for(entry.category),
                }
            )
        view["markers"] = [
            {"offset": m.offset_minutes, "left_pct": round(m.offset_fraction * 100, 4), "label": m.label}
            for m in engine.time_markers(self.settings.marker_step_minutes)
        ]
        return view


__all__ = [
    "BuilderSession",
    "DragOrigin",
    "DragPayload",
    "EMPTY_TIMELINE_MESSAGE",
    "Notice",
    "OutcomeCode",
    "PlanStore",
    "SessionCode",
]
