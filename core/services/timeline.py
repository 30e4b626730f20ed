"""Practice-plan timeline: ordered drills and breaks inside a time-bounded window.

The engine owns the ordered entry list for one editing session and derives
everything the builder needs to render it (available minutes, start offsets,
proportional layout, axis markers). Mutations never raise for user-facing
conditions; they return an ``Outcome`` describing what happened so the
presentation layer can decide how to show it. Entry durations are whole minutes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Iterator, Mapping, Optional, Union
from uuid import uuid4

logger = logging.getLogger(__name__)

DEFAULT_BREAK_MINUTES = 5
DEFAULT_MARKER_STEP_MINUTES = 15
_ANCHOR_DAY = date(2000, 1, 1)


def parse_clock(value: Union[str, time]) -> time:
    """Parse an ``HH:MM`` or ``HH:MM:SS`` wall-clock string, truncated to the minute."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    text = str(value or "").strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).time().replace(second=0)
        except ValueError:
            continue
    raise ValueError(f"Invalid time of day: {value!r}")


def format_clock(value: time) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


@dataclass(frozen=True)
class PracticeWindow:
    start: time
    end: time

    @classmethod
    def parse(cls, start: Union[str, time], end: Union[str, time]) -> "PracticeWindow":
        return cls(start=parse_clock(start), end=parse_clock(end))

    @property
    def capacity_minutes(self) -> int:
        start_dt = datetime.combine(_ANCHOR_DAY, self.start)
        end_dt = datetime.combine(_ANCHOR_DAY, self.end)
        return max(0, int((end_dt - start_dt).total_seconds() // 60))

    def clock_at(self, offset_minutes: int) -> time:
        return (datetime.combine(_ANCHOR_DAY, self.start) + timedelta(minutes=offset_minutes)).time()

    def label_at(self, offset_minutes: int) -> str:
        return format_clock(self.clock_at(offset_minutes))

    def to_header(self) -> dict[str, str]:
        return {"start_time": self.start.strftime("%H:%M"), "end_time": self.end.strftime("%H:%M")}


@dataclass(frozen=True)
class CatalogDrill:
    id: int
    name: str
    duration: int
    category: str = ""
    description: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CatalogDrill":
        return cls(
            id=data["id"],
            name=str(data["name"]),
            duration=int(data["duration"]),
            category=str(data.get("category") or ""),
            description=str(data.get("description") or ""),
        )


@dataclass(frozen=True)
class BreakRequest:
    duration: int = DEFAULT_BREAK_MINUTES


class EntryKind(str, Enum):
    DRILL = "drill"
    BREAK = "break"


def new_entry_id(kind: EntryKind) -> str:
    return f"{kind.value}-{uuid4().hex}"


@dataclass(frozen=True)
class TimelineEntry:
    entry_id: str
    kind: EntryKind
    duration: int
    drill_id: Optional[int] = None
    name: str = "Break"
    category: str = ""
    description: str = ""

    @classmethod
    def from_drill(cls, drill: CatalogDrill, duration: Optional[int] = None) -> "TimelineEntry":
        return cls(
            entry_id=new_entry_id(EntryKind.DRILL),
            kind=EntryKind.DRILL,
            duration=drill.duration if duration is None else duration,
            drill_id=drill.id,
            name=drill.name,
            category=drill.category,
            description=drill.description,
        )

    @classmethod
    def new_break(cls, duration: int = DEFAULT_BREAK_MINUTES) -> "TimelineEntry":
        return cls(entry_id=new_entry_id(EntryKind.BREAK), kind=EntryKind.BREAK, duration=duration)

    @property
    def is_break(self) -> bool:
        return self.kind is EntryKind.BREAK


EntrySource = Union[CatalogDrill, BreakRequest, TimelineEntry]


class OutcomeCode(str, Enum):
    ADDED = "added"
    DURATION_ADJUSTED = "duration_adjusted"
    NO_TIME_AVAILABLE = "no_time_available"
    MOVED = "moved"
    REMOVED = "removed"
    DURATION_UPDATED = "duration_updated"
    INVALID_DURATION = "invalid_duration"
    INSUFFICIENT_TIME = "insufficient_time"
    WINDOW_UPDATED = "window_updated"


@dataclass(frozen=True)
class Outcome:
    """Structured result of a timeline mutation, rendered by the UI as a toast."""

    code: OutcomeCode
    applied: bool
    title: str = ""
    message: str = ""
    variant: str = "default"
    entry: Optional[TimelineEntry] = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def notify(self) -> bool:
        return bool(self.message)


@dataclass(frozen=True)
class Layout:
    offset_fraction: float
    width_fraction: float


@dataclass(frozen=True)
class TimeMarker:
    offset_minutes: int
    offset_fraction: float
    label: str


@dataclass(frozen=True)
class PersistedItem:
    item_type: str
    drill_id: Optional[int]
    duration: int
    order_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_type": self.item_type,
            "drill_id": self.drill_id,
            "duration": self.duration,
            "order_index": self.order_index,
        }


class EntryNotFoundError(KeyError):
    pass


class EmptyTimelineError(ValueError):
    pass


class TimelineEngine:
    def __init__(self, window: PracticeWindow, entries: Optional[list[TimelineEntry]] = None) -> None:
        self._window = window
        self._entries: list[TimelineEntry] = list(entries or [])

    @classmethod
    def from_saved(cls, window: PracticeWindow, items: list[Mapping[str, Any]]) -> "TimelineEngine":
        """Rebuild a timeline from persisted plan items.

        Items are ordered by ``order_index`` and each gets a fresh entry id. The
        saved plan is trusted as-is: no capacity check is made against the window.
        """
        entries: list[TimelineEntry] = []
        for item in sorted(items, key=lambda i: int(i.get("order_index", 0))):
            duration = int(item["duration"])
            if duration < 1:
                raise ValueError(f"Saved item has non-positive duration: {duration}")
            if item.get("item_type") == EntryKind.BREAK.value:
                entries.append(TimelineEntry.new_break(duration))
                continue
            drill = item.get("drill")
            if not drill:
                raise ValueError("Saved drill item is missing its drill record")
            entries.append(TimelineEntry.from_drill(CatalogDrill.from_mapping({**drill, "duration": duration})))
        return cls(window, entries)

    # -- reads --

    @property
    def window(self) -> PracticeWindow:
        return self._window

    @property
    def entries(self) -> tuple[TimelineEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_empty(self) -> bool:
        return not self._entries

    @property
    def total_duration(self) -> int:
        return sum(e.duration for e in self._entries)

    @property
    def capacity(self) -> int:
        return self._window.capacity_minutes

    @property
    def overflow_minutes(self) -> int:
        # Non-zero only after the window was shrunk below the scheduled total.
        return max(0, self.total_duration - self.capacity)

    def available_time(self) -> int:
        return max(0, self.capacity - self.total_duration)

    def index_of(self, entry_id: str) -> int:
        for idx, entry in enumerate(self._entries):
            if entry.entry_id == entry_id:
                return idx
        raise EntryNotFoundError(entry_id)

    def get_entry(self, entry_id: str) -> TimelineEntry:
        return self._entries[self.index_of(entry_id)]

    def entry_start_offset(self, index: int) -> int:
        if index < 0 or index > len(self._entries):
            raise IndexError("timeline index out of range")
        return sum(e.duration for e in self._entries[:index])

    def start_label(self, index: int) -> str:
        return self._window.label_at(self.entry_start_offset(index))

    def layout(self, index: int) -> Layout:
        total = self.total_duration
        if total == 0:
            raise EmptyTimelineError("layout is undefined for an empty timeline")
        if index < 0 or index >= len(self._entries):
            raise IndexError("timeline index out of range")
        return Layout(
            offset_fraction=self.entry_start_offset(index) / total,
            width_fraction=self._entries[index].duration / total,
        )

    def layouts(self) -> list[Layout]:
        if self.is_empty:
            return []
        return [self.layout(i) for i in range(len(self._entries))]

    def time_markers(self, step_minutes: int = DEFAULT_MARKER_STEP_MINUTES) -> Iterator[TimeMarker]:
        if step_minutes <= 0:
            raise ValueError("step_minutes must be positive")
        total = self.total_duration
        if total == 0:
            return
        for offset in range(0, total + 1, step_minutes):
            yield TimeMarker(offset_minutes=offset, offset_fraction=offset / total, label=self._window.label_at(offset))

    # -- mutations --

    def add_entry(self, source: EntrySource, at_index: Optional[int] = None) -> Outcome:
        index = len(self._entries) if at_index is None else at_index
        if index < 0 or index > len(self._entries):
            raise IndexError("insertion index out of range")

        entry = self._materialize(source)
        if entry.duration < 1:
            raise ValueError(f"Requested duration must be at least 1 minute, got {entry.duration}")
        is_break = entry.is_break
        subject = "break" if is_break else f'"{entry.name}"'
        available = self.available_time()

        if available == 0:
            logger.info("timeline_add_rejected", extra={"ctx_entry": entry.name, "ctx_capacity": self.capacity})
            return Outcome(
                code=OutcomeCode.NO_TIME_AVAILABLE,
                applied=False,
                title="No Time Available",
                message=f"Unable to add {subject}. There is no time left in the practice plan.",
                variant="destructive",
                entry=entry,
            )

        if entry.duration > available:
            requested = entry.duration
            entry = replace(entry, duration=available)
            self._entries.insert(index, entry)
            logger.info(
                "timeline_add_clamped",
                extra={"ctx_entry": entry.name, "ctx_requested": requested, "ctx_clamped": available},
            )
            label = "the break" if is_break else subject
            return Outcome(
                code=OutcomeCode.DURATION_ADJUSTED,
                applied=True,
                title="Break Duration Adjusted" if is_break else "Drill Duration Adjusted",
                message=(
                    f"The duration of {label} has been adjusted from {requested} to {available} "
                    "minutes due to insufficient time."
                ),
                variant="warning",
                entry=entry,
                data={"requested": requested, "adjusted": available, "index": index},
            )

        self._entries.insert(index, entry)
        logger.debug("timeline_add", extra={"ctx_entry": entry.name, "ctx_index": index, "ctx_duration": entry.duration})
        return Outcome(code=OutcomeCode.ADDED, applied=True, entry=entry, data={"index": index})

    def add_break(self, at_index: Optional[int] = None, duration: int = DEFAULT_BREAK_MINUTES) -> Outcome:
        return self.add_entry(BreakRequest(duration=duration), at_index)

    def move_entry(self, entry_id: str, to_index: int) -> Outcome:
        from_index = self.index_of(entry_id)
        if to_index < 0 or to_index > len(self._entries) - 1:
            raise IndexError("target index out of range")
        entry = self._entries.pop(from_index)
        self._entries.insert(to_index, entry)
        logger.debug("timeline_move", extra={"ctx_entry": entry.name, "ctx_from": from_index, "ctx_to": to_index})
        return Outcome(code=OutcomeCode.MOVED, applied=True, entry=entry, data={"from": from_index, "to": to_index})

    def remove_entry(self, entry_id: str) -> Outcome:
        entry = self._entries.pop(self.index_of(entry_id))
        logger.debug("timeline_remove", extra={"ctx_entry": entry.name, "ctx_duration": entry.duration})
        return Outcome(code=OutcomeCode.REMOVED, applied=True, entry=entry)

    def set_entry_duration(self, entry_id: str, new_duration: int) -> Outcome:
        index = self.index_of(entry_id)
        entry = self._entries[index]
        if new_duration <= 0:
            return Outcome(
                code=OutcomeCode.INVALID_DURATION,
                applied=False,
                title="Invalid Duration",
                message="Please enter a valid positive number for the duration.",
                variant="destructive",
                entry=entry,
            )

        maximum = self.available_time() + entry.duration
        if new_duration > maximum:
            logger.info(
                "timeline_duration_rejected",
                extra={"ctx_entry": entry.name, "ctx_requested": new_duration, "ctx_maximum": maximum},
            )
            return Outcome(
                code=OutcomeCode.INSUFFICIENT_TIME,
                applied=False,
                title="Insufficient Time",
                message=f"The maximum available duration is {maximum} minutes.",
                variant="destructive",
                entry=entry,
                data={"maximum": maximum},
            )

        updated = replace(entry, duration=new_duration)
        self._entries[index] = updated
        return Outcome(
            code=OutcomeCode.DURATION_UPDATED,
            applied=True,
            title="Duration Updated",
            message=f'The duration of "{updated.name}" has been updated to {new_duration} minutes.',
            entry=updated,
            data={"previous": entry.duration},
        )

    def set_window(self, start: Union[str, time], end: Union[str, time]) -> Outcome:
        # Shrinking the window never trims entries; see overflow_minutes.
        self._window = PracticeWindow.parse(start, end)
        if self.overflow_minutes:
            logger.info(
                "timeline_window_over_capacity",
                extra={"ctx_capacity": self.capacity, "ctx_scheduled": self.total_duration},
            )
        return Outcome(
            code=OutcomeCode.WINDOW_UPDATED,
            applied=True,
            data={"capacity": self.capacity, "overflow": self.overflow_minutes},
        )

    def to_persistable(self) -> tuple[dict[str, str], list[PersistedItem]]:
        items = [
            PersistedItem(item_type=entry.kind.value, drill_id=entry.drill_id, duration=entry.duration, order_index=idx)
            for idx, entry in enumerate(self._entries)
        ]
        return self._window.to_header(), items

    def _materialize(self, source: EntrySource) -> TimelineEntry:
        if isinstance(source, TimelineEntry):
            if any(e.entry_id == source.entry_id for e in self._entries):
                raise ValueError(f"Entry {source.entry_id} is already on the timeline; use move_entry")
            return source
        if isinstance(source, CatalogDrill):
            return TimelineEntry.from_drill(source)
        if isinstance(source, BreakRequest):
            return TimelineEntry.new_break(source.duration)
        raise TypeError(f"Unsupported timeline source: {type(source).__name__}")
