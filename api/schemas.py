from __future__ import annotations

from datetime import datetime as dt_datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: int


class MessageOut(BaseModel):
    message: str


class HealthOut(BaseModel):
    status: str = "ok"
    env: str


class DrillOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    duration: int
    category: str
    description: str = ""


class PlanItemOut(BaseModel):
    id: Optional[int] = None
    item_type: str
    drill_id: Optional[int] = None
    drill: Optional[DrillOut] = None
    duration: int
    order_index: int


class PracticePlanOut(BaseModel):
    id: int
    name: str
    start_time: str
    end_time: str
    created_by: int
    created_at: Optional[dt_datetime] = None
    updated_at: Optional[dt_datetime] = None
    items: list[PlanItemOut] = Field(default_factory=list)


class PracticePlanSummaryOut(BaseModel):
    id: int
    name: str
    start_time: str
    end_time: str
    created_by: int
    created_at: Optional[dt_datetime] = None
    item_count: int = 0
    total_minutes: int = 0


class TimelineEntryOut(BaseModel):
    entry_id: str
    kind: str
    drill_id: Optional[int] = None
    name: str
    category: str = ""
    duration: int
    start_offset: int
    start_label: str
    left_pct: float
    width_pct: float
    color: str


class TimeMarkerOut(BaseModel):
    offset: int
    left_pct: float
    label: str


class TimelineViewOut(BaseModel):
    plan_id: int
    start_time: str
    end_time: str
    capacity: int
    total_duration: int
    available_time: int
    overflow_minutes: int
    empty: bool
    placeholder: Optional[str] = None
    entries: list[TimelineEntryOut] = Field(default_factory=list)
    markers: list[TimeMarkerOut] = Field(default_factory=list)
