"""Pydantic validation models for all user-facing data entry points."""

from __future__ import annotations

from datetime import time
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from core.services.timeline import parse_clock

ITEM_TYPES = {"drill", "break"}


class LoginInput(BaseModel):
    username: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=1, max_length=256)


class PlanItemInput(BaseModel):
    item_type: str
    drill_id: Optional[int] = Field(default=None, gt=0)
    duration: int = Field(ge=1)
    order_index: int = Field(ge=0)

    @field_validator("item_type")
    @classmethod
    def valid_item_type(cls, v):
        if v not in ITEM_TYPES:
            raise ValueError(f"item_type must be one of {sorted(ITEM_TYPES)}")
        return v

    @model_validator(mode="after")
    def drill_reference_matches_type(self):
        if self.item_type == "drill" and self.drill_id is None:
            raise ValueError("drill items require drill_id")
        if self.item_type == "break" and self.drill_id is not None:
            raise ValueError("break items must not reference a drill")
        return self


class PlanHeaderInput(BaseModel):
    name: str = Field(min_length=1, max_length=180)
    start_time: time
    end_time: time

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_wall_clock(cls, v):
        return parse_clock(v)


class PracticePlanSaveInput(PlanHeaderInput):
    items: list[PlanItemInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def positions_are_contiguous(self):
        positions = sorted(item.order_index for item in self.items)
        if positions != list(range(len(self.items))):
            raise ValueError("order_index values must run 0..n-1 without gaps or duplicates")
        self.items = sorted(self.items, key=lambda item: item.order_index)
        return self
