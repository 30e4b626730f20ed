from __future__ import annotations

import datetime as dt

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(120), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), default="coach")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)


class DrillType(Base):
    __tablename__ = "drill_types"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(60), unique=True)
    color_class: Mapped[str] = mapped_column(String(60), default="bg-muted")


class Drill(Base):
    __tablename__ = "drills"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(180), index=True)
    duration: Mapped[int] = mapped_column(Integer)
    category: Mapped[str] = mapped_column(String(60), index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    deleted_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    __table_args__ = (CheckConstraint("duration >= 1", name="ck_drill_duration_positive"),)


class PracticePlan(Base):
    __tablename__ = "practice_plans"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(180))
    start_time: Mapped[dt.time] = mapped_column(Time)
    end_time: Mapped[dt.time] = mapped_column(Time)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow)
    deleted_at: Mapped[dt.datetime | None] = mapped_column(DateTime)

    items: Mapped[list["PracticePlanItem"]] = relationship(
        back_populates="plan",
        order_by="PracticePlanItem.order_index",
        cascade="all, delete-orphan",
    )


class PracticePlanItem(Base):
    __tablename__ = "practice_plan_items"
    id: Mapped[int] = mapped_column(primary_key=True)
    practice_plan_id: Mapped[int] = mapped_column(ForeignKey("practice_plans.id"), index=True)
    drill_id: Mapped[int | None] = mapped_column(ForeignKey("drills.id"))
    item_type: Mapped[str] = mapped_column(String(10))
    duration: Mapped[int] = mapped_column(Integer)
    order_index: Mapped[int] = mapped_column(Integer)

    plan: Mapped[PracticePlan] = relationship(back_populates="items")
    drill: Mapped[Drill | None] = relationship()

    __table_args__ = (
        UniqueConstraint("practice_plan_id", "order_index", name="uq_plan_item_position"),
        CheckConstraint("duration >= 1", name="ck_plan_item_duration_positive"),
        CheckConstraint("item_type in ('drill', 'break')", name="ck_plan_item_type"),
        CheckConstraint(
            "(item_type = 'drill' and drill_id is not null) or (item_type = 'break' and drill_id is null)",
            name="ck_plan_item_drill_reference",
        ),
    )
