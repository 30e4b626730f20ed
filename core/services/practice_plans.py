"""Persistence for drills and practice plans.

The builder only ever talks to this store: it reads the drill catalog and saved
plans, and writes a plan header plus its ordered items. Updating a plan replaces
its whole item set inside one transaction.
"""

from __future__ import annotations

import datetime as dt
import logging
from contextlib import AbstractContextManager
from typing import Any, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from core.db import session_scope
from core.models import Drill, DrillType, PracticePlan, PracticePlanItem
from core.validators import PracticePlanSaveInput

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class StorageError(RuntimeError):
    pass


class PlanNotFoundError(LookupError):
    pass


def drill_to_dict(drill: Drill) -> dict[str, Any]:
    return {
        "id": drill.id,
        "name": drill.name,
        "duration": drill.duration,
        "category": drill.category,
        "description": drill.description or "",
    }


def _clock(value: dt.time) -> str:
    return value.strftime("%H:%M")


def plan_to_dict(plan: PracticePlan) -> dict[str, Any]:
    items = sorted(plan.items, key=lambda i: i.order_index)
    return {
        "id": plan.id,
        "name": plan.name,
        "start_time": _clock(plan.start_time),
        "end_time": _clock(plan.end_time),
        "created_by": plan.created_by,
        "created_at": plan.created_at,
        "updated_at": plan.updated_at,
        "items": [
            {
                "id": item.id,
                "item_type": item.item_type,
                "drill_id": item.drill_id,
                "drill": drill_to_dict(item.drill) if item.drill is not None else None,
                "duration": item.duration,
                "order_index": item.order_index,
            }
            for item in items
        ],
    }


class PracticePlanStore:
    def __init__(self, session_factory: SessionFactory = session_scope) -> None:
        self._session_factory = session_factory

    def list_catalog(self) -> list[dict[str, Any]]:
        try:
            with self._session_factory() as s:
                rows = s.execute(select(Drill).where(Drill.deleted_at.is_(None)).order_by(Drill.name, Drill.id)).scalars().all()
                return [drill_to_dict(r) for r in rows]
        except SQLAlchemyError as exc:
            logger.exception("catalog_load_failed")
            raise StorageError("Failed to load drills") from exc

    def drill_type_colors(self) -> dict[str, str]:
        try:
            with self._session_factory() as s:
                rows = s.execute(select(DrillType).order_by(DrillType.name)).scalars().all()
                return {r.name: r.color_class for r in rows}
        except SQLAlchemyError as exc:
            logger.exception("drill_types_load_failed")
            raise StorageError("Failed to load drill types") from exc

    def get_plan(self, plan_id: int, created_by: Optional[int] = None) -> dict[str, Any]:
        try:
            with self._session_factory() as s:
                plan = self._load_plan(s, plan_id, created_by)
                return plan_to_dict(plan)
        except SQLAlchemyError as exc:
            logger.exception("plan_load_failed", extra={"ctx_plan_id": plan_id})
            raise StorageError("Failed to fetch practice plan") from exc

    def list_plans(self, created_by: Optional[int] = None) -> list[dict[str, Any]]:
        try:
            with self._session_factory() as s:
                q = (
                    select(
                        PracticePlan,
                        func.count(PracticePlanItem.id),
                        func.coalesce(func.sum(PracticePlanItem.duration), 0),
                    )
                    .outerjoin(PracticePlanItem, PracticePlanItem.practice_plan_id == PracticePlan.id)
                    .where(PracticePlan.deleted_at.is_(None))
                    .group_by(PracticePlan.id)
                    .order_by(PracticePlan.created_at.desc(), PracticePlan.id.desc())
                )
                if created_by is not None:
                    q = q.where(PracticePlan.created_by == created_by)
                return [
                    {
                        "id": plan.id,
                        "name": plan.name,
                        "start_time": _clock(plan.start_time),
                        "end_time": _clock(plan.end_time),
                        "created_by": plan.created_by,
                        "created_at": plan.created_at,
                        "item_count": int(count),
                        "total_minutes": int(total),
                    }
                    for plan, count, total in s.execute(q).all()
                ]
        except SQLAlchemyError as exc:
            logger.exception("plan_list_failed")
            raise StorageError("Failed to fetch practice plans") from exc

    def create_plan(self, payload: PracticePlanSaveInput, created_by: int) -> dict[str, Any]:
        try:
            with self._session_factory() as s:
                self._check_drills(s, payload)
                plan = PracticePlan(
                    name=payload.name,
                    start_time=payload.start_time,
                    end_time=payload.end_time,
                    created_by=created_by,
                    items=self._build_items(payload),
                )
                s.add(plan)
                s.flush()
                logger.info("plan_created", extra={"ctx_plan_id": plan.id, "ctx_items": len(payload.items)})
                return plan_to_dict(plan)
        except SQLAlchemyError as exc:
            logger.exception("plan_create_failed")
            raise StorageError("Failed to create practice plan") from exc

    def update_plan(
        self, plan_id: int, payload: PracticePlanSaveInput, created_by: Optional[int] = None
    ) -> dict[str, Any]:
        try:
            with self._session_factory() as s:
                plan = self._load_plan(s, plan_id, created_by)
                self._check_drills(s, payload)
                plan.name = payload.name
                plan.start_time = payload.start_time
                plan.end_time = payload.end_time
                plan.updated_at = dt.datetime.utcnow()
                # Old rows must be gone before new positions are inserted.
                plan.items.clear()
                s.flush()
                plan.items.extend(self._build_items(payload))
                s.flush()
                logger.info("plan_updated", extra={"ctx_plan_id": plan_id, "ctx_items": len(payload.items)})
                return plan_to_dict(plan)
        except SQLAlchemyError as exc:
            logger.exception("plan_update_failed", extra={"ctx_plan_id": plan_id})
            raise StorageError("Failed to update practice plan") from exc

    def delete_plan(self, plan_id: int, created_by: int) -> None:
        """Soft-delete: the plan and its items stay in the table but are hidden from every read."""
        try:
            with self._session_factory() as s:
                plan = self._load_plan(s, plan_id, created_by)
                plan.deleted_at = dt.datetime.utcnow()
                logger.info("plan_deleted", extra={"ctx_plan_id": plan_id})
        except SQLAlchemyError as exc:
            logger.exception("plan_delete_failed", extra={"ctx_plan_id": plan_id})
            raise StorageError("Failed to delete practice plan") from exc

    @staticmethod
    def _load_plan(s: Session, plan_id: int, created_by: Optional[int] = None) -> PracticePlan:
        # Another coach's plan is reported as missing, same as a deleted one.
        q = (
            select(PracticePlan)
            .options(selectinload(PracticePlan.items).selectinload(PracticePlanItem.drill))
            .where(PracticePlan.id == plan_id, PracticePlan.deleted_at.is_(None))
        )
        if created_by is not None:
            q = q.where(PracticePlan.created_by == created_by)
        plan = s.execute(q).scalar_one_or_none()
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    @staticmethod
    def _check_drills(s: Session, payload: PracticePlanSaveInput) -> None:
        wanted = {item.drill_id for item in payload.items if item.drill_id is not None}
        if not wanted:
            return
        found = set(s.execute(select(Drill.id).where(Drill.id.in_(wanted))).scalars().all())
        missing = wanted - found
        if missing:
            raise StorageError(f"Unknown drill ids: {sorted(missing)}")

    @staticmethod
    def _build_items(payload: PracticePlanSaveInput) -> list[PracticePlanItem]:
        return [
            PracticePlanItem(
                drill_id=item.drill_id,
                item_type=item.item_type,
                duration=item.duration,
                order_index=item.order_index,
            )
            for item in payload.items
        ]
