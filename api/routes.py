from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select

from api.auth import AuthPrincipal, issue_access_token, require_coach
from api.deps import get_store
from api.ratelimit import limiter, login_limit
from api.schemas import (
    DrillOut,
    HealthOut,
    MessageOut,
    PracticePlanOut,
    PracticePlanSummaryOut,
    TimelineViewOut,
    TokenResponse,
)
from core.config import get_settings
from core.db import session_scope
from core.models import User
from core.security import verify_password
from core.services.plan_builder import BuilderSession
from core.services.practice_plans import PlanNotFoundError, PracticePlanStore, StorageError
from core.services.timeline import PracticeWindow, TimelineEngine
from core.validators import LoginInput, PracticePlanSaveInput

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

Coach = Annotated[AuthPrincipal, Depends(require_coach)]
Store = Annotated[PracticePlanStore, Depends(get_store)]


def _not_found(plan_id: int) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "PLAN_NOT_FOUND", "plan_id": plan_id})


def _storage_failed(exc: StorageError) -> HTTPException:
    return HTTPException(status_code=503, detail={"code": "STORAGE_ERROR", "message": str(exc)})


@router.get("/health", response_model=HealthOut, tags=["ops"])
def health():
    return HealthOut(env=get_settings().app_env)


@router.post("/auth/token", response_model=TokenResponse, tags=["auth"])
@limiter.limit(login_limit)
def login(request: Request, response: Response, body: LoginInput):
    del request, response
    with session_scope() as s:
        user = s.execute(select(User).where(User.username == body.username.strip().lower())).scalar_one_or_none()
        if user is None or not verify_password(body.password, user.password_hash):
            logger.info("auth_failed", extra={"ctx_username": body.username})
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"code": "INVALID_CREDENTIALS"})
        token = issue_access_token(user_id=user.id, username=user.username, role=user.role)
        return TokenResponse(access_token=token, role=user.role, user_id=user.id)


@router.get("/drills", response_model=list[DrillOut], tags=["drills"])
def list_drills(coach: Coach, store: Store):
    try:
        return [DrillOut(**row) for row in store.list_catalog()]
    except StorageError as exc:
        raise _storage_failed(exc) from exc


@router.get("/drill-types", response_model=dict[str, str], tags=["drills"])
def list_drill_types(coach: Coach, store: Store):
    try:
        return store.drill_type_colors()
    except StorageError as exc:
        raise _storage_failed(exc) from exc


@router.get("/practice-plans", response_model=list[PracticePlanSummaryOut], tags=["practice-plans"])
def list_practice_plans(coach: Coach, store: Store):
    try:
        return [PracticePlanSummaryOut(**row) for row in store.list_plans(created_by=coach.user_id)]
    except StorageError as exc:
        raise _storage_failed(exc) from exc


@router.get("/practice-plans/{plan_id}", response_model=PracticePlanOut, tags=["practice-plans"])
def get_practice_plan(plan_id: int, coach: Coach, store: Store):
    try:
        return PracticePlanOut(**store.get_plan(plan_id, created_by=coach.user_id))
    except PlanNotFoundError as exc:
        raise _not_found(plan_id) from exc
    except StorageError as exc:
        raise _storage_failed(exc) from exc


@router.get("/practice-plans/{plan_id}/timeline", response_model=TimelineViewOut, tags=["practice-plans"])
def get_practice_plan_timeline(plan_id: int, coach: Coach, store: Store):
    try:
        plan = store.get_plan(plan_id, created_by=coach.user_id)
        colors = store.drill_type_colors()
    except PlanNotFoundError as exc:
        raise _not_found(plan_id) from exc
    except StorageError as exc:
        raise _storage_failed(exc) from exc

    engine = TimelineEngine.from_saved(PracticeWindow.parse(plan["start_time"], plan["end_time"]), plan["items"])
    session = BuilderSession(engine, plan_id=plan_id, plan_name=plan["name"], type_colors=colors)
    return TimelineViewOut(plan_id=plan_id, **session.timeline_view())


@router.post("/practice-plans", response_model=PracticePlanOut, status_code=201, tags=["practice-plans"])
def create_practice_plan(body: PracticePlanSaveInput, coach: Coach, store: Store):
    try:
        saved = store.create_plan(body, created_by=coach.user_id)
    except StorageError as exc:
        raise _storage_failed(exc) from exc
    return PracticePlanOut(**saved)


@router.put("/practice-plans/{plan_id}", response_model=PracticePlanOut, tags=["practice-plans"])
def update_practice_plan(plan_id: int, body: PracticePlanSaveInput, coach: Coach, store: Store):
    try:
        saved = store.update_plan(plan_id, body, created_by=coach.user_id)
    except PlanNotFoundError as exc:
        raise _not_found(plan_id) from exc
    except StorageError as exc:
        raise _storage_failed(exc) from exc
    return PracticePlanOut(**saved)


@router.delete("/practice-plans/{plan_id}", response_model=MessageOut, tags=["practice-plans"])
def delete_practice_plan(plan_id: int, coach: Coach, store: Store):
    try:
        store.delete_plan(plan_id, created_by=coach.user_id)
    except PlanNotFoundError as exc:
        raise _not_found(plan_id) from exc
    except StorageError as exc:
        raise _storage_failed(exc) from exc
    return MessageOut(message=f"Practice plan {plan_id} deleted")
