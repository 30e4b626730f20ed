from __future__ import annotations

from core.services.practice_plans import PracticePlanStore


def get_store() -> PracticePlanStore:
    return PracticePlanStore()
