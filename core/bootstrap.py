from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from core.db import session_scope
from core.models import Drill, User

logger = logging.getLogger(__name__)


def ensure_demo_seeded() -> bool:
    """
    Ensure the demo coach and starter drills exist for Streamlit deployments
    where seed.py has not been run manually.
    """
    try:
        with session_scope() as s:
            coach = s.execute(select(User.id).where(User.username == "coach")).scalar_one_or_none()
            has_drills = s.execute(select(Drill.id)).first() is not None
            if coach and has_drills:
                return False
    except SQLAlchemyError:
        # Tables may not exist yet; continue into schema/seed path.
        logger.info("bootstrap_schema_missing")

    from db.seed import run_migrations, seed_drill_types, seed_drills, seed_users

    run_migrations()
    seed_drill_types()
    coach_id = seed_users()
    seed_drills(created_by=coach_id)
    return True
