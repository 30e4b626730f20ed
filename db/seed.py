"""Database seeder: drill types, a starter drill catalog and the demo coach account."""
from __future__ import annotations

from sqlalchemy import select

from core.db import create_schema, session_scope
from core.models import Drill, DrillType, User
from core.security import hash_password

DRILL_TYPES: dict[str, str] = {
    "Warm-up": "bg-amber-300",
    "Offense": "bg-sky-300",
    "Defense": "bg-rose-300",
    "Conditioning": "bg-green-300",
    "Cool-down": "bg-violet-300",
}

# (name, duration, category, description)
STARTER_DRILLS: list[tuple[str, int, str, str]] = [
    ("Dynamic Stretch Circuit", 10, "Warm-up", "Leg swings, lunges with twist and high knees across the court."),
    ("Partner Passing Lines", 10, "Warm-up", "Two lines, chest and bounce passes on the move."),
    ("3-Man Weave", 15, "Offense", "Continuous weave to a layup, three trips minimum."),
    ("Pick and Roll Reads", 20, "Offense", "Ball handler reads hedge, drop and switch coverages."),
    ("Shell Drill", 20, "Defense", "Four-on-four help-side rotations on ball reversal."),
    ("Closeout to Contain", 15, "Defense", "Sprint closeout, chop feet, contain the first dribble."),
    ("Suicides", 10, "Conditioning", "Baseline to free throw, half court, far free throw, far baseline."),
    ("Full Court Scrimmage", 30, "Conditioning", "Five-on-five, coach calls the sets."),
    ("Free Throw Cooldown", 10, "Cool-down", "Ten free throws each while heart rate settles."),
    ("Static Stretch", 5, "Cool-down", "Hamstrings, quads, hips and calves."),
]

DEMO_COACH_USERNAME = "coach"
DEMO_COACH_PASSWORD = "CoachPass!234"


def run_migrations() -> None:
    create_schema()


def seed_drill_types() -> None:
    with session_scope() as s:
        existing = set(s.execute(select(DrillType.name)).scalars().all())
        s.add_all(DrillType(name=name, color_class=color) for name, color in DRILL_TYPES.items() if name not in existing)


def seed_users() -> int:
    with session_scope() as s:
        coach = s.execute(select(User).where(User.username == DEMO_COACH_USERNAME)).scalar_one_or_none()
        if coach is None:
            coach = User(username=DEMO_COACH_USERNAME, password_hash=hash_password(DEMO_COACH_PASSWORD), role="coach")
            s.add(coach)
            s.flush()
        return coach.id


def seed_drills(created_by: int | None = None) -> None:
    with session_scope() as s:
        if s.execute(select(Drill.id)).first():
            return
        s.add_all(
            Drill(name=name, duration=duration, category=category, description=description, created_by=created_by)
            for name, duration, category, description in STARTER_DRILLS
        )


def main() -> None:
    run_migrations()
    seed_drill_types()
    coach_id = seed_users()
    seed_drills(created_by=coach_id)
    print("Seeding complete")


if __name__ == "__main__":
    main()
