"""
Seed a demo user with a goal, a sprint and a few tasks.

Running it twice leaves the existing user untouched.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from splan.config import get_settings
from splan.db import DbClient, SqlDbClient, utcnow
from splan.security import hash_password
from splan.types import GoalStatus, Priority, SprintStatus, TaskStatus

logger = logging.getLogger(__name__)

DEMO_TASKS = [
    ("Backend setup", TaskStatus.DONE, Priority.HIGH, 8.0),
    ("Database schema", TaskStatus.DONE, Priority.HIGH, 6.0),
    ("Client setup", TaskStatus.IN_PROGRESS, Priority.MEDIUM, 10.0),
    ("Navigation", TaskStatus.TODO, Priority.MEDIUM, 4.0),
]


def seed(db: DbClient, email: str, username: str, password: str) -> bool:
    """Create the demo data. Returns False when the user already exists."""
    if db.find_user(email=email, username=username):
        logger.info("User %s already exists, nothing to do", email)
        return False

    user = db.create_user(
        username=username,
        email=email,
        password_hash=hash_password(password),
        first_name="Test",
        last_name="User",
    )
    now = utcnow()
    goal = db.create_goal(
        user.id,
        {
            "title": "Build the Splan mobile app",
            "description": "Ship the mobile version of the personal scrum planner",
            "status": GoalStatus.ACTIVE.value,
            "priority": Priority.HIGH.value,
            "target_date": now + timedelta(days=30),
        },
    )
    sprint = db.create_sprint(
        user.id,
        {
            "title": "Sprint 1: Foundation",
            "description": "Backend and client foundations",
            "goal_id": goal.id,
            "status": SprintStatus.ACTIVE.value,
            "start_date": now,
            "end_date": now + timedelta(days=7),
            "capacity": 40.0,
            "velocity": 0.0,
        },
    )
    for title, status, priority, hours in DEMO_TASKS:
        task = db.create_task(
            user.id,
            {
                "title": title,
                "goal_id": goal.id,
                "sprint_id": sprint.id,
                "priority": priority.value,
                "estimated_hours": hours,
            },
        )
        if status is not TaskStatus.TODO:
            db.update_task(user.id, task.id, {"status": status.value})
    logger.info("Seeded user %s with goal %s and sprint %s", email, goal.id, sprint.id)
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed Splan demo data")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL)",
    )
    parser.add_argument("--email", default="test@example.com")
    parser.add_argument("--username", default="testuser")
    parser.add_argument("--password", default="test12345")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("No database configured; pass --database-url or set DATABASE_URL")
        return 1

    seed(SqlDbClient(database_url), args.email.lower(), args.username, args.password)
    return 0


if __name__ == "__main__":
    sys.exit(main())
