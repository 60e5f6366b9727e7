"""
mememarket.database.seed — Demo User Seeder
=============================================

The mock login lets a visitor pick any existing user, so an empty
database needs a few identities to choose from.

Idempotent — only inserts usernames that don't already exist.  Credit
balances of existing users are never touched.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from mememarket.constants import DEMO_USERNAMES
from mememarket.database.models import User

logger = logging.getLogger(__name__)


def seed_demo_users(
    engine: Engine,
    *,
    starting_credits: int = 1000,
    usernames: tuple[str, ...] = DEMO_USERNAMES,
) -> int:
    """Insert any missing demo users.  Returns the number inserted."""
    with Session(engine) as session:
        existing = set(
            session.scalars(select(User.username).where(User.username.in_(usernames))).all()
        )
        missing = [name for name in usernames if name not in existing]
        for name in missing:
            session.add(User(username=name, credits=starting_credits))
        session.commit()

    if missing:
        logger.info("Seeded %d demo users", len(missing))
    return len(missing)
