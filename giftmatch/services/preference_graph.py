"""Recipient -> liked category relationships."""

import logging
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from giftmatch.models.database import RecipientPreference

logger = logging.getLogger(__name__)


def recipient_id_for(user_id: str, recipient_key: str | None = None) -> str:
    """Graph node id: ``user`` for the default scope, ``user:recipient`` otherwise."""
    return f"{user_id}:{recipient_key}" if recipient_key else user_id


class PostgresPreferenceGraph:
    """Preference graph port over the recipient_preferences table.

    Categories are compared lower-cased, so "Home & Garden" and "home & garden"
    are the same preference.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def preferred_categories(self, recipient_id: str) -> list[str]:
        """Categories liked by a recipient, strongest first."""
        with self.session_factory() as db:
            stmt = (
                select(RecipientPreference.category)
                .where(RecipientPreference.recipient_id == recipient_id)
                .order_by(RecipientPreference.weight.desc(), RecipientPreference.category)
            )
            return list(db.scalars(stmt).all())

    def record_likes(self, recipient_id: str, categories: list[str]) -> None:
        """Upsert liked categories, incrementing the weight of known ones."""
        unique = sorted({c.strip().lower() for c in categories if c and c.strip()})
        if not unique:
            return

        stmt = insert(RecipientPreference).values(
            [{"recipient_id": recipient_id, "category": c, "weight": 1} for c in unique]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["recipient_id", "category"],
            set_={
                "weight": RecipientPreference.weight + 1,
                "updated_at": func.now(),
            },
        )
        with self.session_factory() as db:
            db.execute(stmt)
            db.commit()
        logger.debug(f"Recorded {len(unique)} liked categories for {recipient_id}")
