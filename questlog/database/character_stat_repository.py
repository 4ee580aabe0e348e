"""Repository for characters and their stat tracks.

``set_total_xp`` is the only writer of a stat's XP fields: it recomputes the
cached level/current_xp/title from the new total so they can never drift.
"""

import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from sqlalchemy.orm import Session

from questlog.models.character import Character, CharacterStat
from questlog.database.models import CharacterDB, CharacterStatDB
from questlog.engine.leveling import compute_leveling, level_title

logger = logging.getLogger(__name__)


class CharacterStatRepository:
    """Repository for Character / CharacterStat database operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_character_row(self, user_id: str) -> Optional[CharacterDB]:
        return self.db.query(CharacterDB).filter(CharacterDB.user_id == user_id).first()

    def get_character(self, user_id: str) -> Optional[Character]:
        """Get the user's character."""
        row = self.get_character_row(user_id)
        return row.to_pydantic() if row else None

    def create_character(
        self,
        user_id: str,
        name: str,
        character_class: Optional[str] = None,
        categories: Iterable[str] = (),
    ) -> Character:
        """Create the user's character with an initial set of level-1 stats."""
        try:
            row = CharacterDB(
                id=str(uuid.uuid4()),
                user_id=user_id,
                name=name,
                character_class=character_class,
                created_at=datetime.utcnow(),
            )
            self.db.add(row)
            self.db.flush()
            for category in categories:
                self._add_stat_row(row.id, category)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Created character {row.id} for user {user_id}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create character for user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    def _add_stat_row(self, character_id: str, category: str) -> CharacterStatDB:
        stat = CharacterStatDB(
            id=str(uuid.uuid4()),
            character_id=character_id,
            category=category,
            total_xp=0,
            current_level=1,
            current_xp=0,
            level_title=level_title(category, 1),
            updated_at=datetime.utcnow(),
        )
        self.db.add(stat)
        self.db.flush()
        return stat

    def add_stat(self, character_id: str, category: str) -> CharacterStat:
        """Add a new level-1 stat track to a character."""
        try:
            stat = self._add_stat_row(character_id, category)
            self.db.commit()
            self.db.refresh(stat)
            logger.debug(f"Added stat {category} to character {character_id}")
            return stat.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to add stat {category}: {type(e).__name__}: {str(e)}")
            raise

    def stats_by_category(self, character_id: str, for_update: bool = False) -> Dict[str, CharacterStatDB]:
        """Stat rows of a character keyed by category.

        With ``for_update`` the rows are locked (SELECT ... FOR UPDATE) and
        reloaded from the database. SQLite ignores the lock.
        """
        query = self.db.query(CharacterStatDB).filter(CharacterStatDB.character_id == character_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        rows = query.all()
        return {row.category: row for row in rows}

    def get_stats(self, user_id: str) -> List[CharacterStat]:
        """All stats of the user's character, ordered by category."""
        character = self.get_character_row(user_id)
        if not character:
            return []
        rows = (
            self.db.query(CharacterStatDB)
            .filter(CharacterStatDB.character_id == character.id)
            .order_by(CharacterStatDB.category)
            .all()
        )
        return [row.to_pydantic() for row in rows]

    def set_total_xp(self, stat: CharacterStatDB, new_total: int, now: Optional[datetime] = None) -> CharacterStatDB:
        """Persist a new total and its derived level fields.

        Totals are clamped at zero. Does not commit; the caller owns the
        transaction.
        """
        new_total = max(0, new_total)
        leveling = compute_leveling(new_total)
        if leveling.level != stat.current_level or not stat.level_title:
            stat.level_title = level_title(stat.category, leveling.level)
        stat.total_xp = new_total
        stat.current_level = leveling.level
        stat.current_xp = leveling.current_level_xp
        stat.updated_at = now or datetime.utcnow()
        self.db.flush()
        return stat
