"""Repository for User database operations.

Users are owned by the surrounding application; questlog only needs the row
to exist so ownership foreign keys hold.
"""

import logging
from typing import Optional
from sqlalchemy.orm import Session

from questlog.database.models import UserDB

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[UserDB]:
        """Get user by ID."""
        return self.db.query(UserDB).filter(UserDB.id == user_id).first()

    def create_or_update(self, user_id: str, email: str, name: Optional[str] = None) -> UserDB:
        """Create or update user (upsert)."""
        user_db = self.get(user_id)
        try:
            if user_db:
                user_db.email = email
                user_db.name = name
            else:
                user_db = UserDB(id=user_id, email=email, name=name)
                self.db.add(user_db)
            self.db.commit()
            self.db.refresh(user_db)
            logger.debug(f"Saved user {user_id}")
            return user_db
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to save user {user_id}: {type(e).__name__}: {str(e)}")
            raise
