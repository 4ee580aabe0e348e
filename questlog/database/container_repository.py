"""Repository for quests and experiments (task-owning goal containers)."""

import logging
from typing import Dict, Iterable, Optional, Union
from sqlalchemy.orm import Session

from questlog.models.container import ContainerKind, Experiment, Quest
from questlog.database.models import ExperimentDB, QuestDB, enum_to_value

logger = logging.getLogger(__name__)

Container = Union[Quest, Experiment]

_MODEL_BY_KIND = {
    ContainerKind.QUEST.value: QuestDB,
    ContainerKind.EXPERIMENT.value: ExperimentDB,
}


def _model_for(kind) -> type:
    return _MODEL_BY_KIND[enum_to_value(kind)]


class ContainerRepository:
    """Repository for Quest / Experiment database operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, kind, container: Container) -> Container:
        """Create a quest or experiment from its Pydantic model."""
        model = _model_for(kind)
        try:
            row = model(**container.model_dump())
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Created {enum_to_value(kind)} {row.id}: {row.title[:50]}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create {enum_to_value(kind)}: {type(e).__name__}: {str(e)}")
            raise

    def get_row(self, kind, user_id: str, container_id: str):
        model = _model_for(kind)
        return self.db.query(model).filter(model.id == container_id, model.user_id == user_id).first()

    def get(self, kind, user_id: str, container_id: str) -> Optional[Container]:
        """Get a quest or experiment owned by the user."""
        row = self.get_row(kind, user_id, container_id)
        return row.to_pydantic() if row else None

    def get_many(self, kind, user_id: str, container_ids: Iterable[str]) -> Dict[str, Container]:
        """Batch lookup keyed by id (missing ids are simply absent)."""
        ids = list(set(container_ids))
        if not ids:
            return {}
        model = _model_for(kind)
        rows = self.db.query(model).filter(model.user_id == user_id, model.id.in_(ids)).all()
        return {row.id: row.to_pydantic() for row in rows}
