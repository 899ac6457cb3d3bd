import uuid
from typing import List, Optional

from sqlalchemy import select

from models.enums import LifecycleEntity, LifecycleEvent
from models.models import LifecycleLog


class LifecycleLogRepo:
    def __init__(self, db):
        self.db = db

    def add(
        self,
        entity_type: LifecycleEntity,
        entity_id: uuid.UUID,
        event: LifecycleEvent,
        actor_id: Optional[uuid.UUID] = None,
        old_value: dict | None = None,
        new_value: dict | None = None,
    ) -> LifecycleLog:
        """Stage an audit row in the caller's unit of work."""
        entry = LifecycleLog(
            entity_type=entity_type,
            entity_id=entity_id,
            event=event,
            actor_id=actor_id,
            old_value=old_value,
            new_value=new_value,
        )
        self.db.add(entry)
        return entry

    async def list_for_entity(self, entity_id: uuid.UUID) -> List[LifecycleLog]:
        result = await self.db.execute(
            select(LifecycleLog)
            .where(LifecycleLog.entity_id == entity_id)
            .order_by(LifecycleLog.id)
        )
        return list(result.scalars().all())
