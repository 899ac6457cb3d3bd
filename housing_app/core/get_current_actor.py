import uuid
from typing import Optional

from fastapi import Header, HTTPException

from models.enums import ActorRole
from schemas.schema import Actor


async def get_current_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    # Identity is asserted by the upstream auth gateway.
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Not Authenticated")

    try:
        actor_id = uuid.UUID(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid actor id")

    try:
        role = ActorRole(x_actor_role.lower())
    except ValueError:
        raise HTTPException(status_code=403, detail="Invalid Role")

    return Actor(id=actor_id, role=role)
