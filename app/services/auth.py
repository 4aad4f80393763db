from dataclasses import dataclass
from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.security import hash_api_key
from app.models.api_key import ApiKey

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

ROLE_AGENT = "agent"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    api_key_id: str
    role: str  # "agent" | "admin"
    agent_id: str | None

    @property
    def is_admin(self) -> bool:
        # administrative override: may act on any listing
        return self.role == ROLE_ADMIN


async def get_actor(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key")

    hashed = hash_api_key(api_key)
    stmt = select(ApiKey).where(ApiKey.key_hash == hashed, ApiKey.is_active.is_(True))
    row = (await db.execute(stmt)).scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=401, detail="Invalid API key")

    return Actor(
        api_key_id=row.id,
        role=row.role,
        agent_id=row.agent_id,
    )


def require_agent(actor: Actor = Depends(get_actor)) -> Actor:
    if actor.role != ROLE_AGENT:
        raise HTTPException(status_code=403, detail="Agent role required")
    if not actor.agent_id:
        raise HTTPException(status_code=403, detail="Agent id missing")
    return actor
