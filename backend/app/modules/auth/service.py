from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import AuthenticatedUser
from app.modules.auth.models import User

DEFAULT_SENDER_NAME = "Pitch Fork User"


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    try:
        uuid.UUID(user_id)
    except ValueError:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def resolve_display_name(db: AsyncSession, user: AuthenticatedUser) -> str:
    """Profile name, else the auth email, else a generic label."""
    profile = await get_user_by_id(db, user.id)
    if profile is not None and profile.name:
        return profile.name
    return user.email or DEFAULT_SENDER_NAME
