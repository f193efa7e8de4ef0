from __future__ import annotations
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from unclutter.models import Therapist
from unclutter.services.errors import TherapistNotFoundError


async def list_therapists(db: AsyncSession, active_only: bool = True) -> Sequence[Therapist]:
    q = select(Therapist).options(selectinload(Therapist.user)).order_by(Therapist.id)
    if active_only:
        q = q.where(Therapist.is_active.is_(True))
    result = await db.execute(q)
    return result.scalars().all()


async def get_therapist(db: AsyncSession, therapist_id: int) -> Therapist:
    result = await db.execute(
        select(Therapist).where(Therapist.id == therapist_id).options(selectinload(Therapist.user))
    )
    therapist = result.scalar_one_or_none()
    if therapist is None:
        raise TherapistNotFoundError(f"Therapist not found: {therapist_id}")
    return therapist


async def get_therapist_for_user(db: AsyncSession, user_id: int) -> Optional[Therapist]:
    """The therapist profile owned by a user, if the user has one."""
    result = await db.execute(select(Therapist).where(Therapist.user_id == user_id))
    return result.scalar_one_or_none()
