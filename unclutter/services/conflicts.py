"""
Scheduling conflict detection for therapist calendars.

Two intervals overlap iff each starts before the other ends:

    existing.start_time < proposed_end AND existing.end_time > proposed_start

Touching intervals (one ends exactly when the other starts) do not overlap.
Canceled and rescheduled sessions free their slot, so they are ignored.
"""
from __future__ import annotations
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unclutter.models import Session, INACTIVE_SESSION_STATUSES


def _overlap_query(
    therapist_id: int,
    proposed_start: datetime,
    proposed_end: datetime,
    exclude_session_id: Optional[int] = None,
):
    q = select(Session).where(
        Session.therapist_id == therapist_id,
        Session.status.not_in(INACTIVE_SESSION_STATUSES),
        Session.start_time < proposed_end,
        Session.end_time > proposed_start,
    )
    if exclude_session_id is not None:
        q = q.where(Session.id != exclude_session_id)
    return q


async def find_conflicts(
    db: AsyncSession,
    therapist_id: int,
    proposed_start: datetime,
    proposed_end: datetime,
    exclude_session_id: Optional[int] = None,
) -> Sequence[Session]:
    """Return the therapist's active sessions overlapping the proposed interval."""
    q = _overlap_query(therapist_id, proposed_start, proposed_end, exclude_session_id)
    result = await db.execute(q.order_by(Session.start_time))
    return result.scalars().all()


async def has_conflict(
    db: AsyncSession,
    therapist_id: int,
    proposed_start: datetime,
    proposed_end: datetime,
    exclude_session_id: Optional[int] = None,
) -> bool:
    """
    True if any active session of the therapist overlaps [proposed_start, proposed_end).

    The caller validates proposed_start < proposed_end and that the therapist exists.
    Pass exclude_session_id when moving an existing session so it does not collide
    with itself.
    """
    q = _overlap_query(therapist_id, proposed_start, proposed_end, exclude_session_id)
    result = await db.execute(q.with_only_columns(Session.id).limit(1))
    return result.scalar_one_or_none() is not None
