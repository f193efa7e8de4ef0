"""
Session reminders.

Every booked session gets four deferred notifications: the client and the
therapist are each reminded 24 hours and 1 hour before the start. A reminder
whose time has already passed (a session booked less than a day or an hour
ahead) is still stored; the next poller tick delivers it straight away.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from unclutter.models import (
    Notification, NotificationChannel, NotificationType, Session, Therapist, User,
)
from unclutter.services.errors import ReminderSchedulingError
from unclutter.services.notifications import delete_pending, new_notification

logger = logging.getLogger(__name__)

REMINDER_CHANNELS = [NotificationChannel.EMAIL.value, NotificationChannel.IN_APP.value]


@dataclass(frozen=True)
class ReminderPlan:
    user_id: int
    recipient: str  # "client" | "therapist"
    lead: str       # "24h" | "1h"
    scheduled_for: datetime
    title: str
    message: str


def format_session_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")


def plan_session_reminders(session: Session, therapist_user: User, client: User) -> list[ReminderPlan]:
    """Client 24h, therapist 24h, client 1h, therapist 1h."""
    when = format_session_time(session.start_time)
    therapist_name = therapist_user.display_name
    client_name = client.display_name

    day_before = session.start_time - timedelta(hours=24)
    hour_before = session.start_time - timedelta(hours=1)
    upcoming = "Upcoming Therapy Session"
    soon = "Therapy Session Starting Soon"

    return [
        ReminderPlan(client.id, "client", "24h", day_before, upcoming,
                     f"You have a therapy session with {therapist_name} scheduled for {when}."),
        ReminderPlan(therapist_user.id, "therapist", "24h", day_before, upcoming,
                     f"You have a therapy session with {client_name} scheduled for {when}."),
        ReminderPlan(client.id, "client", "1h", hour_before, soon,
                     f"Your therapy session with {therapist_name} starts in 1 hour at {when}."),
        ReminderPlan(therapist_user.id, "therapist", "1h", hour_before, soon,
                     f"Your therapy session with {client_name} starts in 1 hour at {when}."),
    ]


async def load_session_with_participants(db: AsyncSession, session_id: int) -> Session | None:
    result = await db.execute(
        select(Session)
        .where(Session.id == session_id)
        .options(
            selectinload(Session.therapist).selectinload(Therapist.user),
            selectinload(Session.client),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def schedule_session_reminders(db: AsyncSession, session_id: int) -> list[Notification]:
    """
    Queue the four reminders for a newly booked session.

    All four rows are written in one commit. If the session, its therapist or its
    client cannot be loaded, or the write fails, nothing is stored and the error
    propagates.
    """
    session = await load_session_with_participants(db, session_id)
    if session is None:
        raise ReminderSchedulingError(f"Session not found: {session_id}")
    if session.therapist is None or session.therapist.user is None:
        raise ReminderSchedulingError(f"Therapist not found for session {session_id}")
    if session.client is None:
        raise ReminderSchedulingError(f"Client not found for session {session_id}")

    notifications = [
        new_notification(
            user_id=plan.user_id,
            type=NotificationType.SESSION_REMINDER,
            title=plan.title,
            message=plan.message,
            payload={"session_id": session.id, "reminder": plan.lead},
            channels=REMINDER_CHANNELS,
            scheduled_for=plan.scheduled_for,
        )
        for plan in plan_session_reminders(session, session.therapist.user, session.client)
    ]

    try:
        db.add_all(notifications)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Error scheduling session reminders for session %s", session_id)
        raise

    logger.info("Scheduled %d reminders for session %s", len(notifications), session_id)
    return notifications


async def find_pending_reminders(db: AsyncSession, session: Session) -> Sequence[Notification]:
    participant_ids = [session.client_id]
    if session.therapist is not None:
        participant_ids.append(session.therapist.user_id)

    result = await db.execute(
        select(Notification).where(
            Notification.type == NotificationType.SESSION_REMINDER.value,
            Notification.sent_at.is_(None),
            Notification.user_id.in_(participant_ids),
        )
    )
    # the session reference lives in the JSON payload
    return [n for n in result.scalars().all() if (n.payload or {}).get("session_id") == session.id]


async def cancel_session_reminders(db: AsyncSession, session: Session) -> int:
    """Remove the session's unsent reminders. The caller commits."""
    pending = await find_pending_reminders(db, session)
    removed = await delete_pending(db, [n.id for n in pending])
    if removed:
        logger.info("Removed %d pending reminders for session %s", removed, session.id)
    return removed
