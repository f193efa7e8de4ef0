"""
Booking flow for therapy sessions.

Creating or moving a session runs the conflict check first. A new session then
gets its four reminders and the client gets an immediate confirmation. Canceling
frees the slot, drops the reminders that have not gone out, and tells the
other party.
"""
from __future__ import annotations
import logging
import math
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from unclutter.models import (
    INACTIVE_SESSION_STATUSES, NotificationChannel, NotificationType, Session, SessionStatus,
    Therapist, User, UserRole,
)
from unclutter.schemas import SessionCreate, SessionFilters, SessionUpdate
from unclutter.services.conflicts import find_conflicts
from unclutter.services.errors import (
    ClientNotFoundError, InvalidSessionError, SessionConflictError, SessionNotFoundError,
    SessionPermissionError, TherapistNotFoundError,
)
from unclutter.services.notifications import create_notification
from unclutter.services.reminders import (
    cancel_session_reminders, format_session_time, load_session_with_participants,
    schedule_session_reminders,
)
from unclutter.services.therapists import get_therapist_for_user

if TYPE_CHECKING:
    from unclutter.services.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

NOTIFY_CHANNELS = [NotificationChannel.EMAIL.value, NotificationChannel.IN_APP.value]


def _validate_range(start: datetime, end: datetime) -> None:
    if start >= end:
        raise InvalidSessionError("start_time must be before end_time")


async def _own_therapist_id(db: AsyncSession, user: User) -> Optional[int]:
    therapist = await get_therapist_for_user(db, user.id)
    return therapist.id if therapist else None


async def _check_access(db: AsyncSession, session: Session, user: User, action: str) -> None:
    role = UserRole(user.role)
    if role is UserRole.ADMIN:
        return
    if role is UserRole.CLIENT:
        if action == "update":
            raise SessionPermissionError("Clients cannot update sessions")
        if session.client_id != user.id:
            raise SessionPermissionError(f"You do not have permission to {action} this session")
        return
    if session.therapist_id != await _own_therapist_id(db, user):
        raise SessionPermissionError(f"You do not have permission to {action} this session")


async def _resolve_participants(db: AsyncSession, data: SessionCreate, user: User) -> tuple[int, int]:
    role = UserRole(user.role)
    if role is UserRole.CLIENT:
        return data.therapist_id, user.id
    if role is UserRole.THERAPIST and data.therapist_id != await _own_therapist_id(db, user):
        raise SessionPermissionError("Therapists can only book sessions on their own calendar")
    if data.client_id is None:
        raise InvalidSessionError("client_id is required")
    return data.therapist_id, data.client_id


async def create_session(
    db: AsyncSession, dispatcher: "NotificationDispatcher", data: SessionCreate, user: User
) -> Session:
    therapist_id, client_id = await _resolve_participants(db, data, user)
    _validate_range(data.start_time, data.end_time)

    therapist = await db.get(Therapist, therapist_id)
    if therapist is None or not therapist.is_active:
        raise TherapistNotFoundError(f"Therapist not found: {therapist_id}")
    client = await db.get(User, client_id)
    if client is None:
        raise ClientNotFoundError(f"Client not found: {client_id}")

    conflicts = await find_conflicts(db, therapist_id, data.start_time, data.end_time)
    if conflicts:
        raise SessionConflictError(therapist_id, [s.id for s in conflicts])

    session = Session(
        therapist_id=therapist_id,
        client_id=client_id,
        start_time=data.start_time,
        end_time=data.end_time,
        status=SessionStatus.SCHEDULED.value,
        type=data.type.value,
        format=data.format.value,
        meta=dict(data.meta),
    )
    db.add(session)
    await db.commit()
    session_id = session.id
    logger.info("Session %s booked: therapist=%s client=%s start=%s",
                session_id, therapist_id, client_id, session.start_time.isoformat())

    await schedule_session_reminders(db, session_id)

    session = await load_session_with_participants(db, session_id)
    await create_notification(
        db, dispatcher,
        user_id=client_id,
        type=NotificationType.SESSION_CONFIRMATION,
        title="Session Confirmed",
        message=(
            f"Your therapy session with {session.therapist.user.display_name} has been confirmed "
            f"for {format_session_time(session.start_time)}."
        ),
        payload={"session_id": session_id},
        channels=NOTIFY_CHANNELS,
    )
    # 즉시 발송이 실패하면 rollback으로 객체가 만료되므로 다시 로드
    return await load_session_with_participants(db, session_id)


async def get_session(db: AsyncSession, session_id: int, user: User) -> Session:
    session = await load_session_with_participants(db, session_id)
    if session is None:
        raise SessionNotFoundError(f"Session not found: {session_id}")
    await _check_access(db, session, user, "view")
    return session


async def list_sessions(db: AsyncSession, user: User, filters: SessionFilters) -> tuple[list[Session], int]:
    q = select(Session)
    if filters.therapist_id is not None:
        q = q.where(Session.therapist_id == filters.therapist_id)
    if filters.client_id is not None:
        q = q.where(Session.client_id == filters.client_id)
    if filters.status is not None:
        q = q.where(Session.status == filters.status.value)
    if filters.start_date is not None:
        q = q.where(Session.start_time >= filters.start_date)
    if filters.end_date is not None:
        q = q.where(Session.start_time <= filters.end_date)

    role = UserRole(user.role)
    if role is UserRole.CLIENT:
        q = q.where(Session.client_id == user.id)
    elif role is UserRole.THERAPIST:
        q = q.where(Session.therapist_id == await _own_therapist_id(db, user))

    total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar_one()
    result = await db.execute(
        q.order_by(Session.start_time)
        .offset((filters.page - 1) * filters.limit)
        .limit(filters.limit)
    )
    return list(result.scalars().all()), total


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


async def update_session(db: AsyncSession, session_id: int, data: SessionUpdate, user: User) -> Session:
    session = await load_session_with_participants(db, session_id)
    if session is None:
        raise SessionNotFoundError(f"Session not found: {session_id}")
    await _check_access(db, session, user, "update")

    changes = data.model_dump(exclude_unset=True)
    new_start = changes.get("start_time") or session.start_time
    new_end = changes.get("end_time") or session.end_time
    time_changed = new_start != session.start_time or new_end != session.end_time
    new_status = changes.get("status") or SessionStatus(session.status)
    reactivated = session.status in INACTIVE_SESSION_STATUSES and new_status.value not in INACTIVE_SESSION_STATUSES
    # 취소/재일정 상태로 남는 세션은 슬롯을 차지하지 않으므로 충돌 검사 제외
    holds_slot = new_status.value not in INACTIVE_SESSION_STATUSES

    if time_changed:
        _validate_range(new_start, new_end)
    if (time_changed or reactivated) and holds_slot:
        conflicts = await find_conflicts(db, session.therapist_id, new_start, new_end, exclude_session_id=session.id)
        if conflicts:
            raise SessionConflictError(session.therapist_id, [s.id for s in conflicts])

    for field, value in changes.items():
        if value is None and field in ("start_time", "end_time", "status", "type", "format"):
            continue
        if hasattr(value, "value"):
            value = value.value
        setattr(session, field, value)

    still_scheduled = session.status == SessionStatus.SCHEDULED.value
    if time_changed or not still_scheduled:
        await cancel_session_reminders(db, session)
    await db.commit()

    if (time_changed or reactivated) and still_scheduled:
        await schedule_session_reminders(db, session.id)

    return await load_session_with_participants(db, session.id)


async def cancel_session(
    db: AsyncSession, dispatcher: "NotificationDispatcher", session_id: int, user: User
) -> Session:
    session = await load_session_with_participants(db, session_id)
    if session is None:
        raise SessionNotFoundError(f"Session not found: {session_id}")
    await _check_access(db, session, user, "cancel")

    if session.status == SessionStatus.CANCELED.value:
        return session

    session.status = SessionStatus.CANCELED.value
    await cancel_session_reminders(db, session)
    await db.commit()
    logger.info("Session %s canceled by user %s", session.id, user.id)

    therapist_user = session.therapist.user
    when = format_session_time(session.start_time)
    # 취소한 쪽이 아닌 상대방에게 알림
    if user.id == session.client_id:
        recipients = [(therapist_user.id, f"{session.client.display_name} canceled the session scheduled for {when}.")]
    elif user.id == therapist_user.id:
        recipients = [(session.client_id, f"{therapist_user.display_name} canceled your session scheduled for {when}.")]
    else:
        recipients = [
            (session.client_id, f"Your therapy session scheduled for {when} has been canceled."),
            (therapist_user.id, f"The session with {session.client.display_name} scheduled for {when} has been canceled."),
        ]

    for recipient_id, message in recipients:
        await create_notification(
            db, dispatcher,
            user_id=recipient_id,
            type=NotificationType.SESSION_CANCELLATION,
            title="Session Canceled",
            message=message,
            payload={"session_id": session_id},
            channels=NOTIFY_CHANNELS,
        )
    return await load_session_with_participants(db, session_id)
