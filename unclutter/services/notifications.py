from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional, Sequence

from sqlalchemy import select, update, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from unclutter import config
from unclutter.models import Notification, NotificationType
from unclutter.services.errors import NotificationNotFoundError

if TYPE_CHECKING:
    from unclutter.services.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


def _unclaimed(now: datetime):
    return or_(Notification.claimed_until.is_(None), Notification.claimed_until < now)


# ---- store primitives used by the dispatcher ----

async def find_due_notifications(db: AsyncSession, now: datetime) -> Sequence[Notification]:
    """Unsent notifications whose scheduled_for has passed and that no tick is holding."""
    result = await db.execute(
        select(Notification)
        .where(
            Notification.scheduled_for <= now,
            Notification.sent_at.is_(None),
            _unclaimed(now),
        )
        .order_by(Notification.scheduled_for, Notification.id)
    )
    return result.scalars().all()


async def claim_notification(db: AsyncSession, notification_id: int, now: datetime, ttl: timedelta) -> bool:
    """
    Take a delivery lease on one row. Only one caller can win: the update matches
    only while the row is unsent and unclaimed (or its lease has lapsed).
    """
    result = await db.execute(
        update(Notification)
        .where(
            Notification.id == notification_id,
            Notification.sent_at.is_(None),
            _unclaimed(now),
        )
        .values(claimed_until=now + ttl)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def release_claim(db: AsyncSession, notification_id: int) -> None:
    await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.sent_at.is_(None))
        .values(claimed_until=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def mark_sent(db: AsyncSession, notification_id: int, sent_at: datetime) -> None:
    await db.execute(
        update(Notification)
        .where(Notification.id == notification_id)
        .values(sent_at=sent_at, claimed_until=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


# ---- creation ----

def new_notification(
    user_id: int,
    type: NotificationType | str,
    title: str,
    message: str,
    payload: Optional[dict[str, Any]] = None,
    channels: Optional[list[str]] = None,
    scheduled_for: Optional[datetime] = None,
) -> Notification:
    return Notification(
        user_id=user_id,
        type=NotificationType(type).value,
        title=title,
        message=message,
        payload=dict(payload or {}),
        channels=list(channels or config.NOTIFICATION_DEFAULT_CHANNELS),
        scheduled_for=scheduled_for,
        read=False,
    )


async def create_notification(
    db: AsyncSession,
    dispatcher: "NotificationDispatcher",
    *,
    user_id: int,
    type: NotificationType | str,
    title: str,
    message: str,
    payload: Optional[dict[str, Any]] = None,
    channels: Optional[list[str]] = None,
    scheduled_for: Optional[datetime] = None,
) -> Notification:
    """
    Store a notification. With scheduled_for set, the poller delivers it later.
    Without it, delivery happens now; a failed immediate send is stamped
    scheduled_for=now so the next poller tick retries it.
    """
    notification = new_notification(user_id, type, title, message, payload, channels, scheduled_for)
    db.add(notification)
    await db.commit()

    if scheduled_for is not None:
        logger.info("Scheduled notification %s for %s", notification.id, scheduled_for.isoformat())
        return notification

    try:
        await dispatcher.deliver(db, notification)
    except Exception:
        logger.exception("Immediate delivery of notification %s failed; queued for retry", notification.id)
        await db.rollback()
        await db.refresh(notification)
        notification.scheduled_for = dispatcher.clock()
        await db.commit()
        return notification

    notification.sent_at = dispatcher.clock()
    await db.commit()
    return notification


# ---- inbox ----

async def list_user_notifications(
    db: AsyncSession, user_id: int, include_read: bool = False
) -> Sequence[Notification]:
    q = select(Notification).where(Notification.user_id == user_id)
    if not include_read:
        q = q.where(Notification.read.is_(False))
    result = await db.execute(q.order_by(Notification.created_at.desc(), Notification.id.desc()))
    return result.scalars().all()


async def get_user_notification(db: AsyncSession, user_id: int, notification_id: int) -> Notification:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotificationNotFoundError(f"Notification {notification_id} not found")
    return notification


async def mark_as_read(db: AsyncSession, user_id: int, notification_id: int) -> Notification:
    notification = await get_user_notification(db, user_id, notification_id)
    notification.read = True
    await db.commit()
    return notification


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def delete_notification(db: AsyncSession, user_id: int, notification_id: int) -> None:
    notification = await get_user_notification(db, user_id, notification_id)
    await db.delete(notification)
    await db.commit()


async def delete_pending(db: AsyncSession, notification_ids: Sequence[int]) -> int:
    """Drop notifications that have not gone out yet; sent ones are kept for the inbox."""
    if not notification_ids:
        return 0
    result = await db.execute(
        delete(Notification)
        .where(Notification.id.in_(notification_ids), Notification.sent_at.is_(None))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
