"""
Notification delivery and the polling loop that drives it.

A notification moves from pending (scheduled_for set, sent_at null) to sent
(sent_at set) exactly once. Before delivering, a tick takes a short lease on the
row (claimed_until); a second tick, in this process or another, skips rows under
a live lease. A failed delivery releases the lease so the next tick retries it.
"""
from __future__ import annotations
import asyncio
import contextlib
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unclutter import config
from unclutter.db import utcnow
from unclutter.models import Notification, NotificationChannel, User
from unclutter.services.email_service import MailSender, render_notification_html
from unclutter.services.errors import RecipientNotFoundError
from unclutter.services.notifications import (
    claim_notification, find_due_notifications, mark_sent, release_claim,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class NotificationDispatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        mail_sender: MailSender,
        clock: Clock = utcnow,
        claim_ttl: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory
        self.mail_sender = mail_sender
        self.clock = clock
        self.claim_ttl = claim_ttl or timedelta(seconds=config.NOTIFICATION_CLAIM_TTL_SECONDS)
        self._tick_lock = asyncio.Lock()

    async def deliver(self, db: AsyncSession, notification: Notification) -> None:
        """Send through every channel of the notification. Raises on the first failure."""
        user = await db.get(User, notification.user_id)
        if user is None:
            raise RecipientNotFoundError(f"User {notification.user_id} not found for notification {notification.id}")

        for channel in notification.channels or [NotificationChannel.IN_APP.value]:
            await self._send_through_channel(channel, notification, user)

    async def _send_through_channel(self, channel: str, notification: Notification, user: User) -> None:
        if channel == NotificationChannel.EMAIL.value:
            await self.mail_sender.send(
                user.email,
                notification.title,
                notification.message,
                render_notification_html(notification.title, notification.message),
            )
        elif channel == NotificationChannel.IN_APP.value:
            # the stored row is the in-app notification
            pass
        elif channel in (NotificationChannel.SMS.value, NotificationChannel.PUSH.value):
            logger.info("%s notification not implemented yet: %s", channel, notification.id)
        else:
            logger.warning("Unknown notification channel %r on notification %s", channel, notification.id)

    async def process_due(self) -> int:
        """
        Deliver every due notification once. Returns how many were sent.

        A call that arrives while another tick is still running returns 0 without
        scanning. Errors are handled per notification; one bad row never stops the batch.
        """
        if self._tick_lock.locked():
            logger.warning("Previous notification tick still running; skipping this one")
            return 0
        async with self._tick_lock:
            return await self._process_due()

    async def _process_due(self) -> int:
        now = self.clock()
        sent = 0
        async with self.session_factory() as db:
            due_ids = [n.id for n in await find_due_notifications(db, now)]
            if due_ids:
                logger.info("Processing %d scheduled notifications", len(due_ids))

            for notification_id in due_ids:
                if not await claim_notification(db, notification_id, now, self.claim_ttl):
                    logger.debug("Notification %s already claimed or sent; skipping", notification_id)
                    continue
                notification = await db.get(Notification, notification_id)
                if notification is None:
                    # removed since the scan, e.g. its session was canceled
                    continue
                try:
                    await self.deliver(db, notification)
                except Exception:
                    logger.exception("Error sending notification %s", notification_id)
                    await db.rollback()
                    await release_claim(db, notification_id)
                    continue

                await mark_sent(db, notification_id, self.clock())
                sent += 1

        return sent


class NotificationScheduler:
    """Owned handle for the polling task. Create with start_scheduler(), end with stop()."""

    def __init__(self, dispatcher: NotificationDispatcher, interval_minutes: float = 1):
        self.dispatcher = dispatcher
        self.interval_seconds = interval_minutes * 60
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "NotificationScheduler":
        if self.running:
            return self
        logger.info("Starting notification scheduler with %s minute interval", self.interval_seconds / 60)
        self._task = asyncio.create_task(self._run(), name="notification-scheduler")
        return self

    async def _run(self) -> None:
        while True:
            try:
                await self.dispatcher.process_due()
            except Exception:
                logger.exception("Error in notification scheduler")
            await asyncio.sleep(self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Notification scheduler stopped")


def start_scheduler(dispatcher: NotificationDispatcher, interval_minutes: float = 1) -> NotificationScheduler:
    return NotificationScheduler(dispatcher, interval_minutes).start()
