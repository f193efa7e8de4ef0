# unclutter/workers/notification_worker.py
"""
Standalone notification poller, for deployments that run the API with
NOTIFICATION_SCHEDULER_ENABLED=false and deliver from a separate process.

    python -m unclutter.workers.notification_worker
"""
import asyncio
import logging
import signal

from unclutter import config
from unclutter.db import SessionLocal, engine
from unclutter.services.dispatcher import NotificationDispatcher, start_scheduler
from unclutter.services.email_service import build_mail_sender

logger = logging.getLogger("unclutter.workers.notification_worker")


async def main():
    logger.info("Notification worker starting: interval=%s min", config.NOTIFICATION_SCHEDULER_INTERVAL)
    dispatcher = NotificationDispatcher(SessionLocal, build_mail_sender())
    scheduler = start_scheduler(dispatcher, config.NOTIFICATION_SCHEDULER_INTERVAL)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows 이벤트 루프는 시그널 핸들러를 지원하지 않음
            pass

    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()
        await engine.dispose()
        logger.info("Notification worker stopped")


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    asyncio.run(main())
