# unclutter/main.py

from __future__ import annotations
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from unclutter import config
from unclutter.db import SessionLocal, get_db
from unclutter.api.routers import sessions, therapists, notifications
from unclutter.services.dispatcher import NotificationDispatcher, start_scheduler
from unclutter.services.email_service import build_mail_sender

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 앱 시작 시: 발송기 생성 + 예약 알림 폴러 시작
    dispatcher = NotificationDispatcher(SessionLocal, build_mail_sender())
    app.state.dispatcher = dispatcher
    app.state.scheduler = None
    if config.NOTIFICATION_SCHEDULER_ENABLED:
        app.state.scheduler = start_scheduler(dispatcher, config.NOTIFICATION_SCHEDULER_INTERVAL)
    else:
        logger.info("Notification scheduler disabled")
    try:
        yield
    finally:
        # 앱 종료 시
        if app.state.scheduler is not None:
            await app.state.scheduler.stop()


app = FastAPI(
    title="Unclutter API",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions.router)
app.include_router(therapists.router)
app.include_router(notifications.router)


@app.get("/health")
async def health():
    return {"ok": True}


@app.get("/db-health")
async def db_health(db: AsyncSession = Depends(get_db)):
    # 간단한 ping
    result = await db.execute(text("SELECT 1"))
    return {"db": "ok", "result": result.scalar_one()}
