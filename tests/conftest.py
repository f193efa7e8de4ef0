import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from unclutter.db import Base, get_db
from unclutter.models import Notification, Session, Therapist, User, UserRole
from unclutter.services.auth_service import create_access_token
from unclutter.services.dispatcher import NotificationDispatcher
from unclutter.services.errors import MailTransportError

NOW = datetime(2025, 3, 9, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeMailSender:
    """Records outgoing mail. Can fail for chosen recipients or hold until released."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail_all = False
        self.fail_for: set[str] = set()
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    async def send(self, to, subject, body_text, body_html=None):
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_all or to in self.fail_for:
            raise MailTransportError(f"Failed to send email to {to}")
        self.sent.append({"to": to, "subject": subject, "body": body_text})


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mail():
    return FakeMailSender()


@pytest.fixture
def dispatcher(session_factory, mail, clock):
    return NotificationDispatcher(session_factory, mail, clock=clock)


@pytest_asyncio.fixture
async def users(session_factory):
    """client, other_client, therapist_user (+ therapist profile), admin"""
    async with session_factory() as s:
        client = User(email="client@example.com", name="Casey Client", role=UserRole.CLIENT.value)
        other = User(email="other@example.com", name="Olive Other", role=UserRole.CLIENT.value)
        therapist_user = User(email="therapist@example.com", name="Dr. Theo", role=UserRole.THERAPIST.value)
        admin = User(email="admin@example.com", name="Ada Admin", role=UserRole.ADMIN.value)
        s.add_all([client, other, therapist_user, admin])
        await s.flush()
        therapist = Therapist(user_id=therapist_user.id, bio="CBT", specialties=["anxiety"])
        s.add(therapist)
        await s.commit()
        return {
            "client": client,
            "other": other,
            "therapist_user": therapist_user,
            "therapist": therapist,
            "admin": admin,
        }


async def add_session(factory, therapist_id, client_id, start, end, status="scheduled") -> Session:
    async with factory() as s:
        session = Session(
            therapist_id=therapist_id, client_id=client_id, start_time=start, end_time=end,
            status=status, type="regular", format="video", meta={},
        )
        s.add(session)
        await s.commit()
        return session


async def add_notification(factory, user_id, scheduled_for, channels=None, **extra) -> Notification:
    async with factory() as s:
        notification = Notification(
            user_id=user_id, type="system_notification", title="Hello", message="Test message",
            payload=extra.pop("payload", {}), channels=channels or ["email", "in_app"],
            scheduled_for=scheduled_for, **extra,
        )
        s.add(notification)
        await s.commit()
        return notification


async def all_notifications(factory, **filters) -> list[Notification]:
    async with factory() as s:
        q = select(Notification).order_by(Notification.id)
        for name, value in filters.items():
            q = q.where(getattr(Notification, name) == value)
        return list((await s.execute(q)).scalars().all())


def auth_header(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest_asyncio.fixture
async def api(session_factory, dispatcher):
    from unclutter.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    # ASGITransport는 lifespan을 실행하지 않으므로 발송기를 직접 연결 (폴러 없음)
    app.state.dispatcher = dispatcher
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
