from __future__ import annotations
from enum import Enum
from typing import Optional
from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    BigInteger, String, Text, Boolean, CheckConstraint, ForeignKey, Index, JSON
)

from unclutter.db import Base, BigIntPK, UTCDateTime, utcnow


class UserRole(str, Enum):
    CLIENT = "client"
    THERAPIST = "therapist"
    ADMIN = "admin"


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELED = "canceled"
    RESCHEDULED = "rescheduled"
    NO_SHOW = "no_show"


class SessionType(str, Enum):
    INITIAL = "initial"
    REGULAR = "regular"
    FOLLOW_UP = "follow_up"
    EMERGENCY = "emergency"


class SessionFormat(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    CHAT = "chat"
    IN_PERSON = "in_person"
    HYBRID = "hybrid"


class NotificationType(str, Enum):
    SESSION_REMINDER = "session_reminder"
    SESSION_CONFIRMATION = "session_confirmation"
    SESSION_CANCELLATION = "session_cancellation"
    SYSTEM_NOTIFICATION = "system_notification"


class NotificationChannel(str, Enum):
    EMAIL = "email"
    IN_APP = "in_app"
    SMS = "sms"
    PUSH = "push"


# Sessions in these states hold no slot on the therapist's calendar
INACTIVE_SESSION_STATUSES = (SessionStatus.CANCELED.value, SessionStatus.RESCHEDULED.value)


def _in_list(column: str, enum_cls) -> str:
    values = ",".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} in ({values})"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(_in_list("role", UserRole), name="ck_users_role"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.CLIENT.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    therapist_profile: Mapped[Optional["Therapist"]] = relationship(back_populates="user", uselist=False)
    notifications: Mapped[list["Notification"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email


class Therapist(Base):
    """Professional profile attached to a user with the therapist role."""
    __tablename__ = "therapists"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    bio: Mapped[str] = mapped_column(Text, default="", nullable=False)
    specialties: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    user: Mapped["User"] = relationship(back_populates="therapist_profile")
    sessions: Mapped[list["Session"]] = relationship(back_populates="therapist")


class Session(Base):
    """A booked therapy session between a therapist and a client."""
    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_sessions_time_range"),
        CheckConstraint(_in_list("status", SessionStatus), name="ck_sessions_status"),
        CheckConstraint(_in_list("type", SessionType), name="ck_sessions_type"),
        CheckConstraint(_in_list("format", SessionFormat), name="ck_sessions_format"),
        Index("idx_sessions_therapist_time", "therapist_id", "start_time", "end_time"),
        Index("idx_sessions_client", "client_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    therapist_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("therapists.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.SCHEDULED.value, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    format: Mapped[str] = mapped_column(String(20), nullable=False)

    private_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # therapist only
    shared_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    therapist: Mapped["Therapist"] = relationship(back_populates="sessions")
    client: Mapped["User"] = relationship(foreign_keys=[client_id])


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        # due scan: scheduled_for <= now AND sent_at IS NULL
        Index("idx_notifications_due", "sent_at", "scheduled_for"),
        Index("idx_notifications_user_time", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    channels: Mapped[list[str]] = mapped_column(
        JSON, default=lambda: [NotificationChannel.IN_APP.value], nullable=False
    )
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # lease taken by a dispatcher tick before delivery
    claimed_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    user: Mapped["User"] = relationship(back_populates="notifications")
