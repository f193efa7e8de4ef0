from __future__ import annotations
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator
from datetime import datetime

from unclutter.db import as_utc
from unclutter.models import SessionStatus, SessionType, SessionFormat


# 상담사
class TherapistInfo(BaseModel):
    id: int
    user_id: int
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    bio: str = ""
    specialties: List[str] = []
    is_active: bool = True

    class Config:
        from_attributes = True


# 세션
class SessionCreate(BaseModel):
    """
    POST /sessions 요청 스키마.
    client_id는 상담사/관리자가 예약할 때만 필요합니다 (내담자는 본인으로 고정).
    """
    therapist_id: int
    client_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    type: SessionType
    format: SessionFormat
    meta: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("start_time", "end_time")
    @classmethod
    def to_utc(cls, v):
        return as_utc(v)

    @model_validator(mode="after")
    def check_time_range(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class SessionUpdate(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[SessionStatus] = None
    type: Optional[SessionType] = None
    format: Optional[SessionFormat] = None
    private_notes: Optional[str] = None
    shared_notes: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def to_utc(cls, v):
        return as_utc(v)

    @field_validator("meta")
    @classmethod
    def meta_or_empty(cls, v):
        # meta: null 은 비우기로 처리 (컬럼은 항상 JSON 객체)
        return {} if v is None else v


class SessionFilters(BaseModel):
    therapist_id: Optional[int] = None
    client_id: Optional[int] = None
    status: Optional[SessionStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    @field_validator("start_date", "end_date")
    @classmethod
    def to_utc(cls, v):
        return as_utc(v)


class SessionInfo(BaseModel):
    id: int
    therapist_id: int
    client_id: int
    start_time: datetime
    end_time: datetime
    status: str
    type: str
    format: str
    shared_notes: Optional[str] = None
    private_notes: Optional[str] = None
    meta: Dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    total: int
    pages: int
    page: int
    limit: int


class SessionList(BaseModel):
    sessions: List[SessionInfo]
    pagination: Pagination


# 알림
class NotificationInfo(BaseModel):
    id: int
    type: str
    title: str
    message: str
    payload: Dict[str, Any] = {}
    channels: List[str] = []
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    read: bool = False
    created_at: datetime

    class Config:
        from_attributes = True


class MarkAllReadResp(BaseModel):
    updated: int


class DispatchResp(BaseModel):
    sent: int
