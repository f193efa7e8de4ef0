from __future__ import annotations
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from unclutter.api.deps import get_dispatcher, to_http_error
from unclutter.db import get_db
from unclutter.models import SessionStatus, User, UserRole
from unclutter.schemas import (
    SessionCreate, SessionFilters, SessionInfo, SessionList, SessionUpdate, Pagination,
)
from unclutter.services import sessions as session_service
from unclutter.services.auth_service import get_current_user
from unclutter.services.dispatcher import NotificationDispatcher
from unclutter.services.errors import ServiceError

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _is_client(user: User) -> bool:
    return user.role == UserRole.CLIENT.value


def _to_info(session, hide_private: bool) -> SessionInfo:
    info = SessionInfo.model_validate(session)
    # 비공개 메모는 상담사/관리자만 볼 수 있음
    if hide_private:
        info.private_notes = None
    return info


@router.get("", response_model=SessionList)
async def list_sessions(
    therapist_id: Optional[int] = Query(None),
    client_id: Optional[int] = Query(None),
    status_filter: Optional[SessionStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """현재 사용자가 볼 수 있는 세션 목록 (내담자: 본인, 상담사: 본인 캘린더, 관리자: 전체)."""
    filters = SessionFilters(
        therapist_id=therapist_id, client_id=client_id, status=status_filter,
        start_date=start_date, end_date=end_date, page=page, limit=limit,
    )
    sessions, total = await session_service.list_sessions(db, current_user, filters)
    return SessionList(
        sessions=[_to_info(s, _is_client(current_user)) for s in sessions],
        pagination=Pagination(
            total=total,
            pages=session_service.page_count(total, limit),
            page=page,
            limit=limit,
        ),
    )


@router.post("", response_model=SessionInfo, status_code=status.HTTP_201_CREATED)
async def create_session(
    req: SessionCreate,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: User = Depends(get_current_user),
):
    """
    세션 예약. 상담사 일정이 겹치면 409를 반환합니다.
    성공 시 리마인더 4건이 예약되고 내담자에게 확인 알림이 발송됩니다.
    """
    hide_private = _is_client(current_user)
    try:
        session = await session_service.create_session(db, dispatcher, req, current_user)
    except ServiceError as exc:
        raise to_http_error(exc)
    return _to_info(session, hide_private)


@router.get("/{session_id}", response_model=SessionInfo)
async def get_session(
    session_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    hide_private = _is_client(current_user)
    try:
        session = await session_service.get_session(db, session_id, current_user)
    except ServiceError as exc:
        raise to_http_error(exc)
    return _to_info(session, hide_private)


@router.patch("/{session_id}", response_model=SessionInfo)
async def update_session(
    session_id: int,
    req: SessionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """시간 변경 시 충돌 검사를 다시 수행하고 리마인더를 새 시간으로 다시 예약합니다."""
    hide_private = _is_client(current_user)
    try:
        session = await session_service.update_session(db, session_id, req, current_user)
    except ServiceError as exc:
        raise to_http_error(exc)
    return _to_info(session, hide_private)


@router.post("/{session_id}/cancel", response_model=SessionInfo)
async def cancel_session(
    session_id: int,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: User = Depends(get_current_user),
):
    hide_private = _is_client(current_user)
    try:
        session = await session_service.cancel_session(db, dispatcher, session_id, current_user)
    except ServiceError as exc:
        raise to_http_error(exc)
    return _to_info(session, hide_private)
