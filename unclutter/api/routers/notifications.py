from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from unclutter.api.deps import get_dispatcher, to_http_error
from unclutter.db import get_db
from unclutter.models import User, UserRole
from unclutter.schemas import NotificationInfo, MarkAllReadResp, DispatchResp
from unclutter.services import notifications as notification_service
from unclutter.services.auth_service import get_current_user, require_roles
from unclutter.services.dispatcher import NotificationDispatcher
from unclutter.services.errors import ServiceError

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationInfo])
async def get_my_notifications(
    include_read: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """현재 사용자의 알림 목록 (기본: 읽지 않은 알림만, 최신순)."""
    return await notification_service.list_user_notifications(db, current_user.id, include_read)


@router.post("/read-all", response_model=MarkAllReadResp)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    updated = await notification_service.mark_all_as_read(db, current_user.id)
    return MarkAllReadResp(updated=updated)


@router.post("/dispatch", response_model=DispatchResp)
async def dispatch_due(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    """(관리자) 예약 알림 발송을 즉시 한 번 실행합니다."""
    sent = await dispatcher.process_due()
    return DispatchResp(sent=sent)


@router.post("/{notification_id}/read", response_model=NotificationInfo)
async def mark_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await notification_service.mark_as_read(db, current_user.id, notification_id)
    except ServiceError as exc:
        raise to_http_error(exc)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        await notification_service.delete_notification(db, current_user.id, notification_id)
    except ServiceError as exc:
        raise to_http_error(exc)
    return None
