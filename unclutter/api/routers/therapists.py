from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from unclutter.api.deps import to_http_error
from unclutter.db import get_db
from unclutter.models import Therapist, User
from unclutter.schemas import TherapistInfo
from unclutter.services import therapists as therapist_service
from unclutter.services.auth_service import get_current_user
from unclutter.services.errors import ServiceError

router = APIRouter(prefix="/therapists", tags=["therapists"])


def map_therapist_to_schema(therapist: Therapist) -> TherapistInfo:
    return TherapistInfo(
        id=therapist.id,
        user_id=therapist.user_id,
        name=therapist.user.name if therapist.user else None,
        email=therapist.user.email if therapist.user else None,
        bio=therapist.bio or "",
        specialties=therapist.specialties or [],
        is_active=therapist.is_active,
    )


@router.get("", response_model=List[TherapistInfo])
async def list_therapists(
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    therapists = await therapist_service.list_therapists(db, active_only)
    return [map_therapist_to_schema(t) for t in therapists]


@router.get("/{therapist_id}", response_model=TherapistInfo)
async def get_therapist(
    therapist_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        therapist = await therapist_service.get_therapist(db, therapist_id)
    except ServiceError as exc:
        raise to_http_error(exc)
    return map_therapist_to_schema(therapist)
