from fastapi import HTTPException, Request, status

from unclutter.services.dispatcher import NotificationDispatcher
from unclutter.services.errors import (
    ClientNotFoundError, InvalidSessionError, NotificationNotFoundError, ServiceError,
    SessionConflictError, SessionNotFoundError, SessionPermissionError, TherapistNotFoundError,
)


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """The dispatcher built in the app lifespan."""
    return request.app.state.dispatcher


def to_http_error(exc: ServiceError) -> HTTPException:
    if isinstance(exc, SessionConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "therapist_id": exc.therapist_id,
                "conflicting_session_ids": exc.conflicting_ids,
            },
        )
    if isinstance(exc, (SessionNotFoundError, TherapistNotFoundError, ClientNotFoundError, NotificationNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, SessionPermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, InvalidSessionError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
