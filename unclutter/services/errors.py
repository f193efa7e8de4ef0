"""Exceptions raised by the service layer; the routers map them to HTTP errors."""


class ServiceError(Exception):
    """Base class for expected, reportable failures."""


class SessionNotFoundError(ServiceError):
    pass


class TherapistNotFoundError(ServiceError):
    pass


class ClientNotFoundError(ServiceError):
    pass


class InvalidSessionError(ServiceError):
    """Bad time range or an unknown status/type/format."""


class SessionPermissionError(ServiceError):
    pass


class SessionConflictError(ServiceError):
    def __init__(self, therapist_id: int, conflicting_ids: list[int]):
        self.therapist_id = therapist_id
        self.conflicting_ids = conflicting_ids
        super().__init__(
            "Scheduling conflict: the therapist already has a session scheduled during this time"
        )


class ReminderSchedulingError(ServiceError):
    """The session or one of its participants could not be loaded."""


class NotificationNotFoundError(ServiceError):
    pass


class RecipientNotFoundError(ServiceError):
    """The notification's user no longer exists."""


class MailTransportError(ServiceError):
    """The mail backend refused or failed to deliver a message."""
