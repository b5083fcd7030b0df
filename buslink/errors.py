"""
Typed rejections raised by the booking, tracking and realtime services.

Services raise these; the JSON error handler registered in ``create_app``
turns them into responses.
"""
from typing import Any, Dict, Iterable, Optional


class BusLinkError(Exception):
    status_code = 500
    message = 'Server error'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {'message': self.message}


class NotFound(BusLinkError):
    status_code = 404
    message = 'Not found'


class Unavailable(BusLinkError):
    status_code = 400
    message = 'Schedule is not available for booking'


class InvalidRequest(BusLinkError):
    status_code = 400
    message = 'Validation error'

    def __init__(self, message: Optional[str] = None, errors: Any = None):
        super().__init__(message)
        self.errors = errors

    def to_dict(self):
        body = super().to_dict()
        if self.errors:
            body['errors'] = self.errors
        return body


class AlreadyExists(BusLinkError):
    status_code = 400
    message = 'Already exists'


class SeatConflict(BusLinkError):
    """Requested seats are already held; carries exactly the contested seats."""
    status_code = 400
    message = 'Some seats are already booked'

    def __init__(self, conflicting_seats: Iterable[str]):
        super().__init__()
        self.conflicting_seats = list(conflicting_seats)

    def to_dict(self):
        body = super().to_dict()
        body['conflictingSeats'] = self.conflicting_seats
        return body


class Forbidden(BusLinkError):
    status_code = 403
    message = 'Forbidden'


class IntegrityViolation(BusLinkError):
    """An internal invariant is broken. Never repaired, always surfaced."""
    status_code = 500
    message = 'Data integrity violation'
