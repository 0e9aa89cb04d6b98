# academic_calendar/core/exceptions.py - Error taxonomy for calendar operations


class CalendarError(Exception):
    """Base class for errors raised by the academic calendar services"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(CalendarError):
    """Bad date ranges, short sessions, invalid term numbers, wrong lifecycle state"""
    status_code = 400


class ConflictError(CalendarError):
    """An ACTIVE session/term already holds the slot, or a name is taken"""
    status_code = 409


class NotFoundError(CalendarError):
    """Unknown school, session or term"""
    status_code = 404


__all__ = ["CalendarError", "InvalidRequestError", "ConflictError", "NotFoundError"]
