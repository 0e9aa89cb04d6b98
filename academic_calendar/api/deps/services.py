from fastapi import Depends
from sqlalchemy.orm import Session

from academic_calendar.core.clock import Clock, system_clock
from academic_calendar.core.db import get_db
from academic_calendar.services.notification_service import NotificationDispatcher, NotificationTrigger
from academic_calendar.services.session_service import SessionService


def get_clock() -> Clock:
    return system_clock


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


def get_session_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> SessionService:
    return SessionService(db, clock=clock, trigger=NotificationTrigger(db, dispatcher))
