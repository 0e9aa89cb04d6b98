# academic_calendar/services/timetable_service.py - Copy the weekly timetable into a new term
from sqlalchemy.orm import Session
from sqlalchemy import select
from uuid import UUID
import logging

from academic_calendar.models.timetable import TimetablePeriod

logger = logging.getLogger(__name__)

CLONED_FIELDS = (
    "day_of_week", "start_time", "end_time", "type",
    "subject_id", "course_id", "teacher_id", "room_id",
    "class_id", "class_arm_id",
)


class TimetableCloner:
    def __init__(self, db: Session):
        self.db = db

    def clone(self, from_term_id: UUID, to_term_id: UUID) -> int:
        """
        Copy every period of ``from_term_id`` into ``to_term_id`` unless the new
        term already has a period in the same (class, class arm, day, start time)
        slot. Returns the number of periods created.
        """
        periods = self.db.execute(
            select(TimetablePeriod).where(TimetablePeriod.term_id == from_term_id)
        ).scalars().all()

        occupied = {
            self._slot(period)
            for period in self.db.execute(
                select(TimetablePeriod).where(TimetablePeriod.term_id == to_term_id)
            ).scalars().all()
        }

        cloned = 0
        for period in periods:
            slot = self._slot(period)
            if slot in occupied:
                continue

            self.db.add(TimetablePeriod(
                term_id=to_term_id,
                **{name: getattr(period, name) for name in CLONED_FIELDS}
            ))
            occupied.add(slot)
            cloned += 1

        if cloned:
            self.db.flush()
        logger.info(f"Cloned {cloned} of {len(periods)} timetable period(s) into term {to_term_id}")
        return cloned

    @staticmethod
    def _slot(period: TimetablePeriod):
        return (period.class_id, period.class_arm_id, period.day_of_week, period.start_time)
