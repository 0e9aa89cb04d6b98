# academic_calendar/models/timetable.py
from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, CheckConstraint, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from academic_calendar.models.base import Base


class TimetablePeriod(Base):
    __tablename__ = "timetable_periods"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    term_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("terms.id", ondelete="CASCADE"), index=True, nullable=False)
    class_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"))
    class_arm_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("class_arms.id", ondelete="CASCADE"))
    day_of_week: Mapped[str] = mapped_column(String(10), nullable=False)  # MONDAY..SUNDAY
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)  # "08:00"
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="LESSON")  # LESSON|BREAK|LUNCH|FREE
    # Subjects, teachers and rooms are owned elsewhere; only their ids are copied
    subject_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    course_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    teacher_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    room_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "day_of_week IN ('MONDAY','TUESDAY','WEDNESDAY','THURSDAY','FRIDAY','SATURDAY','SUNDAY')",
            name="ck_timetable_period_day"
        ),
        Index("ix_timetable_periods_slot", "term_id", "class_id", "class_arm_id", "day_of_week", "start_time"),
    )
