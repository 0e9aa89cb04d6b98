# academic_calendar/models/enrollment.py
from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Boolean, Numeric, DateTime, ForeignKey, Index, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from academic_calendar.models.base import Base


class Enrollment(Base):
    """
    Placement of one student in one school at a class level for an academic year.
    Migration never deletes enrollments; it deactivates the old one and creates the next.
    """
    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), nullable=False, index=True)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    class_level: Mapped[str] = mapped_column(String(64), nullable=False)  # label, e.g. "JSS 2"
    class_arm_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("class_arms.id", ondelete="SET NULL"), index=True)
    class_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("classes.id", ondelete="SET NULL"), index=True)
    # NULL for legacy enrollments created before terms existed
    term_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("terms.id", ondelete="SET NULL"), index=True)
    academic_year: Mapped[str] = mapped_column(String(16), nullable=False)
    enrollment_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    debt_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    student: Mapped["Student"] = relationship("Student", back_populates="enrollments")
    term: Mapped["Term | None"] = relationship("Term", back_populates="enrollments")
    class_arm: Mapped["ClassArm | None"] = relationship("ClassArm")
    class_: Mapped["Class | None"] = relationship("Class", back_populates="enrollments")

    __table_args__ = (
        # A student holds at most one active enrollment per school
        Index(
            "uq_enrollment_active_student",
            "school_id", "student_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_enrollments_term_active", "school_id", "term_id", "is_active"),
    )
