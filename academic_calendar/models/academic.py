# academic_calendar/models/academic.py - Academic sessions and their terms
from __future__ import annotations
import enum
import uuid
from datetime import datetime
from sqlalchemy import (
    String, Integer, ForeignKey, DateTime, Index, CheckConstraint, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from academic_calendar.models.base import Base


class SessionStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class TermStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class AcademicSession(Base):
    """
    A school-year period for one (school, school-type) pair.
    At most one session per pair is ACTIVE; see SessionService.
    """
    __tablename__ = "academic_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)  # "2025/2026"
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=SessionStatus.DRAFT.value)
    school_type: Mapped[str | None] = mapped_column(String(16), nullable=True)  # PRIMARY|SECONDARY|TERTIARY

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    school: Mapped["School"] = relationship("School", back_populates="sessions")
    terms: Mapped[list["Term"]] = relationship(
        "Term",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="Term.number"
    )

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE.value

    __table_args__ = (
        CheckConstraint("status IN ('DRAFT','ACTIVE','COMPLETED','ARCHIVED')", name="ck_academic_session_status"),
        Index("ix_academic_sessions_scope", "school_id", "school_type", "status"),
    )


class Term(Base):
    __tablename__ = "terms"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    academic_session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("academic_sessions.id", ondelete="CASCADE"),
        index=True,
        nullable=False
    )
    name: Mapped[str] = mapped_column(String(48), nullable=False)  # "1st Term", "2nd Semester"
    number: Mapped[int] = mapped_column(Integer, nullable=False)  # 1,2,3
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    half_term_start: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    half_term_end: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=TermStatus.DRAFT.value)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    session: Mapped["AcademicSession"] = relationship("AcademicSession", back_populates="terms")
    enrollments: Mapped[list["Enrollment"]] = relationship("Enrollment", back_populates="term")

    @property
    def is_active(self) -> bool:
        return self.status == TermStatus.ACTIVE.value

    __table_args__ = (
        Index("uq_term_number_per_session", "academic_session_id", "number", unique=True),
        CheckConstraint("status IN ('DRAFT','ACTIVE','COMPLETED','ARCHIVED')", name="ck_term_status"),
        CheckConstraint("number BETWEEN 1 AND 3", name="ck_term_number"),
    )
