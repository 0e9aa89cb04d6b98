# academic_calendar/models/class_level.py - The class ladder (levels) and their arms
from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from academic_calendar.models.base import Base


class ClassLevel(Base):
    """
    One rung of the academic ladder ("JSS 2", "200 Level").
    next_level_id points at the following rung; NULL means terminal (graduation).
    """
    __tablename__ = "class_levels"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("schools.id"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    code: Mapped[str | None] = mapped_column(String(16))
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # PRIMARY|SECONDARY|TERTIARY
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    next_level_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("class_levels.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    next_level: Mapped["ClassLevel | None"] = relationship("ClassLevel", remote_side=[id])
    arms: Mapped[list["ClassArm"]] = relationship("ClassArm", back_populates="class_level")

    __table_args__ = (
        Index("ix_class_levels_scope", "school_id", "type", "level"),
    )


class ClassArm(Base):
    __tablename__ = "class_arms"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(32), nullable=False)  # "A", "Gold"
    capacity: Mapped[int | None] = mapped_column(Integer)
    class_level_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("class_levels.id", ondelete="CASCADE"),
        index=True,
        nullable=False
    )
    academic_year: Mapped[str | None] = mapped_column(String(16))  # "2025/2026"
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    class_level: Mapped["ClassLevel"] = relationship("ClassLevel", back_populates="arms")
