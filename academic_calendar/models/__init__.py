# academic_calendar/models/__init__.py - Import all models so SQLAlchemy can discover them

from academic_calendar.models.base import Base

from academic_calendar.models.user import User
from academic_calendar.models.school import School, SchoolMember
from academic_calendar.models.student import Student
from academic_calendar.models.academic import AcademicSession, Term, SessionStatus, TermStatus
from academic_calendar.models.class_level import ClassLevel, ClassArm
from academic_calendar.models.class_model import Class
from academic_calendar.models.enrollment import Enrollment
from academic_calendar.models.timetable import TimetablePeriod

__all__ = [
    "Base",
    "User",
    "School",
    "SchoolMember",
    "Student",
    "AcademicSession",
    "Term",
    "SessionStatus",
    "TermStatus",
    "ClassLevel",
    "ClassArm",
    "Class",
    "Enrollment",
    "TimetablePeriod",
]
