import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "true")

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from academic_calendar.core.clock import FixedClock
from academic_calendar.core.locks import ScopeLockRegistry
from academic_calendar.models import (
    Base, User, School, SchoolMember, Student, AcademicSession, Term,
    ClassLevel, ClassArm, Class, Enrollment, TimetablePeriod,
    SessionStatus, TermStatus,
)
from academic_calendar.services.notification_service import NotificationTrigger
from academic_calendar.services.session_service import SessionService


class RecordingDispatcher:
    """Stands in for NotificationDispatcher and keeps every call"""

    def __init__(self):
        self.lifecycle_calls = []
        self.promotion_calls = []

    def send_lifecycle_notice(self, recipients, notice):
        self.lifecycle_calls.append({"recipients": recipients, "notice": notice})
        return {"success": len(recipients), "failed": 0}

    def send_promotion_notice(self, students, session_name, school_name):
        self.promotion_calls.append({"students": students, "session_name": session_name, "school_name": school_name})
        return {"success": len(students), "failed": 0, "skipped": 0}


class RecordingEmailer:
    def __init__(self, fail_for: Optional[set] = None):
        self.sent = []
        self.fail_for = fail_for or set()

    def send_email(self, to_email, subject, body_text, body_html=None, reply_to=None):
        if to_email in self.fail_for:
            return False
        self.sent.append({"to": to_email, "subject": subject, "text": body_text, "html": body_html})
        return True


class Factory:
    """Builds calendar fixtures directly through the ORM"""

    def __init__(self, db):
        self.db = db
        self._users = 0

    def _save(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def school(self, name="Greenfield Academy", subdomain="greenfield") -> School:
        return self._save(School(name=name, subdomain=subdomain, email=f"office@{subdomain}.test"))

    def user(self, full_name: str, email: Optional[str] = None) -> User:
        self._users += 1
        email = email or f"user{self._users}@example.test"
        return self._save(User(email=email, full_name=full_name))

    def member(self, school: School, full_name="Ada Admin", role="ADMIN", email=None) -> SchoolMember:
        user = self.user(full_name, email)
        return self._save(SchoolMember(school_id=school.id, user_id=user.id, role=role))

    def levels(self, school: School, names: List[str], school_type="SECONDARY") -> List[ClassLevel]:
        return [
            self._save(ClassLevel(school_id=school.id, name=name, level=index, type=school_type))
            for index, name in enumerate(names, start=1)
        ]

    def arm(self, level: ClassLevel, name: str, academic_year="2025/2026", is_active=True) -> ClassArm:
        return self._save(ClassArm(name=name, class_level_id=level.id, academic_year=academic_year, is_active=is_active))

    def legacy_class(self, school: School, name: str, class_level=None, type=None) -> Class:
        return self._save(Class(school_id=school.id, name=name, class_level=class_level, type=type))

    def student(self, school: School, first_name: str, last_name="Okafor", with_email=True) -> Student:
        user = self.user(f"{first_name} {last_name}") if with_email else None
        return self._save(Student(
            school_id=school.id,
            admission_no=f"ADM-{first_name.upper()}",
            first_name=first_name,
            last_name=last_name,
            user_id=user.id if user else None,
        ))

    def enrollment(
        self,
        school: School,
        student: Student,
        class_level: str,
        term: Optional[Term] = None,
        class_arm: Optional[ClassArm] = None,
        class_: Optional[Class] = None,
        academic_year="2024/2025",
        is_active=True,
        debt="0",
    ) -> Enrollment:
        return self._save(Enrollment(
            school_id=school.id,
            student_id=student.id,
            class_level=class_level,
            class_arm_id=class_arm.id if class_arm else None,
            class_id=class_.id if class_ else None,
            term_id=term.id if term else None,
            academic_year=academic_year,
            enrollment_date=datetime(2024, 9, 2),
            is_active=is_active,
            debt_balance=Decimal(debt),
        ))

    def session(
        self,
        school: School,
        name: str,
        start: datetime,
        end: datetime,
        status=SessionStatus.DRAFT.value,
        school_type: Optional[str] = "SECONDARY",
        terms=(),
    ) -> AcademicSession:
        """``terms`` is a sequence of (number, status, start, end)"""
        session = AcademicSession(
            school_id=school.id,
            name=name,
            start_date=start,
            end_date=end,
            status=status,
            school_type=school_type,
        )
        for number, term_status, term_start, term_end in terms:
            session.terms.append(Term(
                name=f"Term {number}",
                number=number,
                start_date=term_start,
                end_date=term_end,
                status=term_status,
            ))
        return self._save(session)

    def previous_session(self, school: School, school_type: Optional[str] = "SECONDARY") -> AcademicSession:
        """The completed 2024/2025 session with three completed terms"""
        done = TermStatus.COMPLETED.value
        return self.session(
            school,
            "2024/2025",
            datetime(2024, 9, 2),
            datetime(2025, 7, 20),
            status=SessionStatus.COMPLETED.value,
            school_type=school_type,
            terms=[
                (1, done, datetime(2024, 9, 2), datetime(2024, 12, 15)),
                (2, done, datetime(2025, 1, 6), datetime(2025, 4, 5)),
                (3, done, datetime(2025, 4, 22), datetime(2025, 7, 20)),
            ],
        )

    def period(self, term: Term, day="MONDAY", start="08:00", end="08:40", class_=None, class_arm=None, **extra) -> TimetablePeriod:
        return self._save(TimetablePeriod(
            term_id=term.id,
            day_of_week=day,
            start_time=start,
            end_time=end,
            class_id=class_.id if class_ else None,
            class_arm_id=class_arm.id if class_arm else None,
            **extra,
        ))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 9, 1, 8, 0))


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def school(factory):
    return factory.school()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def service(db, clock, dispatcher):
    return SessionService(
        db,
        clock=clock,
        trigger=NotificationTrigger(db, dispatcher),
        locks=ScopeLockRegistry(),
    )


@pytest.fixture
def secondary_levels(factory, school):
    return factory.levels(school, ["JSS 1", "JSS 2", "JSS 3", "SS 1", "SS 2", "SS 3"], "SECONDARY")
