# academic_calendar/services/session_service.py - Session/term lifecycle and the start-term wizard
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, update
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID
import logging

from academic_calendar.core.clock import Clock, system_clock
from academic_calendar.core.config import settings
from academic_calendar.core.exceptions import ConflictError, InvalidRequestError, NotFoundError
from academic_calendar.core.locks import ScopeLockRegistry, scope_locks
from academic_calendar.models.academic import AcademicSession, Term, SessionStatus, TermStatus
from academic_calendar.models.school import School
from academic_calendar.services.migration_service import EnrollmentMigrator, MigrationResult, PromotedStudent
from academic_calendar.services.notification_service import NotificationJob, NotificationTrigger
from academic_calendar.services.school_lookup import SchoolRepository
from academic_calendar.services.term_generator import TermGenerator
from academic_calendar.services.timetable_service import TimetableCloner

logger = logging.getLogger(__name__)

NEW_SESSION = "NEW_SESSION"
NEW_TERM = "NEW_TERM"


@dataclass
class StartTermOutcome:
    session: AcademicSession
    term: Term
    migrated_count: int
    promoted_students: List[PromotedStudent] = field(default_factory=list)
    cloned_periods: int = 0


def months_between(start: datetime, end: datetime) -> int:
    """Calendar months between two dates, ignoring the day of month"""
    return (end.year - start.year) * 12 + (end.month - start.month)


class SessionService:
    """
    Lifecycle of academic sessions and terms for one school.

    Every mutating call runs in a single transaction: it commits on success and
    rolls back on any error, so a rejected call leaves no partial state. Calls
    that can activate a session or term hold the (school, school-type) scope
    lock for the whole transaction.

    Notification jobs produced by a committed call are appended to
    ``pending_jobs``; the caller decides where they run.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock = system_clock,
        trigger: Optional[NotificationTrigger] = None,
        locks: ScopeLockRegistry = scope_locks,
    ):
        self.db = db
        self.clock = clock
        self.trigger = trigger or NotificationTrigger(db)
        self.locks = locks
        self.schools = SchoolRepository(db)
        self.pending_jobs: List[NotificationJob] = []

    # ==================== QUERIES ====================

    @staticmethod
    def _exact_scope(query, school_type: Optional[str]):
        """A missing school type matches only untyped sessions"""
        if school_type is None:
            return query.where(AcademicSession.school_type.is_(None))
        return query.where(AcademicSession.school_type == school_type)

    @staticmethod
    def _optional_scope(query, school_type: Optional[str]):
        """A missing school type matches every session"""
        if school_type:
            return query.where(AcademicSession.school_type == school_type)
        return query

    def _active_session(self, school_id: UUID, school_type: Optional[str]) -> Optional[AcademicSession]:
        query = select(AcademicSession).where(
            AcademicSession.school_id == school_id,
            AcademicSession.status == SessionStatus.ACTIVE.value,
        )
        return self.db.execute(
            self._exact_scope(query, school_type).order_by(AcademicSession.start_date.desc())
        ).scalars().first()

    def _school_term(self, school_id: UUID, term_id: UUID) -> Term:
        term = self.db.execute(
            select(Term)
            .join(AcademicSession, Term.academic_session_id == AcademicSession.id)
            .where(Term.id == term_id, AcademicSession.school_id == school_id)
        ).scalars().first()
        if not term:
            raise NotFoundError("Term not found")
        return term

    def get_active_session(self, school: School, school_type: Optional[str] = None) -> Tuple[Optional[AcademicSession], Optional[Term]]:
        """
        ACTIVE session of the scope and its ACTIVE term. A typed lookup that finds
        nothing falls back to an untyped ACTIVE session. Returns (None, None) when
        there is no active session.
        """
        query = select(AcademicSession).where(
            AcademicSession.school_id == school.id,
            AcademicSession.status == SessionStatus.ACTIVE.value,
        ).order_by(AcademicSession.start_date.desc())

        session = self.db.execute(self._optional_scope(query, school_type)).scalars().first()
        if session is None and school_type:
            session = self.db.execute(
                query.where(AcademicSession.school_type.is_(None))
            ).scalars().first()

        if session is None:
            return None, None

        term = next((term for term in session.terms if term.status == TermStatus.ACTIVE.value), None)
        return session, term

    def get_sessions(self, school: School, school_type: Optional[str] = None) -> List[AcademicSession]:
        query = (
            select(AcademicSession)
            .where(AcademicSession.school_id == school.id)
            .options(selectinload(AcademicSession.terms))
            .order_by(AcademicSession.start_date.desc(), AcademicSession.created_at.desc())
        )
        return list(self.db.execute(self._optional_scope(query, school_type)).scalars().all())

    # ==================== VALIDATION ====================

    def _validate_session_span(self, start_date: datetime, end_date: datetime):
        if start_date >= end_date:
            raise InvalidRequestError("Start date must be before end date")

        months = months_between(start_date, end_date)
        days = (end_date - start_date).days
        if months < settings.SESSION_MIN_MONTHS and days < settings.SESSION_MIN_DAYS:
            raise InvalidRequestError(
                f"Academic session must span at least {settings.SESSION_MIN_MONTHS} months "
                f"(got {months} months, {days} days)"
            )

    def _ensure_name_free(self, school_id: UUID, name: str, school_type: Optional[str], statuses: Optional[List[str]] = None):
        query = select(AcademicSession.id).where(
            AcademicSession.school_id == school_id,
            AcademicSession.name == name,
        )
        if statuses:
            query = query.where(AcademicSession.status.in_(statuses))
        if self.db.execute(self._exact_scope(query, school_type).limit(1)).first():
            raise ConflictError(f"An academic session named {name} already exists")

    # ==================== MUTATION HELPERS ====================

    def _complete_other_sessions(self, school_id: UUID, school_type: Optional[str], keep: AcademicSession) -> int:
        query = (
            update(AcademicSession)
            .where(
                AcademicSession.school_id == school_id,
                AcademicSession.status == SessionStatus.ACTIVE.value,
                AcademicSession.id != keep.id,
            )
            .values(status=SessionStatus.COMPLETED.value, updated_at=self.clock.now())
            .execution_options(synchronize_session="fetch")
        )
        if school_type is None:
            query = query.where(AcademicSession.school_type.is_(None))
        else:
            query = query.where(AcademicSession.school_type == school_type)
        return self.db.execute(query).rowcount or 0

    def _publish(self, *jobs: Optional[NotificationJob]):
        """Queue jobs built from an already committed transition"""
        self.pending_jobs.extend(job for job in jobs if job is not None)

    # ==================== SESSIONS ====================

    def initialize_session(
        self,
        school: School,
        name: str,
        start_date: datetime,
        end_date: datetime,
        school_type: Optional[str] = None
    ) -> AcademicSession:
        """Create a DRAFT session with no terms"""
        with self.locks.hold(school.id, school_type):
            try:
                self.schools.lock(school.id)

                if self._active_session(school.id, school_type):
                    raise ConflictError("An active academic session already exists. End it before creating a new one.")

                self._validate_session_span(start_date, end_date)
                self._ensure_name_free(school.id, name, school_type)

                session = AcademicSession(
                    school_id=school.id,
                    name=name,
                    start_date=start_date,
                    end_date=end_date,
                    status=SessionStatus.DRAFT.value,
                    school_type=school_type,
                )
                self.db.add(session)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Academic session initialized: {session.name} ({school_type or 'all types'}) for school {school.id}")
        return session

    def end_session(self, school: School, school_type: Optional[str] = None) -> AcademicSession:
        """Complete the ACTIVE session and every one of its terms"""
        query = select(AcademicSession).where(
            AcademicSession.school_id == school.id,
            AcademicSession.status == SessionStatus.ACTIVE.value,
        ).order_by(AcademicSession.start_date.desc())

        try:
            session = self.db.execute(self._optional_scope(query, school_type)).scalars().first()
            if not session:
                raise NotFoundError("No active academic session found")

            for term in session.terms:
                term.status = TermStatus.COMPLETED.value
            session.status = SessionStatus.COMPLETED.value
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Academic session ended: {session.name} for school {school.id}")
        return session

    # ==================== TERMS ====================

    def create_term(
        self,
        school: School,
        session_id: UUID,
        name: str,
        number: int,
        start_date: datetime,
        end_date: datetime,
        half_term_start: Optional[datetime] = None,
        half_term_end: Optional[datetime] = None
    ) -> Term:
        """Add a DRAFT term to one of the school's sessions"""
        try:
            session = self.db.execute(
                select(AcademicSession).where(
                    AcademicSession.id == session_id,
                    AcademicSession.school_id == school.id,
                )
            ).scalars().first()
            if not session:
                raise NotFoundError("Academic session not found")

            if number < 1 or number > 3:
                raise InvalidRequestError("Term number must be between 1 and 3")

            if any(term.number == number for term in session.terms):
                raise ConflictError(f"Term {number} already exists in session {session.name}")

            if start_date >= end_date:
                raise InvalidRequestError("Term start date must be before its end date")

            if start_date < session.start_date or end_date > session.end_date:
                raise InvalidRequestError("Term dates must be within the academic session dates")

            if (half_term_start is None) != (half_term_end is None):
                raise InvalidRequestError("Half-term needs both a start and an end date")
            if half_term_start is not None:
                if not (start_date <= half_term_start < half_term_end <= end_date):
                    raise InvalidRequestError("Half-term must fall within the term dates")

            term = Term(
                name=name,
                number=number,
                start_date=start_date,
                end_date=end_date,
                half_term_start=half_term_start,
                half_term_end=half_term_end,
                status=TermStatus.DRAFT.value,
            )
            session.terms.append(term)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Term created: {term.name} in session {session.name}")
        return term

    def end_term(self, school: School, school_type: Optional[str] = None) -> Term:
        query = (
            select(Term)
            .join(AcademicSession, Term.academic_session_id == AcademicSession.id)
            .where(
                AcademicSession.school_id == school.id,
                Term.status == TermStatus.ACTIVE.value,
            )
            .order_by(AcademicSession.start_date.desc(), Term.number.desc())
        )

        try:
            term = self.db.execute(self._optional_scope(query, school_type)).scalars().first()
            if not term:
                raise NotFoundError("No active term found")

            term.status = TermStatus.COMPLETED.value
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Term ended: {term.name} for school {school.id}")
        return term

    def reactivate_term(self, school: School, term_id: UUID, school_type: Optional[str] = None) -> Term:
        """
        Bring a COMPLETED term whose end date is still ahead back to ACTIVE.

        Other ACTIVE terms of the scope are completed and the term's session is
        made ACTIVE again (completing any other ACTIVE session of the scope).
        """
        term = self.db.get(Term, term_id)
        if not term:
            raise NotFoundError("Term not found")

        session = term.session
        scope_type = session.school_type

        with self.locks.hold(school.id, scope_type):
            try:
                self.schools.lock(school.id)

                if session.school_id != school.id:
                    raise InvalidRequestError("Term does not belong to this school")

                if school_type and scope_type != school_type:
                    raise InvalidRequestError("Term does not belong to the requested school type")

                if term.status != TermStatus.COMPLETED.value:
                    raise InvalidRequestError("Only completed terms can be reactivated")

                if term.end_date <= self.clock.now():
                    raise InvalidRequestError("Cannot reactivate a term whose end date has passed")

                TermGenerator(self.db, self.clock).complete_other_active_terms(school.id, scope_type, keep=term)
                term.status = TermStatus.ACTIVE.value

                if session.status != SessionStatus.ACTIVE.value:
                    self._complete_other_sessions(school.id, scope_type, keep=session)
                    session.status = SessionStatus.ACTIVE.value

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Term reactivated: {term.name} in session {session.name}")
        return term

    # ==================== START TERM WIZARD ====================

    def start_new_term(
        self,
        school: School,
        intent: str,
        name: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        school_type: Optional[str] = None,
        term_id: Optional[UUID] = None
    ) -> StartTermOutcome:
        if intent == NEW_SESSION:
            return self._start_new_session(school, name, start_date, end_date, school_type)
        if intent == NEW_TERM:
            return self._start_next_term(school, term_id)
        raise InvalidRequestError(f"Unknown intent: {intent}")

    def _start_new_session(
        self,
        school: School,
        name: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        school_type: Optional[str]
    ) -> StartTermOutcome:
        if not name or start_date is None or end_date is None:
            raise InvalidRequestError("Name, start date and end date are required for a new session")

        with self.locks.hold(school.id, school_type):
            try:
                self.schools.lock(school.id)

                if self._active_session(school.id, school_type):
                    raise ConflictError("An active academic session already exists. End it before starting a new one.")

                self._validate_session_span(start_date, end_date)
                self._ensure_name_free(
                    school.id, name, school_type,
                    statuses=[SessionStatus.ACTIVE.value, SessionStatus.DRAFT.value],
                )

                session = AcademicSession(
                    school_id=school.id,
                    name=name,
                    start_date=start_date,
                    end_date=end_date,
                    status=SessionStatus.ACTIVE.value,
                    school_type=school_type,
                )
                self.db.add(session)
                self.db.flush()
                self._complete_other_sessions(school.id, school_type, keep=session)

                term, _ = TermGenerator(self.db, self.clock).generate(session)

                migration = EnrollmentMigrator(self.db, self.clock).promote(school.id, term, school_type)

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self._publish(
            self.trigger.lifecycle_job(school, session, term, school_type, is_new_session=True),
            self.trigger.promotion_job(school, session.name, migration.promoted_students),
        )

        logger.info(
            f"New session started: {session.name} ({school_type or 'all types'}), "
            f"{migration.migrated_count} student(s) migrated"
        )
        return StartTermOutcome(
            session=session,
            term=term,
            migrated_count=migration.migrated_count,
            promoted_students=migration.promoted_students,
        )

    def _start_next_term(self, school: School, term_id: Optional[UUID]) -> StartTermOutcome:
        if not term_id:
            raise InvalidRequestError("term_id is required to start a new term")

        term = self._school_term(school.id, term_id)
        session = term.session
        scope_type = session.school_type

        with self.locks.hold(school.id, scope_type):
            try:
                self.schools.lock(school.id)
                self.db.refresh(term)

                if term.status == TermStatus.ACTIVE.value:
                    raise ConflictError(f"{term.name} is already active")
                if term.status != TermStatus.DRAFT.value:
                    raise InvalidRequestError(f"Only draft terms can be started; {term.name} is {term.status}")

                migrator = EnrollmentMigrator(self.db, self.clock)
                previous_term = migrator.find_previous_term(school.id, term.id, scope_type)

                TermGenerator(self.db, self.clock).complete_other_active_terms(school.id, scope_type, keep=term)
                term.status = TermStatus.ACTIVE.value

                if session.status != SessionStatus.ACTIVE.value:
                    self._complete_other_sessions(school.id, scope_type, keep=session)
                    session.status = SessionStatus.ACTIVE.value
                self.db.flush()

                cloned = 0
                if previous_term:
                    cloned = TimetableCloner(self.db).clone(previous_term.id, term.id)

                migration = migrator.carry_over(
                    school.id, term, previous_term.id if previous_term else None, scope_type
                )

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self._publish(self.trigger.lifecycle_job(school, session, term, scope_type, is_new_session=False))

        logger.info(
            f"Term started: {term.name} of {session.name}, {migration.migrated_count} enrollment(s) "
            f"carried over, {cloned} timetable period(s) cloned"
        )
        return StartTermOutcome(
            session=session,
            term=term,
            migrated_count=migration.migrated_count,
            cloned_periods=cloned,
        )

    # ==================== MIGRATION ====================

    def migrate_students(
        self,
        school: School,
        term_id: UUID,
        carry_over: bool = False,
        school_type: Optional[str] = None
    ) -> MigrationResult:
        """
        Run a migration sweep into an existing term. Carry-over copies enrollments
        from the session's preceding term; otherwise students are promoted.
        """
        term = self._school_term(school.id, term_id)
        session = term.session
        scope_type = school_type or session.school_type

        with self.locks.hold(school.id, scope_type):
            try:
                self.schools.lock(school.id)
                migrator = EnrollmentMigrator(self.db, self.clock)

                if carry_over:
                    source = self.db.execute(
                        select(Term)
                        .where(Term.academic_session_id == session.id, Term.number < term.number)
                        .order_by(Term.number.desc())
                        .limit(1)
                    ).scalars().first()
                    if not source:
                        raise InvalidRequestError("No previous term in this session to carry enrollments over from")
                    result = migrator.carry_over(school.id, term, source.id, scope_type)
                else:
                    result = migrator.promote(school.id, term, scope_type)

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        if not carry_over:
            self._publish(self.trigger.promotion_job(school, session.name, result.promoted_students))

        logger.info(f"Migrated {result.migrated_count} student(s) into {term.name} (carry over: {carry_over})")
        return result


__all__ = ["SessionService", "StartTermOutcome", "NEW_SESSION", "NEW_TERM", "months_between"]
