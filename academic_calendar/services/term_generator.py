# academic_calendar/services/term_generator.py - Split a new session into terms or semesters
from sqlalchemy.orm import Session
from sqlalchemy import select, update
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import logging

from academic_calendar.core.clock import Clock, system_clock
from academic_calendar.models.academic import AcademicSession, Term, TermStatus
from academic_calendar.services.school_types import is_tertiary

logger = logging.getLogger(__name__)

# Consecutive sub-periods are separated by one tick
BOUNDARY_GAP = timedelta(milliseconds=1)

TERM_NAMES = ["1st Term", "2nd Term", "3rd Term"]
SEMESTER_NAMES = ["1st Semester", "2nd Semester"]


def split_span(start: datetime, end: datetime, parts: int) -> List[Tuple[datetime, datetime]]:
    """
    Divide [start, end] into ``parts`` equal intervals by millisecond span.

    Interval i ends at start + (i+1) * span / parts; interval i+1 starts one
    millisecond later. The last interval always ends exactly at ``end``.
    """
    if parts < 1:
        raise ValueError("parts must be at least 1")
    total_ms = (end - start) / timedelta(milliseconds=1)
    step = timedelta(milliseconds=total_ms / parts)

    intervals = []
    current_start = start
    previous_end = start
    for index in range(parts):
        current_end = end if index == parts - 1 else previous_end + step
        intervals.append((current_start, current_end))
        previous_end = current_end
        current_start = current_end + BOUNDARY_GAP
    return intervals


def term_names_for(school_type: Optional[str]) -> List[str]:
    return SEMESTER_NAMES if is_tertiary(school_type) else TERM_NAMES


class TermGenerator:
    """Materializes the terms of a freshly created ACTIVE session"""

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock

    def generate(self, session: AcademicSession) -> Tuple[Term, List[Term]]:
        """
        Create 2 semesters (TERTIARY) or 3 terms (everything else) for ``session``.
        The first one is ACTIVE, the rest DRAFT. Any other ACTIVE term in the same
        (school, school-type) scope is completed.

        Returns (active_term, all_terms).
        """
        names = term_names_for(session.school_type)
        intervals = split_span(session.start_date, session.end_date, len(names))

        terms = []
        for number, (name, (start, end)) in enumerate(zip(names, intervals), start=1):
            term = Term(
                name=name,
                number=number,
                start_date=start,
                end_date=end,
                status=TermStatus.ACTIVE.value if number == 1 else TermStatus.DRAFT.value,
            )
            session.terms.append(term)
            terms.append(term)

        self.db.flush()
        active_term = terms[0]

        completed = self.complete_other_active_terms(session.school_id, session.school_type, active_term)
        if completed:
            logger.info(f"Completed {completed} previously active term(s) superseded by {active_term.name}")

        logger.info(f"Generated {len(terms)} terms for session {session.name} ({session.school_type or 'all types'})")
        return active_term, terms

    def complete_other_active_terms(self, school_id, school_type: Optional[str], keep: Term) -> int:
        """Set every ACTIVE term in the exact (school, school-type) scope except ``keep`` to COMPLETED"""
        scope_sessions = select(AcademicSession.id).where(AcademicSession.school_id == school_id)
        if school_type is None:
            scope_sessions = scope_sessions.where(AcademicSession.school_type.is_(None))
        else:
            scope_sessions = scope_sessions.where(AcademicSession.school_type == school_type)

        result = self.db.execute(
            update(Term)
            .where(
                Term.academic_session_id.in_(scope_sessions),
                Term.status == TermStatus.ACTIVE.value,
                Term.id != keep.id,
            )
            .values(status=TermStatus.COMPLETED.value, updated_at=self.clock.now())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
