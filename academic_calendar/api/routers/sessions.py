# academic_calendar/api/routers/sessions.py - Academic sessions and terms
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from typing import List, Optional
from uuid import UUID
import logging

from academic_calendar.api.deps.services import get_session_service
from academic_calendar.api.deps.tenancy import require_school
from academic_calendar.models.school import School
from academic_calendar.schemas.session import (
    InitializeSession, CreateTerm, StartTerm, MigrateStudents,
    EndTerm, EndSession, ReactivateTerm, SchoolTypeName,
    AcademicSessionOut, TermOut, ActiveSessionOut, StartTermResult,
    PromotedStudentOut, MigrationSummary, TermResult, SessionResult
)
from academic_calendar.services.session_service import SessionService

logger = logging.getLogger(__name__)
router = APIRouter()


def _schedule(service: SessionService, background_tasks: BackgroundTasks):
    """Hand queued notification jobs to FastAPI so they run after the response"""
    for job in service.pending_jobs:
        background_tasks.add_task(job)
    if service.pending_jobs:
        logger.info(f"Queued {len(service.pending_jobs)} notification job(s)")
    service.pending_jobs = []


# ==================== SESSIONS ====================

@router.post("/initialize", response_model=AcademicSessionOut, status_code=status.HTTP_201_CREATED)
def initialize_session(
    payload: InitializeSession,
    school: School = Depends(require_school),
    service: SessionService = Depends(get_session_service)
):
    """Create a DRAFT academic session"""
    session = service.initialize_session(
        school,
        name=payload.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        school_type=payload.school_type,
    )
    return AcademicSessionOut.model_validate(session)


@router.get("/active", response_model=ActiveSessionOut)
def get_active_session(
    school_type: Optional[SchoolTypeName] = Query(default=None),
    school: School = Depends(require_school),
    service: SessionService = Depends(get_session_service)
):
    session, term = service.get_active_session(school, school_type)
    return ActiveSessionOut(
        session=AcademicSessionOut.model_validate(session) if session else None,
        term=TermOut.model_validate(term) if term else None,
    )


@router.get("/", response_model=List[AcademicSessionOut])
def list_sessions(
    school_type: Optional[SchoolTypeName] = Query(default=None),
    school: School = Depends(require_school),
    service: SessionService = Depends(get_session_service)
):
    """All sessions of the school, newest first"""
    return [AcademicSessionOut.model_validate(session) for session in service.get_sessions(school, school_type)]


@router.post("/end-session", response_model=SessionResult)
def end_session(
    payload: EndSession,
    school: School = Depends(require_school),
    service: SessionService = Depends(get_session_service)
):
    session = service.end_session(school, payload.school_type)
    return SessionResult(session=AcademicSessionOut.model_validate(session))


# ==================== TERMS ====================

@router.post("/{session_id}/terms", response_model=TermOut, status_code=status.HTTP_201_CREATED)
def create_term(
    session_id: UUID,
    payload: CreateTerm,
    school: School = Depends(require_school),
    service: SessionService = Depends(get_session_service)
):
    term = service.create_term(
        school,
        session_id,
        name=payload.name,
        number=payload.number,
        start_date=payload.start_date,
        end_date=payload.end_date,
        half_term_start=payload.half_term_start,
        half_term_end=payload.half_term_end,
    )
    return TermOut.model_validate(term)


@router.post("/start-term", response_model=StartTermResult)
def start_term(
    payload: StartTerm,
    background_tasks: BackgroundTasks,
    school: School = Depends(require_school),
    service: SessionService = Depends(get_session_service)
):
    """
    NEW_SESSION creates an active session with its terms and promotes every student.
    NEW_TERM activates a draft term, clones the timetable and carries enrollments over.
    """
    outcome = service.start_new_term(
        school,
        intent=payload.intent,
        name=payload.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        school_type=payload.school_type,
        term_id=payload.term_id,
    )
    _schedule(service, background_tasks)

    return StartTermResult(
        session=AcademicSessionOut.model_validate(outcome.session),
        term=TermOut.model_validate(outcome.term),
        migrated_count=outcome.migrated_count,
        cloned_periods=outcome.cloned_periods,
        promoted_students=[PromotedStudentOut.model_validate(student) for student in outcome.promoted_students],
    )


@router.post("/end-term", response_model=TermResult)
def end_term(
    payload: EndTerm,
    school: School = Depends(require_school),
    service: SessionService = Depends(get_session_service)
):
    term = service.end_term(school, payload.school_type)
    return TermResult(term=TermOut.model_validate(term))


@router.post("/reactivate-term", response_model=TermResult)
def reactivate_term(
    payload: ReactivateTerm,
    school: School = Depends(require_school),
    service: SessionService = Depends(get_session_service)
):
    term = service.reactivate_term(school, payload.term_id, payload.school_type)
    return TermResult(term=TermOut.model_validate(term))


# ==================== MIGRATION ====================

@router.post("/migrate-students", response_model=MigrationSummary)
def migrate_students(
    payload: MigrateStudents,
    background_tasks: BackgroundTasks,
    school: School = Depends(require_school),
    service: SessionService = Depends(get_session_service)
):
    result = service.migrate_students(
        school,
        payload.term_id,
        carry_over=payload.carry_over,
        school_type=payload.school_type,
    )
    _schedule(service, background_tasks)
    return MigrationSummary(migrated_count=result.migrated_count, skipped_count=result.skipped_count)
