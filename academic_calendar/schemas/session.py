# academic_calendar/schemas/session.py - Request/response models for the sessions API
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, validator
from typing import Optional, List, Literal
from uuid import UUID

SchoolTypeName = Literal["PRIMARY", "SECONDARY", "TERTIARY"]


def _naive_utc(v):
    # Stored timestamps are naive UTC
    if isinstance(v, datetime) and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


# Requests
class InitializeSession(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    start_date: datetime
    end_date: datetime
    school_type: Optional[SchoolTypeName] = None

    @validator('name')
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Session name cannot be empty')
        return v

    @validator('start_date', 'end_date')
    def normalize_dates(cls, v):
        return _naive_utc(v)


class CreateTerm(BaseModel):
    name: str = Field(..., min_length=1, max_length=48)
    number: int
    start_date: datetime
    end_date: datetime
    half_term_start: Optional[datetime] = None
    half_term_end: Optional[datetime] = None

    @validator('start_date', 'end_date', 'half_term_start', 'half_term_end')
    def normalize_dates(cls, v):
        return _naive_utc(v)


class StartTerm(BaseModel):
    intent: Literal["NEW_SESSION", "NEW_TERM"]
    name: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    school_type: Optional[SchoolTypeName] = None
    term_id: Optional[UUID] = None

    @validator('start_date', 'end_date')
    def normalize_dates(cls, v):
        return _naive_utc(v)


class MigrateStudents(BaseModel):
    term_id: UUID
    carry_over: bool = False
    school_type: Optional[SchoolTypeName] = None


class EndTerm(BaseModel):
    school_type: Optional[SchoolTypeName] = None


class EndSession(BaseModel):
    school_type: Optional[SchoolTypeName] = None


class ReactivateTerm(BaseModel):
    term_id: UUID
    school_type: Optional[SchoolTypeName] = None


# Responses
class TermOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    academic_session_id: UUID
    name: str
    number: int
    start_date: datetime
    end_date: datetime
    half_term_start: Optional[datetime] = None
    half_term_end: Optional[datetime] = None
    status: str


class AcademicSessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    school_id: UUID
    name: str
    start_date: datetime
    end_date: datetime
    status: str
    school_type: Optional[str] = None
    terms: List[TermOut] = []


class ActiveSessionOut(BaseModel):
    session: Optional[AcademicSessionOut] = None
    term: Optional[TermOut] = None


class PromotedStudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: Optional[str] = None
    name: str
    previous_class: str
    new_class: str


class StartTermResult(BaseModel):
    session: AcademicSessionOut
    term: TermOut
    migrated_count: int
    cloned_periods: int = 0
    promoted_students: List[PromotedStudentOut] = []


class MigrationSummary(BaseModel):
    migrated_count: int
    skipped_count: int = 0


class TermResult(BaseModel):
    term: TermOut


class SessionResult(BaseModel):
    session: AcademicSessionOut
