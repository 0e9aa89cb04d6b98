import threading
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from academic_calendar.core.exceptions import ConflictError, InvalidRequestError, NotFoundError
from academic_calendar.models import AcademicSession, Enrollment, Term, SessionStatus, TermStatus
from academic_calendar.services.migration_service import GRADUATED_LABEL
from academic_calendar.services.session_service import NEW_SESSION, NEW_TERM, months_between

SEPT_1 = datetime(2025, 9, 1)
JULY_10 = datetime(2026, 7, 10)


def _active(db, model, school, school_type):
    query = select(model)
    if model is Term:
        query = query.join(AcademicSession, Term.academic_session_id == AcademicSession.id)
    return db.execute(
        query.where(
            AcademicSession.school_id == school.id,
            AcademicSession.school_type == school_type,
            model.status == "ACTIVE",
        )
    ).scalars().all()


def _start_session(service, school, school_type="SECONDARY", name="2025/2026"):
    return service.start_new_term(
        school, NEW_SESSION, name=name, start_date=SEPT_1, end_date=JULY_10, school_type=school_type
    )


# ==================== INITIALIZE ====================

def test_initialize_session_creates_draft_without_terms(db, service, school):
    session = service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "SECONDARY")

    assert session.status == SessionStatus.DRAFT.value
    assert session.terms == []
    assert session.school_type == "SECONDARY"


def test_initialize_rejects_reversed_dates(service, school):
    with pytest.raises(InvalidRequestError):
        service.initialize_session(school, "2025/2026", JULY_10, SEPT_1, "SECONDARY")


def test_initialize_rejects_short_session(service, school):
    with pytest.raises(InvalidRequestError):
        service.initialize_session(school, "Short", SEPT_1, SEPT_1 + timedelta(days=200), "SECONDARY")


def test_duration_needs_only_one_threshold():
    # 10 calendar months but fewer than 300 days
    start, end = datetime(2025, 1, 31), datetime(2025, 11, 1)
    assert months_between(start, end) == 10
    assert (end - start).days < 300


def test_initialize_accepts_ten_months_under_three_hundred_days(service, school):
    session = service.initialize_session(school, "Compact", datetime(2025, 1, 31), datetime(2025, 11, 1), "PRIMARY")
    assert session.status == SessionStatus.DRAFT.value


def test_initialize_accepts_three_hundred_days_under_ten_months(service, school):
    # 9 calendar months but 301 days
    session = service.initialize_session(school, "Long", datetime(2025, 1, 1), datetime(2025, 10, 29), "PRIMARY")
    assert session.status == SessionStatus.DRAFT.value


def test_initialize_conflicts_with_active_session(service, school):
    _start_session(service, school)

    with pytest.raises(ConflictError):
        service.initialize_session(school, "2026/2027", datetime(2026, 9, 1), datetime(2027, 7, 10), "SECONDARY")


def test_active_session_of_another_type_does_not_conflict(service, school):
    _start_session(service, school, "PRIMARY")

    session = service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "SECONDARY")
    assert session.status == SessionStatus.DRAFT.value


def test_untyped_scope_is_separate_from_typed(service, school):
    _start_session(service, school, "SECONDARY")

    session = service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, None)
    assert session.school_type is None


def test_initialize_rejects_duplicate_name(service, school):
    service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "SECONDARY")

    with pytest.raises(ConflictError):
        service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "SECONDARY")


def test_rejected_call_leaves_no_session(db, service, school):
    with pytest.raises(InvalidRequestError):
        service.initialize_session(school, "Short", SEPT_1, SEPT_1 + timedelta(days=30), "SECONDARY")

    assert db.execute(select(AcademicSession)).scalars().all() == []


# ==================== CREATE TERM ====================

def test_create_term_adds_draft_term(service, school):
    session = service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "SECONDARY")

    term = service.create_term(
        school, session.id, "1st Term", 1, SEPT_1, datetime(2025, 12, 12),
        half_term_start=datetime(2025, 10, 20), half_term_end=datetime(2025, 10, 24),
    )

    assert term.status == TermStatus.DRAFT.value
    assert term.academic_session_id == session.id


@pytest.mark.parametrize("number", [0, 4])
def test_create_term_rejects_number_out_of_range(service, school, number):
    session = service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "SECONDARY")

    with pytest.raises(InvalidRequestError):
        service.create_term(school, session.id, "Term", number, SEPT_1, datetime(2025, 12, 12))


def test_create_term_rejects_duplicate_number(service, school):
    session = service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "SECONDARY")
    service.create_term(school, session.id, "1st Term", 1, SEPT_1, datetime(2025, 12, 12))

    with pytest.raises(ConflictError):
        service.create_term(school, session.id, "Another", 1, datetime(2026, 1, 5), datetime(2026, 4, 2))


def test_create_term_rejects_dates_outside_session(service, school):
    session = service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "SECONDARY")

    with pytest.raises(InvalidRequestError):
        service.create_term(school, session.id, "3rd Term", 3, datetime(2026, 4, 20), datetime(2026, 8, 1))


def test_create_term_rejects_half_term_outside_term(service, school):
    session = service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "SECONDARY")

    with pytest.raises(InvalidRequestError):
        service.create_term(
            school, session.id, "1st Term", 1, SEPT_1, datetime(2025, 12, 12),
            half_term_start=datetime(2025, 12, 10), half_term_end=datetime(2025, 12, 20),
        )


def test_create_term_unknown_session(service, factory, school):
    other = factory.school("Other School", "other")
    session = service.initialize_session(other, "2025/2026", SEPT_1, JULY_10, "SECONDARY")

    with pytest.raises(NotFoundError):
        service.create_term(school, session.id, "1st Term", 1, SEPT_1, datetime(2025, 12, 12))


# ==================== NEW SESSION ====================

def test_new_session_secondary_scenario(db, service, factory, school, secondary_levels, dispatcher):
    previous = factory.previous_session(school)
    factory.member(school, "Ada Admin", "ADMIN")
    jss3_a = factory.arm(secondary_levels[2], "A")
    student = factory.student(school, "Chidi")
    factory.enrollment(school, student, "JSS 2", term=previous.terms[2])

    outcome = _start_session(service, school)

    assert outcome.session.status == SessionStatus.ACTIVE.value
    assert [term.name for term in outcome.session.terms] == ["1st Term", "2nd Term", "3rd Term"]
    assert outcome.term.name == "1st Term"
    assert outcome.term.status == TermStatus.ACTIVE.value
    lengths = [term.end_date - term.start_date for term in outcome.session.terms]
    assert max(lengths) - min(lengths) < timedelta(seconds=1)

    assert outcome.migrated_count == 1
    enrollment = db.execute(
        select(Enrollment).where(Enrollment.student_id == student.id, Enrollment.is_active.is_(True))
    ).scalars().one()
    assert enrollment.class_level == "JSS 3"
    assert enrollment.class_arm_id == jss3_a.id
    assert enrollment.term_id == outcome.term.id


def test_new_session_leaves_exactly_one_active_session_and_term(db, service, factory, school):
    factory.session(
        school, "2024/2025", datetime(2024, 9, 2), datetime(2025, 7, 20),
        status=SessionStatus.COMPLETED.value,
        terms=[(3, TermStatus.ACTIVE.value, datetime(2025, 4, 22), datetime(2025, 7, 20))],
    )

    _start_session(service, school)

    assert len(_active(db, AcademicSession, school, "SECONDARY")) == 1
    assert len(_active(db, Term, school, "SECONDARY")) == 1


def test_new_session_tertiary_scenario(service, school):
    outcome = _start_session(service, school, "TERTIARY")

    assert [term.name for term in outcome.session.terms] == ["1st Semester", "2nd Semester"]
    assert outcome.term.name == "1st Semester"
    assert outcome.session.terms[1].status == TermStatus.DRAFT.value


def test_new_session_graduates_final_year(service, factory, school, secondary_levels, dispatcher):
    previous = factory.previous_session(school)
    factory.enrollment(school, factory.student(school, "Ngozi"), "SS 3", term=previous.terms[2])

    outcome = _start_session(service, school)

    assert outcome.migrated_count == 1
    assert outcome.promoted_students[0].new_class == GRADUATED_LABEL
    assert len(service.pending_jobs) == 1
    service.pending_jobs[0]()
    assert dispatcher.promotion_calls[0]["students"][0].new_class == GRADUATED_LABEL


def test_new_session_rejects_active_scope(service, school):
    _start_session(service, school)

    with pytest.raises(ConflictError):
        _start_session(service, school, name="2026/2027")


def test_new_session_name_conflicts_with_draft(service, school):
    service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "SECONDARY")

    with pytest.raises(ConflictError):
        _start_session(service, school)


def test_new_session_may_reuse_completed_name(service, factory, school):
    factory.session(school, "2025/2026", SEPT_1, JULY_10, status=SessionStatus.COMPLETED.value)

    outcome = _start_session(service, school)
    assert outcome.session.status == SessionStatus.ACTIVE.value


def test_new_session_rejects_short_span(service, school):
    with pytest.raises(InvalidRequestError):
        service.start_new_term(
            school, NEW_SESSION, name="Short", start_date=SEPT_1,
            end_date=SEPT_1 + timedelta(days=90), school_type="SECONDARY",
        )


def test_new_session_queues_lifecycle_notice(service, factory, school, dispatcher):
    factory.member(school, "Ada Admin", "ADMIN", email="admin@greenfield.test")

    _start_session(service, school)

    assert len(service.pending_jobs) == 1
    service.pending_jobs[0]()
    call = dispatcher.lifecycle_calls[0]
    assert call["notice"].is_new_session
    assert call["notice"].session_name == "2025/2026"
    assert [recipient.email for recipient in call["recipients"]] == ["admin@greenfield.test"]


def test_recipient_lookup_failure_keeps_the_new_session(db, service, school, monkeypatch):
    def unavailable(*args, **kwargs):
        raise RuntimeError("mail directory unavailable")

    monkeypatch.setattr(service.trigger, "collect_recipients", unavailable)

    outcome = _start_session(service, school)

    assert outcome.session.status == SessionStatus.ACTIVE.value
    assert outcome.term.status == TermStatus.ACTIVE.value
    assert len(_active(db, AcademicSession, school, "SECONDARY")) == 1
    assert service.pending_jobs == []


def test_new_session_waits_for_scope_lock(db, service, school):
    results = []

    def start():
        try:
            results.append(_start_session(service, school))
        except Exception as e:
            results.append(e)

    with service.locks.hold(school.id, "SECONDARY"):
        worker = threading.Thread(target=start)
        worker.start()
        worker.join(timeout=0.2)
        assert worker.is_alive()
        assert results == []

    worker.join(timeout=5)
    assert not worker.is_alive()
    assert results[0].session.status == SessionStatus.ACTIVE.value

    with pytest.raises(ConflictError):
        _start_session(service, school, name="2026/2027")
    assert len(_active(db, AcademicSession, school, "SECONDARY")) == 1


def test_other_scope_is_not_blocked(service, school):
    with service.locks.hold(school.id, "PRIMARY"):
        outcome = _start_session(service, school)

    assert outcome.session.school_type == "SECONDARY"


def test_failed_transition_queues_nothing(service, school):
    with pytest.raises(InvalidRequestError):
        service.start_new_term(school, NEW_SESSION, name="X", start_date=JULY_10, end_date=SEPT_1)

    assert service.pending_jobs == []


def test_unknown_intent(service, school):
    with pytest.raises(InvalidRequestError):
        service.start_new_term(school, "NEW_YEAR")


# ==================== NEW TERM ====================

def test_new_term_activates_draft_and_carries_students_over(db, service, factory, school, secondary_levels):
    previous = factory.previous_session(school)
    factory.enrollment(school, factory.student(school, "Chidi"), "JSS 1", term=previous.terms[2], debt="1000")
    outcome = _start_session(service, school)
    first, second, _ = outcome.session.terms
    factory.period(first, "MONDAY", "08:00")

    result = service.start_new_term(school, NEW_TERM, term_id=second.id)

    assert result.term.id == second.id
    assert second.status == TermStatus.ACTIVE.value
    assert first.status == TermStatus.COMPLETED.value
    assert result.migrated_count == 1
    assert result.cloned_periods == 1
    active = db.execute(
        select(Enrollment).where(Enrollment.school_id == school.id, Enrollment.is_active.is_(True))
    ).scalars().all()
    assert [(enrollment.term_id, enrollment.class_level) for enrollment in active] == [(second.id, "JSS 2")]
    assert len(_active(db, Term, school, "SECONDARY")) == 1


def test_new_term_requires_term_id(service, school):
    with pytest.raises(InvalidRequestError):
        service.start_new_term(school, NEW_TERM)


def test_new_term_of_another_school_is_not_found(service, factory, school):
    other = factory.school("Other School", "other")
    outcome = _start_session(service, other)

    with pytest.raises(NotFoundError):
        service.start_new_term(school, NEW_TERM, term_id=outcome.session.terms[1].id)


def test_new_term_already_active(service, school):
    outcome = _start_session(service, school)

    with pytest.raises(ConflictError):
        service.start_new_term(school, NEW_TERM, term_id=outcome.term.id)


def test_new_term_must_be_draft(service, factory, school):
    session = factory.session(
        school, "2025/2026", SEPT_1, JULY_10,
        terms=[(1, TermStatus.COMPLETED.value, SEPT_1, datetime(2025, 12, 12))],
    )

    with pytest.raises(InvalidRequestError):
        service.start_new_term(school, NEW_TERM, term_id=session.terms[0].id)


def test_new_term_activates_draft_session(db, service, factory, school):
    old = factory.session(
        school, "2024/2025", datetime(2024, 9, 2), datetime(2025, 7, 20),
        status=SessionStatus.ACTIVE.value,
        terms=[(3, TermStatus.ACTIVE.value, datetime(2025, 4, 22), datetime(2025, 7, 20))],
    )
    draft = service.initialize_session(school, "2025/2026", SEPT_1, JULY_10, "PRIMARY")
    term = service.create_term(school, draft.id, "1st Term", 1, SEPT_1, datetime(2025, 12, 12))

    service.start_new_term(school, NEW_TERM, term_id=term.id)

    assert draft.status == SessionStatus.ACTIVE.value
    # different school type, untouched
    assert old.status == SessionStatus.ACTIVE.value


# ==================== MIGRATE STUDENTS ====================

def test_migrate_students_carry_over_is_idempotent(db, service, factory, school):
    outcome = _start_session(service, school)
    first, second, _ = outcome.session.terms
    for name in ("Uche", "Amaka"):
        factory.enrollment(school, factory.student(school, name), "JSS 1", term=first, academic_year="2025/2026")

    assert service.migrate_students(school, second.id, carry_over=True).migrated_count == 2
    assert service.migrate_students(school, second.id, carry_over=True).migrated_count == 0


def test_migrate_students_carry_over_needs_earlier_term(service, school):
    outcome = _start_session(service, school)

    with pytest.raises(InvalidRequestError):
        service.migrate_students(school, outcome.term.id, carry_over=True)


def test_migrate_students_unknown_term(service, school):
    with pytest.raises(NotFoundError):
        service.migrate_students(school, uuid4())


def test_migrate_students_promotes(service, factory, school, secondary_levels):
    outcome = _start_session(service, school)
    factory.enrollment(school, factory.student(school, "Femi"), "JSS 1", term=None)

    result = service.migrate_students(school, outcome.term.id)

    assert result.migrated_count == 1
    assert result.promoted_students[0].new_class == "JSS 2"


# ==================== END / REACTIVATE ====================

def test_end_term_completes_active_term(service, school):
    outcome = _start_session(service, school)

    term = service.end_term(school, "SECONDARY")

    assert term.id == outcome.term.id
    assert term.status == TermStatus.COMPLETED.value


def test_end_term_without_active_term(service, school):
    with pytest.raises(NotFoundError):
        service.end_term(school)


def test_end_session_completes_every_term(service, school):
    _start_session(service, school)

    session = service.end_session(school, "SECONDARY")

    assert session.status == SessionStatus.COMPLETED.value
    assert {term.status for term in session.terms} == {TermStatus.COMPLETED.value}


def test_end_session_without_active_session(service, school):
    with pytest.raises(NotFoundError):
        service.end_session(school, "SECONDARY")


def test_reactivate_term_with_future_end_date(db, service, school, clock):
    outcome = _start_session(service, school)
    first, second, _ = outcome.session.terms
    service.end_term(school, "SECONDARY")
    service.start_new_term(school, NEW_TERM, term_id=second.id)
    assert first.end_date > clock.now()

    term = service.reactivate_term(school, first.id, "SECONDARY")

    assert term.status == TermStatus.ACTIVE.value
    assert second.status == TermStatus.COMPLETED.value
    assert outcome.session.status == SessionStatus.ACTIVE.value
    assert len(_active(db, Term, school, "SECONDARY")) == 1


def test_reactivate_term_with_past_end_date(service, school, clock):
    outcome = _start_session(service, school)
    first = outcome.term
    service.end_term(school, "SECONDARY")
    clock.set(first.end_date + timedelta(days=1))

    with pytest.raises(InvalidRequestError):
        service.reactivate_term(school, first.id)


def test_reactivate_term_restores_completed_session(service, school):
    outcome = _start_session(service, school)
    service.end_session(school, "SECONDARY")

    service.reactivate_term(school, outcome.term.id)

    assert outcome.session.status == SessionStatus.ACTIVE.value


def test_reactivate_requires_completed_term(service, school):
    outcome = _start_session(service, school)

    with pytest.raises(InvalidRequestError):
        service.reactivate_term(school, outcome.session.terms[1].id)


def test_reactivate_rejects_other_school(service, factory, school):
    other = factory.school("Other School", "other")
    outcome = _start_session(service, other)
    service.end_term(other)

    with pytest.raises(InvalidRequestError):
        service.reactivate_term(school, outcome.term.id)


def test_reactivate_rejects_other_school_type(service, school):
    outcome = _start_session(service, school)
    service.end_term(school)

    with pytest.raises(InvalidRequestError):
        service.reactivate_term(school, outcome.term.id, "PRIMARY")


def test_reactivate_unknown_term(service, school):
    with pytest.raises(NotFoundError):
        service.reactivate_term(school, uuid4())


# ==================== QUERIES ====================

def test_get_active_session_returns_session_and_term(service, school):
    outcome = _start_session(service, school)

    session, term = service.get_active_session(school, "SECONDARY")

    assert session.id == outcome.session.id
    assert term.id == outcome.term.id


def test_get_active_session_falls_back_to_untyped(service, school):
    outcome = _start_session(service, school, None)

    session, _ = service.get_active_session(school, "PRIMARY")

    assert session.id == outcome.session.id


def test_get_active_session_empty(service, school):
    assert service.get_active_session(school) == (None, None)


def test_get_sessions_newest_first(service, factory, school):
    factory.previous_session(school)
    _start_session(service, school)

    sessions = service.get_sessions(school)

    assert [session.name for session in sessions] == ["2025/2026", "2024/2025"]
    assert [term.number for term in sessions[0].terms] == [1, 2, 3]
    assert service.get_sessions(school, "TERTIARY") == []
