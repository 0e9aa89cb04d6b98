# academic_calendar/services/migration_service.py - Promotion and carry-over of enrollments
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, or_
from dataclasses import dataclass, field, asdict
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID
import logging

from academic_calendar.core.clock import Clock, system_clock, academic_year_label
from academic_calendar.models.academic import AcademicSession, Term, TermStatus
from academic_calendar.models.class_level import ClassLevel, ClassArm
from academic_calendar.models.class_model import Class
from academic_calendar.models.enrollment import Enrollment
from academic_calendar.models.student import Student
from academic_calendar.services.progression_service import ProgressionService
from academic_calendar.services.school_types import belongs_to_school_type

logger = logging.getLogger(__name__)

GRADUATED_LABEL = "Graduated/Alumni"


def linked_class_type(enrollment: Enrollment) -> Optional[str]:
    """School type of the class or class arm an enrollment points at, if any"""
    if enrollment.class_ and enrollment.class_.type:
        return enrollment.class_.type
    if enrollment.class_arm and enrollment.class_arm.class_level:
        return enrollment.class_arm.class_level.type
    return None


@dataclass
class PromotedStudent:
    email: Optional[str]
    name: str
    previous_class: str
    new_class: str

    @property
    def graduated(self) -> bool:
        return self.new_class == GRADUATED_LABEL

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MigrationResult:
    migrated_count: int = 0
    promoted_students: List[PromotedStudent] = field(default_factory=list)
    skipped_count: int = 0

    @property
    def graduated_count(self) -> int:
        return sum(1 for student in self.promoted_students if student.graduated)


class EnrollmentMigrator:
    """
    Walks the active enrollments of the previous term and moves them into a
    target term, either one class level up (promotion) or unchanged (carry-over).

    Every enrollment is processed on its own; the caller owns the transaction and
    commits or rolls back the whole sweep.
    """

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.progression = ProgressionService(db)

    # ==================== SELECTION ====================

    def find_previous_term(self, school_id: UUID, target_term_id: UUID, school_type: Optional[str] = None) -> Optional[Term]:
        """Most recent ACTIVE or COMPLETED term in scope other than the target"""
        query = (
            select(Term)
            .join(AcademicSession, Term.academic_session_id == AcademicSession.id)
            .where(
                AcademicSession.school_id == school_id,
                Term.id != target_term_id,
                Term.status.in_([TermStatus.ACTIVE.value, TermStatus.COMPLETED.value]),
            )
            .order_by(AcademicSession.start_date.desc(), Term.number.desc())
            .limit(1)
        )
        if school_type:
            query = query.where(AcademicSession.school_type == school_type)
        return self.db.execute(query).scalars().first()

    def select_enrollments(self, school_id: UUID, source_term_id: Optional[UUID], school_type: Optional[str] = None) -> List[Enrollment]:
        """
        Active enrollments of the source term plus legacy ones with no term,
        narrowed to the school type when one is given.
        """
        term_filter = [Enrollment.term_id.is_(None)]
        if source_term_id:
            term_filter.append(Enrollment.term_id == source_term_id)

        enrollments = self.db.execute(
            select(Enrollment)
            .where(
                Enrollment.school_id == school_id,
                Enrollment.is_active.is_(True),
                or_(*term_filter),
            )
            .options(
                selectinload(Enrollment.class_arm).selectinload(ClassArm.class_level),
                selectinload(Enrollment.class_),
                selectinload(Enrollment.student).selectinload(Student.user),
            )
            .order_by(Enrollment.created_at, Enrollment.id)
        ).scalars().all()

        if not school_type:
            return list(enrollments)

        return [
            enrollment for enrollment in enrollments
            if belongs_to_school_type(linked_class_type(enrollment), enrollment.class_level, school_type)
        ]

    # ==================== PROMOTION ====================

    def promote(self, school_id: UUID, target_term: Term, school_type: Optional[str] = None) -> MigrationResult:
        """
        Move every student of the previous term one class level up into ``target_term``.
        Students on a terminal level graduate: their enrollment is deactivated and
        no new one is created.
        """
        chain = self.progression.ensure_progression(school_id, school_type)

        previous_term = self.find_previous_term(school_id, target_term.id, school_type)
        enrollments = self.select_enrollments(school_id, previous_term.id if previous_term else None, school_type)

        logger.info(
            f"Promoting {len(enrollments)} enrollment(s) into {target_term.name} "
            f"(previous term: {previous_term.name if previous_term else 'none'})"
        )

        result = MigrationResult()
        academic_year = academic_year_label(self.clock.now())
        placed_per_level: Dict[UUID, int] = {}

        for enrollment in enrollments:
            current_level = self.resolve_current_level(school_id, enrollment)
            if current_level is None:
                logger.warning(
                    f"Cannot determine class level for enrollment {enrollment.id}, "
                    f"class level: {enrollment.class_level}"
                )
                result.skipped_count += 1
                continue

            previous_class = current_level.name or enrollment.class_level or "Unknown"
            next_level = chain.next_level(current_level)

            if next_level is None:
                enrollment.is_active = False
                self.db.flush()
                result.migrated_count += 1
                result.promoted_students.append(self._record(enrollment, previous_class, GRADUATED_LABEL))
                continue

            class_arm_id, class_id = self.place_in_level(school_id, next_level, academic_year, placed_per_level)

            # Deactivate before creating so only one enrollment is active at any flush
            enrollment.is_active = False
            self.db.flush()

            self.db.add(Enrollment(
                student_id=enrollment.student_id,
                school_id=school_id,
                class_arm_id=class_arm_id,
                class_id=class_id,
                term_id=target_term.id,
                class_level=next_level.name,
                academic_year=enrollment.academic_year,
                enrollment_date=self.clock.now(),
                is_active=True,
                debt_balance=Decimal("0"),
            ))
            self.db.flush()

            result.migrated_count += 1
            result.promoted_students.append(self._record(enrollment, previous_class, next_level.name))

        logger.info(
            f"Promotion into {target_term.name} finished: {result.migrated_count} migrated "
            f"({result.graduated_count} graduated), {result.skipped_count} skipped"
        )
        return result

    def resolve_current_level(self, school_id: UUID, enrollment: Enrollment) -> Optional[ClassLevel]:
        """Class level of an enrollment: via its arm when linked, else by matching the stored label"""
        if enrollment.class_arm and enrollment.class_arm.class_level:
            return enrollment.class_arm.class_level
        if not enrollment.class_level:
            return None
        return self.db.execute(
            select(ClassLevel)
            .where(
                ClassLevel.school_id == school_id,
                or_(ClassLevel.name == enrollment.class_level, ClassLevel.code == enrollment.class_level),
            )
            .order_by(ClassLevel.level)
            .limit(1)
        ).scalars().first()

    def place_in_level(self, school_id: UUID, level: ClassLevel, academic_year: str, placed_per_level: Dict[UUID, int]):
        """
        Pick (class_arm_id, class_id) for a student entering ``level``.

        Arms of the current academic year are filled round-robin so arm sizes
        differ by at most one per sweep. Without arms, fall back to an active
        Class named after the level, or leave the placement empty.
        """
        arms = self.db.execute(
            select(ClassArm)
            .where(
                ClassArm.class_level_id == level.id,
                ClassArm.academic_year == academic_year,
                ClassArm.is_active.is_(True),
            )
            .order_by(ClassArm.name.asc())
        ).scalars().all()

        if arms:
            placed = placed_per_level.get(level.id, 0)
            placed_per_level[level.id] = placed + 1
            return arms[placed % len(arms)].id, None

        legacy_class = self.db.execute(
            select(Class)
            .where(
                Class.school_id == school_id,
                or_(Class.name == level.name, Class.class_level == level.name),
                Class.is_active.is_(True),
            )
            .limit(1)
        ).scalars().first()
        return None, legacy_class.id if legacy_class else None

    # ==================== CARRY OVER ====================

    def carry_over(
        self,
        school_id: UUID,
        target_term: Term,
        source_term_id: Optional[UUID] = None,
        school_type: Optional[str] = None,
    ) -> MigrationResult:
        """
        Clone every active enrollment of the source term into ``target_term``
        unchanged (same class, arm, level label, academic year and debt).

        Students that already have an enrollment in the target term are skipped,
        so running this twice migrates nobody the second time.
        """
        enrollments = self.select_enrollments(school_id, source_term_id, school_type)
        result = MigrationResult()

        for enrollment in enrollments:
            existing = self.db.execute(
                select(Enrollment.id).where(
                    Enrollment.student_id == enrollment.student_id,
                    Enrollment.school_id == school_id,
                    Enrollment.term_id == target_term.id,
                ).limit(1)
            ).first()

            if existing:
                result.skipped_count += 1
                continue

            enrollment.is_active = False
            self.db.flush()

            self.db.add(Enrollment(
                student_id=enrollment.student_id,
                school_id=school_id,
                class_id=enrollment.class_id,
                class_arm_id=enrollment.class_arm_id,
                term_id=target_term.id,
                class_level=enrollment.class_level,
                academic_year=enrollment.academic_year,
                enrollment_date=self.clock.now(),
                is_active=True,
                debt_balance=enrollment.debt_balance,
            ))
            self.db.flush()
            result.migrated_count += 1

        logger.info(f"Carried over {result.migrated_count} enrollment(s) into {target_term.name}")
        return result

    def _record(self, enrollment: Enrollment, previous_class: str, new_class: str) -> PromotedStudent:
        student = enrollment.student
        return PromotedStudent(
            email=student.email if student else None,
            name=student.full_name if student else "Unknown",
            previous_class=previous_class,
            new_class=new_class,
        )


__all__ = ["EnrollmentMigrator", "MigrationResult", "PromotedStudent", "GRADUATED_LABEL", "linked_class_type"]
