# academic_calendar/services/notification_service.py - Lifecycle and promotion emails
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import UUID
import logging
import time

from academic_calendar.core.config import settings
from academic_calendar.models.academic import AcademicSession, Term
from academic_calendar.models.class_level import ClassArm
from academic_calendar.models.enrollment import Enrollment
from academic_calendar.models.school import School, SchoolMember
from academic_calendar.models.student import Student
from academic_calendar.models.user import User
from academic_calendar.services.email_service import EmailService, EmailTemplates, email_service
from academic_calendar.services.migration_service import PromotedStudent, linked_class_type
from academic_calendar.services.school_types import belongs_to_school_type

logger = logging.getLogger(__name__)

STAFF_ROLES = ("OWNER", "ADMIN", "TEACHER", "ACCOUNTANT")


@dataclass
class Recipient:
    email: str
    name: str
    role: str


@dataclass
class LifecycleNotice:
    school_name: str
    session_name: str
    term_name: str
    start_date: datetime
    end_date: datetime
    is_new_session: bool


class NotificationDispatcher:
    """
    Sends the calendar emails through the EmailService.

    Promotion emails go out in batches with a pause between batches so a large
    school does not flood the SMTP relay.
    """

    def __init__(
        self,
        emailer: Optional[EmailService] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.emailer = emailer or email_service
        self.batch_size = batch_size or settings.NOTIFICATION_BATCH_SIZE
        self.batch_delay = settings.NOTIFICATION_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        self.sleep = sleep

    def send_lifecycle_notice(self, recipients: List[Recipient], notice: LifecycleNotice) -> dict:
        results = {"success": 0, "failed": 0}
        for recipient in recipients:
            subject, body_text, body_html = EmailTemplates.lifecycle_notice(
                name=recipient.name,
                school_name=notice.school_name,
                session_name=notice.session_name,
                term_name=notice.term_name,
                start_date=notice.start_date,
                end_date=notice.end_date,
                is_new_session=notice.is_new_session,
            )
            if self.emailer.send_email(recipient.email, subject, body_text, body_html):
                results["success"] += 1
            else:
                results["failed"] += 1

        logger.info(
            f"Lifecycle notice for {notice.school_name} ({notice.term_name}): "
            f"{results['success']} sent, {results['failed']} failed"
        )
        return results

    def send_promotion_notice(self, students: List[PromotedStudent], session_name: str, school_name: str) -> dict:
        results = {"success": 0, "failed": 0, "skipped": 0}
        addressed = [student for student in students if student.email]
        results["skipped"] = len(students) - len(addressed)

        for start in range(0, len(addressed), self.batch_size):
            if start and self.batch_delay:
                self.sleep(self.batch_delay)

            for student in addressed[start:start + self.batch_size]:
                subject, body_text, body_html = EmailTemplates.promotion_notice(
                    name=student.name,
                    previous_class=student.previous_class,
                    new_class=student.new_class,
                    session_name=session_name,
                    school_name=school_name,
                    graduated=student.graduated,
                )
                if self.emailer.send_email(student.email, subject, body_text, body_html):
                    results["success"] += 1
                else:
                    results["failed"] += 1

        logger.info(
            f"Promotion notices for {school_name}: {results['success']} sent, "
            f"{results['failed']} failed, {results['skipped']} without email"
        )
        return results


@dataclass
class NotificationJob:
    """
    One queued outbound notification. Carries plain data only so it can run
    after the request's database session is gone. Never raises.
    """
    description: str
    handler: Callable[..., dict]
    kwargs: Dict = field(default_factory=dict)

    def __call__(self) -> Optional[dict]:
        try:
            return self.handler(**self.kwargs)
        except Exception as e:
            logger.error(f"Notification job '{self.description}' failed: {e}", exc_info=True)
            return None


class NotificationTrigger:
    """
    Builds notification jobs for committed calendar transitions. Called after
    the commit; a failure here is logged and yields no job.
    """

    def __init__(self, db: Session, dispatcher: Optional[NotificationDispatcher] = None):
        self.db = db
        self.dispatcher = dispatcher or NotificationDispatcher()

    def collect_recipients(self, school_id: UUID, school_type: Optional[str] = None) -> List[Recipient]:
        """
        Staff with an email address plus every student holding an active
        enrollment whose class matches the school type. Deduplicated by email.
        """
        recipients: Dict[str, Recipient] = {}

        staff = self.db.execute(
            select(User, SchoolMember.role)
            .join(SchoolMember, SchoolMember.user_id == User.id)
            .where(
                SchoolMember.school_id == school_id,
                SchoolMember.role.in_(STAFF_ROLES),
                User.is_active.is_(True),
            )
        ).all()
        for user, role in staff:
            if user.email:
                recipients.setdefault(user.email.lower(), Recipient(user.email, user.full_name, role))

        enrollments = self.db.execute(
            select(Enrollment)
            .join(Student, Enrollment.student_id == Student.id)
            .where(
                Enrollment.school_id == school_id,
                Enrollment.is_active.is_(True),
                Student.user_id.is_not(None),
            )
            .options(
                selectinload(Enrollment.class_arm).selectinload(ClassArm.class_level),
                selectinload(Enrollment.class_),
                selectinload(Enrollment.student).selectinload(Student.user),
            )
        ).scalars().all()
        for enrollment in enrollments:
            if not belongs_to_school_type(linked_class_type(enrollment), enrollment.class_level, school_type):
                continue
            student = enrollment.student
            if student.email:
                recipients.setdefault(student.email.lower(), Recipient(student.email, student.full_name, "STUDENT"))

        return list(recipients.values())

    def lifecycle_job(
        self,
        school: School,
        session: AcademicSession,
        term: Term,
        school_type: Optional[str],
        is_new_session: bool
    ) -> Optional[NotificationJob]:
        if not settings.NOTIFICATIONS_ENABLED:
            return None

        try:
            recipients = self.collect_recipients(school.id, school_type)
        except Exception as e:
            logger.error(f"Failed to collect notification recipients for school {school.id}: {e}", exc_info=True)
            self.db.rollback()
            return None

        if not recipients:
            logger.info(f"No recipients for lifecycle notice in school {school.id}")
            return None

        span = session if is_new_session else term
        notice = LifecycleNotice(
            school_name=school.name,
            session_name=session.name,
            term_name=term.name,
            start_date=span.start_date,
            end_date=span.end_date,
            is_new_session=is_new_session,
        )
        return NotificationJob(
            description=f"lifecycle notice {session.name} / {term.name}",
            handler=self.dispatcher.send_lifecycle_notice,
            kwargs={"recipients": recipients, "notice": notice},
        )

    def promotion_job(self, school: School, session_name: str, students: List[PromotedStudent]) -> Optional[NotificationJob]:
        if not settings.NOTIFICATIONS_ENABLED or not students:
            return None
        return NotificationJob(
            description=f"promotion notices {session_name}",
            handler=self.dispatcher.send_promotion_notice,
            kwargs={"students": list(students), "session_name": session_name, "school_name": school.name},
        )


__all__ = [
    "Recipient",
    "LifecycleNotice",
    "NotificationDispatcher",
    "NotificationJob",
    "NotificationTrigger",
]
