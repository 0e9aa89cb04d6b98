"""create academic calendar tables

Revision ID: 4c1d2a7e9b30
Revises:
Create Date: 2025-11-01 09:00:12.481203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4c1d2a7e9b30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'schools',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('subdomain', sa.String(length=64), nullable=True),
        sa.Column('email', sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('subdomain')
    )

    op.create_table(
        'schoolmember',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('school_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.CheckConstraint("role IN ('OWNER','ADMIN','TEACHER','ACCOUNTANT','PARENT')", name='ck_schoolmember_role')
    )
    op.create_index('ix_schoolmember_school_id', 'schoolmember', ['school_id'])

    op.create_table(
        'students',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('school_id', sa.Uuid(), nullable=False),
        sa.Column('admission_no', sa.String(length=32), nullable=False),
        sa.Column('first_name', sa.String(length=64), nullable=False),
        sa.Column('last_name', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'])
    )
    op.create_index('ix_students_school_id', 'students', ['school_id'])

    op.create_table(
        'academic_sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('school_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('school_type', sa.String(length=16), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id']),
        sa.CheckConstraint("status IN ('DRAFT','ACTIVE','COMPLETED','ARCHIVED')", name='ck_academic_session_status')
    )
    op.create_index('ix_academic_sessions_school_id', 'academic_sessions', ['school_id'])
    op.create_index('ix_academic_sessions_scope', 'academic_sessions', ['school_id', 'school_type', 'status'])

    op.create_table(
        'terms',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('academic_session_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=48), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('half_term_start', sa.DateTime(), nullable=True),
        sa.Column('half_term_end', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['academic_session_id'], ['academic_sessions.id'], ondelete='CASCADE'),
        sa.CheckConstraint("status IN ('DRAFT','ACTIVE','COMPLETED','ARCHIVED')", name='ck_term_status'),
        sa.CheckConstraint('number BETWEEN 1 AND 3', name='ck_term_number')
    )
    op.create_index('ix_terms_academic_session_id', 'terms', ['academic_session_id'])
    op.create_index('uq_term_number_per_session', 'terms', ['academic_session_id', 'number'], unique=True)

    op.create_table(
        'class_levels',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('school_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('next_level_id', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id']),
        sa.ForeignKeyConstraint(['next_level_id'], ['class_levels.id'], ondelete='SET NULL')
    )
    op.create_index('ix_class_levels_school_id', 'class_levels', ['school_id'])
    op.create_index('ix_class_levels_scope', 'class_levels', ['school_id', 'type', 'level'])

    op.create_table(
        'class_arms',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=32), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=True),
        sa.Column('class_level_id', sa.Uuid(), nullable=False),
        sa.Column('academic_year', sa.String(length=16), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['class_level_id'], ['class_levels.id'], ondelete='CASCADE')
    )
    op.create_index('ix_class_arms_class_level_id', 'class_arms', ['class_level_id'])

    op.create_table(
        'classes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('school_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=True),
        sa.Column('class_level', sa.String(length=64), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=True),
        sa.Column('academic_year', sa.String(length=16), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'])
    )
    op.create_index('ix_classes_school_id', 'classes', ['school_id'])

    op.create_table(
        'enrollments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('school_id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('class_level', sa.String(length=64), nullable=False),
        sa.Column('class_arm_id', sa.Uuid(), nullable=True),
        sa.Column('class_id', sa.Uuid(), nullable=True),
        sa.Column('term_id', sa.Uuid(), nullable=True),
        sa.Column('academic_year', sa.String(length=16), nullable=False),
        sa.Column('enrollment_date', sa.DateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('debt_balance', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id']),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['class_arm_id'], ['class_arms.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['class_id'], ['classes.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['term_id'], ['terms.id'], ondelete='SET NULL')
    )
    op.create_index('ix_enrollments_school_id', 'enrollments', ['school_id'])
    op.create_index('ix_enrollments_student_id', 'enrollments', ['student_id'])
    op.create_index('ix_enrollments_class_arm_id', 'enrollments', ['class_arm_id'])
    op.create_index('ix_enrollments_class_id', 'enrollments', ['class_id'])
    op.create_index('ix_enrollments_term_id', 'enrollments', ['term_id'])
    op.create_index('ix_enrollments_term_active', 'enrollments', ['school_id', 'term_id', 'is_active'])
    # One active enrollment per student and school
    op.create_index(
        'uq_enrollment_active_student',
        'enrollments',
        ['school_id', 'student_id'],
        unique=True,
        postgresql_where=sa.text('is_active'),
        sqlite_where=sa.text('is_active = 1')
    )

    op.create_table(
        'timetable_periods',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('term_id', sa.Uuid(), nullable=False),
        sa.Column('class_id', sa.Uuid(), nullable=True),
        sa.Column('class_arm_id', sa.Uuid(), nullable=True),
        sa.Column('day_of_week', sa.String(length=10), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='LESSON'),
        sa.Column('subject_id', sa.Uuid(), nullable=True),
        sa.Column('course_id', sa.Uuid(), nullable=True),
        sa.Column('teacher_id', sa.Uuid(), nullable=True),
        sa.Column('room_id', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['term_id'], ['terms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['class_id'], ['classes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['class_arm_id'], ['class_arms.id'], ondelete='CASCADE'),
        sa.CheckConstraint(
            "day_of_week IN ('MONDAY','TUESDAY','WEDNESDAY','THURSDAY','FRIDAY','SATURDAY','SUNDAY')",
            name='ck_timetable_period_day'
        )
    )
    op.create_index('ix_timetable_periods_term_id', 'timetable_periods', ['term_id'])
    op.create_index(
        'ix_timetable_periods_slot',
        'timetable_periods',
        ['term_id', 'class_id', 'class_arm_id', 'day_of_week', 'start_time']
    )


def downgrade():
    op.drop_table('timetable_periods')
    op.drop_index('uq_enrollment_active_student', table_name='enrollments')
    op.drop_table('enrollments')
    op.drop_table('classes')
    op.drop_table('class_arms')
    op.drop_table('class_levels')
    op.drop_table('terms')
    op.drop_table('academic_sessions')
    op.drop_table('students')
    op.drop_table('schoolmember')
    op.drop_table('schools')
    op.drop_table('users')
