# academic_calendar/services/school_lookup.py - Resolve the tenant school of a request
from sqlalchemy.orm import Session
from sqlalchemy import select
from typing import Optional
from uuid import UUID

from academic_calendar.models.school import School


class SchoolRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id_or_subdomain(self, identifier: str) -> Optional[School]:
        """Accepts either the school UUID or its subdomain"""
        if not identifier:
            return None
        try:
            school_id = UUID(str(identifier))
        except ValueError:
            school_id = None

        if school_id is not None:
            school = self.db.get(School, school_id)
            if school:
                return school

        return self.db.execute(
            select(School).where(School.subdomain == identifier.strip().lower())
        ).scalars().first()

    def lock(self, school_id: UUID) -> Optional[School]:
        """Row lock on the school for the rest of the transaction (no-op on SQLite)"""
        return self.db.execute(
            select(School).where(School.id == school_id).with_for_update()
        ).scalars().first()
