from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional

from academic_calendar.core.db import get_db
from academic_calendar.models.school import School
from academic_calendar.services.school_lookup import SchoolRepository


def require_school(
    db: Session = Depends(get_db),
    x_school_id: Optional[str] = Header(default=None, alias="X-School-ID"),
) -> School:
    """
    Resolve the school for the request from the X-School-ID header (id or subdomain)
    """
    if not x_school_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-School-ID header is required"
        )

    school = SchoolRepository(db).find_by_id_or_subdomain(x_school_id)
    if not school:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="School not found")

    return school
