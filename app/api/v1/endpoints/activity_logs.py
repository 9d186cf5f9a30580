from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from app.core.database import get_db
from app.models.models import ActivityLog
from app.schemas.schemas import ActivityLogResponse
from app.services.queue_store import get_department

router = APIRouter()


def create_activity_log(
    db: Session,
    department_id: Optional[int],
    action: str,
    entity_type: str = None,
    entity_id: int = None,
    description: str = None,
    request: Optional[Request] = None
) -> ActivityLog:
    """Helper to add an activity log entry; committed with the caller's transaction"""
    log = ActivityLog(
        department_id=department_id,
        staff_id=request.headers.get("x-staff-id") if request else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        description=description,
        ip_address=request.client.host if request and request.client else None,
        user_agent=request.headers.get("user-agent") if request else None
    )
    db.add(log)
    return log


@router.get("/departments/{department_id}/activity-logs", response_model=List[ActivityLogResponse])
def get_activity_logs(
    department_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Audit trail of queue actions for a department, newest first"""
    get_department(db, department_id)

    query = db.query(ActivityLog).filter(ActivityLog.department_id == department_id)
    if action:
        query = query.filter(ActivityLog.action == action)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)

    return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).offset(skip).limit(limit).all()
