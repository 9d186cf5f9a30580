from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
from app.core.database import get_db
from app.core.exceptions import NotFound
from app.models.models import ClosedDate
from app.schemas.schemas import ClosedDateCreate, ClosedDateResponse, MessageResponse
from app.api.v1.endpoints.activity_logs import create_activity_log
from app.services.queue_store import get_department

router = APIRouter()


@router.get("/departments/{department_id}/closed-dates/", response_model=List[ClosedDateResponse])
def list_closed_dates(
    department_id: int,
    date_from: Optional[date] = None,
    db: Session = Depends(get_db)
):
    get_department(db, department_id)
    query = db.query(ClosedDate).filter(ClosedDate.department_id == department_id)
    if date_from is not None:
        query = query.filter(ClosedDate.closed_date >= date_from)
    return query.order_by(ClosedDate.closed_date).all()


@router.post(
    "/departments/{department_id}/closed-dates/",
    response_model=ClosedDateResponse,
    status_code=status.HTTP_201_CREATED
)
def add_closed_date(
    department_id: int,
    closed_date_data: ClosedDateCreate,
    request: Request,
    db: Session = Depends(get_db)
):
    """Close a department for a day; existing bookings on that day are left untouched"""
    department = get_department(db, department_id)

    existing = db.query(ClosedDate).filter(
        ClosedDate.department_id == department.id,
        ClosedDate.closed_date == closed_date_data.closed_date
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This date is already marked as closed"
        )

    closed = ClosedDate(
        department_id=department.id,
        closed_date=closed_date_data.closed_date,
        reason=closed_date_data.reason
    )
    db.add(closed)
    db.flush()

    create_activity_log(
        db, department.id, "created", "closed_date", closed.id,
        f"Closed on {closed.closed_date.isoformat()}" + (f": {closed.reason}" if closed.reason else ""),
        request
    )
    db.commit()
    db.refresh(closed)
    return closed


@router.delete("/closed-dates/{closed_date_id}", response_model=MessageResponse)
def remove_closed_date(
    closed_date_id: int,
    request: Request,
    db: Session = Depends(get_db)
):
    closed = db.query(ClosedDate).filter(ClosedDate.id == closed_date_id).first()
    if not closed:
        raise NotFound(f"Closed date {closed_date_id} not found")

    department_id = closed.department_id
    day = closed.closed_date
    db.delete(closed)

    create_activity_log(
        db, department_id, "deleted", "closed_date", closed_date_id,
        f"Reopened {day.isoformat()}", request
    )
    db.commit()
    return {"message": "Closed date removed"}
