from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from typing import List
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.models.models import Department, DepartmentSettings, TimeSlot
from app.schemas.schemas import (
    DepartmentCreate, DepartmentUpdate, DepartmentResponse,
    DepartmentSettingsUpdate, DepartmentSettingsResponse
)
from app.api.v1.endpoints.activity_logs import create_activity_log
from app.services.queue_store import get_department
from app.utils.slot_manager import slots_outside_window, validate_operating_window

router = APIRouter()


def get_or_create_settings(db: Session, department: Department) -> DepartmentSettings:
    """Departments created before settings existed get the defaults on first read"""
    if department.settings is None:
        department.settings = DepartmentSettings(department_id=department.id)
        db.commit()
        db.refresh(department)
    return department.settings


@router.get("/", response_model=List[DepartmentResponse])
def list_departments(
    include_inactive: bool = False,
    db: Session = Depends(get_db)
):
    """List departments in display order"""
    query = db.query(Department)
    if not include_inactive:
        query = query.filter(Department.is_active.is_(True))
    return query.order_by(Department.display_order, Department.name).all()


@router.post("/", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
def create_department(
    department_data: DepartmentCreate,
    request: Request,
    db: Session = Depends(get_db)
):
    """Create a department with default operating hours and booking rules"""
    existing = db.query(Department).filter(Department.name == department_data.name).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A department with this name already exists"
        )

    department = Department(
        name=department_data.name,
        description=department_data.description,
        display_order=department_data.display_order,
        is_active=True
    )
    department.settings = DepartmentSettings()
    db.add(department)
    db.flush()

    create_activity_log(
        db, department.id, "created", "department", department.id,
        f"Created department {department.name}", request
    )
    db.commit()
    db.refresh(department)
    return department


@router.get("/{department_id}", response_model=DepartmentResponse)
def read_department(department_id: int, db: Session = Depends(get_db)):
    department = get_department(db, department_id)
    get_or_create_settings(db, department)
    return department


@router.put("/{department_id}", response_model=DepartmentResponse)
def update_department(
    department_id: int,
    department_update: DepartmentUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    department = get_department(db, department_id)

    update_data = department_update.model_dump(exclude_unset=True)
    if "name" in update_data and update_data["name"] != department.name:
        clash = db.query(Department).filter(Department.name == update_data["name"]).first()
        if clash:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A department with this name already exists"
            )

    for field, value in update_data.items():
        setattr(department, field, value)

    create_activity_log(
        db, department.id, "updated", "department", department.id,
        f"Updated department fields: {', '.join(update_data) or 'none'}", request
    )
    db.commit()
    db.refresh(department)
    return department


@router.get("/{department_id}/settings", response_model=DepartmentSettingsResponse)
def read_department_settings(department_id: int, db: Session = Depends(get_db)):
    department = get_department(db, department_id)
    return get_or_create_settings(db, department)


@router.put("/{department_id}/settings", response_model=DepartmentSettingsResponse)
def update_department_settings(
    department_id: int,
    settings_update: DepartmentSettingsUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    """Update operating hours and admission rules; rejected while existing slots would not fit"""
    department = get_department(db, department_id)
    config = get_or_create_settings(db, department)

    update_data = settings_update.model_dump(exclude_unset=True, exclude_none=True)
    merged = {
        column: update_data.get(column, getattr(config, column))
        for column in (
            "operating_start", "operating_end", "lunch_break_start", "lunch_break_end",
            "min_days_advance", "max_days_advance"
        )
    }

    validate_operating_window(
        merged["operating_start"], merged["operating_end"],
        merged["lunch_break_start"], merged["lunch_break_end"]
    )
    if merged["min_days_advance"] > merged["max_days_advance"]:
        raise ValidationError("Minimum days in advance cannot exceed maximum days in advance")

    conflicting = slots_outside_window(
        db.query(TimeSlot).filter(TimeSlot.department_id == department.id).order_by(TimeSlot.slot_start).all(),
        merged["operating_start"], merged["operating_end"],
        merged["lunch_break_start"], merged["lunch_break_end"]
    )
    if conflicting:
        listed = ", ".join(
            f"{s.slot_start.strftime('%H:%M')}-{s.slot_end.strftime('%H:%M')}" for s in conflicting
        )
        raise ValidationError(
            f"Existing time slots fall outside the new hours or overlap lunch: {listed}. "
            f"Edit them or regenerate slots first"
        )

    for field, value in update_data.items():
        setattr(config, field, value)

    create_activity_log(
        db, department.id, "settings_updated", "department", department.id,
        f"Updated settings: {', '.join(update_data) or 'none'}", request
    )
    db.commit()
    db.refresh(config)
    return config
