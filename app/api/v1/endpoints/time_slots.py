from fastapi import APIRouter, Depends, status, Request, Query
from sqlalchemy.orm import Session
from typing import List
from datetime import date
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.models.models import TimeSlot
from app.schemas.schemas import (
    SlotGenerateRequest, SlotGenerateResponse, TimeSlotUpdate, TimeSlotResponse,
    AvailabilityResponse, MessageResponse
)
from app.api.v1.endpoints.activity_logs import create_activity_log
from app.api.v1.endpoints.departments import get_or_create_settings
from app.services.queue_store import get_department, get_time_slot, is_closed_date
from app.utils.slot_manager import (
    replace_department_slots, validate_slot_window, get_slot_availability
)

router = APIRouter()


@router.post(
    "/departments/{department_id}/time-slots/generate",
    response_model=SlotGenerateResponse,
    status_code=status.HTTP_201_CREATED
)
def generate_time_slots(
    department_id: int,
    generate_request: SlotGenerateRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Generate the department's slots from its operating hours.

    This REPLACES every existing slot of the department, so the request must
    carry confirm_replace=true.
    """
    if not generate_request.confirm_replace:
        raise ValidationError("Slot generation replaces all existing slots; set confirm_replace to true")

    department = get_department(db, department_id)
    get_or_create_settings(db, department)

    slots = replace_department_slots(
        db,
        department,
        duration_minutes=generate_request.duration_minutes,
        max_appointments=generate_request.max_appointments,
        days_of_week=generate_request.day_of_week
    )

    create_activity_log(
        db, department.id, "slots_generated", "time_slot", None,
        f"Generated {len(slots)} {generate_request.duration_minutes}-minute slots (previous slots replaced)",
        request
    )
    db.commit()
    for slot in slots:
        db.refresh(slot)

    return {"generated": len(slots), "slots": slots}


@router.get("/departments/{department_id}/time-slots/", response_model=List[TimeSlotResponse])
def list_time_slots(
    department_id: int,
    include_inactive: bool = True,
    db: Session = Depends(get_db)
):
    get_department(db, department_id)
    query = db.query(TimeSlot).filter(TimeSlot.department_id == department_id)
    if not include_inactive:
        query = query.filter(TimeSlot.is_active.is_(True))
    return query.order_by(TimeSlot.slot_start).all()


@router.put("/time-slots/{slot_id}", response_model=TimeSlotResponse)
def update_time_slot(
    slot_id: int,
    slot_update: TimeSlotUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    """Edit a single slot; the result must stay within operating hours and clear of lunch"""
    slot = get_time_slot(db, slot_id)
    config = get_or_create_settings(db, slot.department)

    update_data = slot_update.model_dump(exclude_unset=True, exclude_none=True)
    validate_slot_window(
        config,
        update_data.get("slot_start", slot.slot_start),
        update_data.get("slot_end", slot.slot_end)
    )

    for field, value in update_data.items():
        setattr(slot, field, value)

    create_activity_log(
        db, slot.department_id, "updated", "time_slot", slot.id,
        f"Updated slot {slot.slot_start.strftime('%H:%M')}-{slot.slot_end.strftime('%H:%M')}", request
    )
    db.commit()
    db.refresh(slot)
    return slot


@router.post("/time-slots/{slot_id}/toggle", response_model=TimeSlotResponse)
def toggle_time_slot(
    slot_id: int,
    request: Request,
    db: Session = Depends(get_db)
):
    """Activate or deactivate a slot"""
    slot = get_time_slot(db, slot_id)
    slot.is_active = not slot.is_active

    create_activity_log(
        db, slot.department_id, "activated" if slot.is_active else "deactivated", "time_slot", slot.id,
        f"Slot {slot.slot_start.strftime('%H:%M')}-{slot.slot_end.strftime('%H:%M')} "
        f"{'activated' if slot.is_active else 'deactivated'}",
        request
    )
    db.commit()
    db.refresh(slot)
    return slot


@router.delete("/time-slots/{slot_id}", response_model=MessageResponse)
def delete_time_slot(
    slot_id: int,
    request: Request,
    db: Session = Depends(get_db)
):
    slot = get_time_slot(db, slot_id)
    department_id = slot.department_id
    window = f"{slot.slot_start.strftime('%H:%M')}-{slot.slot_end.strftime('%H:%M')}"
    db.delete(slot)

    create_activity_log(db, department_id, "deleted", "time_slot", slot_id, f"Deleted slot {window}", request)
    db.commit()
    return {"message": "Time slot deleted"}


@router.get("/departments/{department_id}/availability", response_model=AvailabilityResponse)
def get_availability(
    department_id: int,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db)
):
    """Slots offered on a date with their remaining capacity"""
    department = get_department(db, department_id)
    return {
        "department_id": department.id,
        "date": target_date,
        "closed": is_closed_date(db, department.id, target_date),
        "slots": get_slot_availability(db, department, target_date),
    }
