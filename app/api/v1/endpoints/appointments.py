from fastapi import APIRouter, Depends, status, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date, timedelta
import logging
from app.core.database import get_db
from app.core.exceptions import NotFound, ValidationError
from app.core.notification_manager import notification_manager
from app.models.models import Appointment, AppointmentStatus, Department
from app.schemas.schemas import (
    AppointmentCreate, WalkInCreate, AppointmentResponse, AppointmentListResponse,
    VersionedAction, CheckInRequest, PriorityUpdate, TransferRequest, RescheduleRequest, NotesUpdate,
    QueueView, MetricsResponse, NowServingResponse
)
from app.api.v1.endpoints.activity_logs import create_activity_log
from app.api.v1.endpoints.departments import get_or_create_settings
from app.services import queue_state, metrics
from app.services.queue_ordering import SORT_FIELDS, serving_order, sort_for_display
from app.services.queue_store import (
    get_appointment, get_department, get_time_slot, list_appointments, list_serving
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _load_department(db: Session, department_id: int) -> Department:
    department = get_department(db, department_id)
    get_or_create_settings(db, department)
    return department


def _version(action: Optional[VersionedAction]) -> Optional[int]:
    return action.expected_version if action else None


def _commit_and_notify(
    db: Session,
    request: Request,
    appointment: Appointment,
    action: str,
    description: str,
    department_ids: Optional[List[int]] = None
) -> Appointment:
    """Log, commit, then hint every watching terminal to re-fetch"""
    create_activity_log(
        db, appointment.department_id, action, "appointment", appointment.id, description, request
    )
    db.commit()
    db.refresh(appointment)

    for department_id in department_ids or [appointment.department_id]:
        notification_manager.publish(department_id, action, appointment.id)
    return appointment


# ==================== Admission ====================

@router.post(
    "/departments/{department_id}/appointments/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED
)
def create_appointment(
    department_id: int,
    appointment_data: AppointmentCreate,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Book an appointment into a time slot.

    Admission control checks that the department accepts bookings, the date is
    open and within the advance-booking window, and both the daily limit and
    the slot capacity have room. The booking starts as pending with the next
    ticket of the day.
    """
    department = _load_department(db, department_id)
    slot = get_time_slot(db, appointment_data.slot_id)

    appointment = queue_state.create_scheduled(
        db,
        department,
        slot,
        appointment_data.appointment_date,
        full_name=appointment_data.full_name,
        contact_number=appointment_data.contact_number,
        citizen_id=appointment_data.citizen_id,
        purpose=appointment_data.purpose
    )
    return _commit_and_notify(
        db, request, appointment, "admitted",
        f"Booked {appointment.ticket_number} for {appointment.appointment_date.isoformat()} "
        f"{appointment.slot_start.strftime('%H:%M')}-{appointment.slot_end.strftime('%H:%M')}"
    )


@router.post(
    "/departments/{department_id}/appointments/walk-in",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED
)
def create_walk_in(
    department_id: int,
    walk_in: WalkInCreate,
    request: Request,
    db: Session = Depends(get_db)
):
    """Add a walk-in for today; it joins the queue already checked in"""
    department = _load_department(db, department_id)

    appointment = queue_state.create_walk_in(
        db,
        department,
        full_name=walk_in.full_name,
        contact_number=walk_in.contact_number,
        purpose=walk_in.purpose
    )
    return _commit_and_notify(
        db, request, appointment, "walk_in_admitted",
        f"Walk-in added: {appointment.ticket_number} - {appointment.full_name}"
    )


# ==================== Queries ====================

@router.get("/departments/{department_id}/appointments/", response_model=AppointmentListResponse)
def get_appointments(
    department_id: int,
    scope: str = Query("today", pattern="^(today|upcoming|all)$"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    search: Optional[str] = None,
    sort_by: str = Query("time"),
    sort_dir: str = Query("asc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db)
):
    """
    List a department's appointments.

    - scope: today, upcoming (after today) or all; explicit date_from/date_to win
    - status: repeatable; 'missed' is accepted for no-shows
    - search: ticket, name, phone or purpose
    - sort_by: ticket, name, time, date or status (display only, not serving order)
    """
    get_department(db, department_id)

    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORT_FIELDS)}")

    today = date.today()
    if date_from is None and date_to is None:
        if scope == "today":
            date_from = date_to = today
        elif scope == "upcoming":
            date_from = today + timedelta(days=1)

    unknown = [s for s in status_filter or [] if s not in AppointmentStatus.ALL + (AppointmentStatus.MISSED,)]
    if unknown:
        raise ValidationError(f"Unknown status: {', '.join(unknown)}")

    appointments = list_appointments(
        db, department_id,
        date_from=date_from, date_to=date_to,
        statuses=status_filter, search=search
    )
    appointments = sort_for_display(appointments, sort_by, sort_dir)

    return {
        "appointments": appointments,
        "total": len(appointments),
        "sort_by": sort_by,
        "sort_dir": sort_dir
    }


@router.get("/departments/{department_id}/queue", response_model=QueueView)
def get_queue(department_id: int, db: Session = Depends(get_db)):
    """Today's queue as a staff terminal shows it: serving, waiting in call-next order, pending"""
    get_department(db, department_id)
    today = date.today()

    appointments = list_appointments(db, department_id, date_from=today, date_to=today)
    return {
        "department_id": department_id,
        "date": today,
        "now_serving": sorted(
            [a for a in appointments if a.status == AppointmentStatus.SERVING],
            key=lambda a: a.serving_started_at
        ),
        "waiting": serving_order(appointments),
        "pending": sort_for_display(
            [a for a in appointments if a.status == AppointmentStatus.PENDING], "time"
        ),
        "metrics": metrics.summarize(appointments),
    }


@router.get("/departments/{department_id}/metrics", response_model=MetricsResponse)
def get_metrics(
    department_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: Session = Depends(get_db)
):
    """Average wait and service time in whole minutes plus status counts; defaults to today"""
    get_department(db, department_id)

    today = date.today()
    date_from = date_from or date_to or today
    date_to = date_to or date_from
    if date_to < date_from:
        raise ValidationError("date_to must not be before date_from")

    appointments = list_appointments(db, department_id, date_from=date_from, date_to=date_to)
    summary = metrics.summarize(appointments)
    summary.update({"department_id": department_id, "date_from": date_from, "date_to": date_to})
    return summary


@router.get("/display/now-serving", response_model=NowServingResponse)
def get_now_serving(
    department_id: Optional[int] = None,
    db: Session = Depends(get_db)
):
    """Public display board: tickets being served today"""
    today = date.today()
    serving = list_serving(db, today, department_id)
    return {
        "date": today,
        "serving": [
            {
                "id": a.id,
                "department_id": a.department_id,
                "department_name": a.department.name,
                "ticket_number": a.ticket_number,
                "serving_started_at": a.serving_started_at,
            }
            for a in serving
        ]
    }


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
def read_appointment(appointment_id: int, db: Session = Depends(get_db)):
    return get_appointment(db, appointment_id)


# ==================== Transitions ====================

@router.post("/appointments/{appointment_id}/check-in", response_model=AppointmentResponse)
def check_in_appointment(
    appointment_id: int,
    request: Request,
    check_in: Optional[CheckInRequest] = None,
    db: Session = Depends(get_db)
):
    """Check in a pending appointment on its day"""
    appointment = get_appointment(db, appointment_id)
    get_or_create_settings(db, appointment.department)

    appointment = queue_state.check_in(
        db, appointment,
        qr_code=check_in.qr_code if check_in else None,
        expected_version=_version(check_in)
    )
    return _commit_and_notify(db, request, appointment, "checked_in", f"Checked in {appointment.ticket_number}")


@router.post("/departments/{department_id}/appointments/check-in-by-qr", response_model=AppointmentResponse)
def check_in_by_qr(
    department_id: int,
    check_in: CheckInRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """Check in the appointment whose QR code was scanned at the counter"""
    _load_department(db, department_id)
    if not check_in.qr_code:
        raise ValidationError("qr_code is required")

    appointment = db.query(Appointment).filter(
        Appointment.department_id == department_id,
        Appointment.qr_code == check_in.qr_code,
        Appointment.appointment_date == date.today()
    ).first()
    if not appointment:
        raise NotFound("No appointment today matches this QR code")

    appointment = queue_state.check_in(
        db, appointment, qr_code=check_in.qr_code, expected_version=check_in.expected_version
    )
    return _commit_and_notify(
        db, request, appointment, "checked_in", f"Checked in {appointment.ticket_number} by QR code"
    )


@router.post("/departments/{department_id}/queue/call-next", response_model=AppointmentResponse)
def call_next(
    department_id: int,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Start serving the next checked-in appointment.
    Priority appointments go first, then earliest check-in; a lost race moves on to the new head of the queue.
    """
    get_department(db, department_id)
    appointment = queue_state.call_next(db, department_id)
    return _commit_and_notify(
        db, request, appointment, "called", f"Now serving {appointment.ticket_number} - {appointment.full_name}"
    )


@router.post("/appointments/{appointment_id}/serve", response_model=AppointmentResponse)
def serve_appointment(
    appointment_id: int,
    request: Request,
    action: Optional[VersionedAction] = None,
    db: Session = Depends(get_db)
):
    """Start serving one specific checked-in appointment, out of queue order"""
    appointment = get_appointment(db, appointment_id)
    appointment = queue_state.serve(db, appointment, expected_version=_version(action))
    return _commit_and_notify(
        db, request, appointment, "called", f"Now serving {appointment.ticket_number} (called directly)"
    )


@router.post("/appointments/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    request: Request,
    action: Optional[VersionedAction] = None,
    db: Session = Depends(get_db)
):
    """Mark an appointment being served as completed"""
    appointment = get_appointment(db, appointment_id)
    appointment = queue_state.complete(db, appointment, expected_version=_version(action))
    return _commit_and_notify(db, request, appointment, "completed", f"Completed {appointment.ticket_number}")


@router.post("/appointments/{appointment_id}/no-show", response_model=AppointmentResponse)
def mark_no_show(
    appointment_id: int,
    request: Request,
    action: Optional[VersionedAction] = None,
    db: Session = Depends(get_db)
):
    """Mark a checked-in appointment that never came forward"""
    appointment = get_appointment(db, appointment_id)
    appointment = queue_state.mark_no_show(db, appointment, expected_version=_version(action))
    return _commit_and_notify(db, request, appointment, "no_show", f"Marked {appointment.ticket_number} as no-show")


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    request: Request,
    action: Optional[VersionedAction] = None,
    db: Session = Depends(get_db)
):
    """Cancel a pending appointment; the record stays with status cancelled"""
    appointment = get_appointment(db, appointment_id)
    appointment = queue_state.cancel(db, appointment, expected_version=_version(action))
    return _commit_and_notify(db, request, appointment, "cancelled", f"Cancelled {appointment.ticket_number}")


@router.post("/appointments/{appointment_id}/priority", response_model=AppointmentResponse)
def set_priority(
    appointment_id: int,
    priority: PriorityUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    """Move an appointment into (or out of) the priority queue"""
    appointment = get_appointment(db, appointment_id)
    appointment = queue_state.set_priority(
        db, appointment, is_priority=priority.is_priority, expected_version=priority.expected_version
    )
    return _commit_and_notify(
        db, request, appointment, "priority_set" if priority.is_priority else "priority_cleared",
        f"{'Set' if priority.is_priority else 'Cleared'} priority on {appointment.ticket_number}"
    )


@router.post("/appointments/{appointment_id}/transfer", response_model=AppointmentResponse)
def transfer_appointment(
    appointment_id: int,
    transfer: TransferRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """Hand an appointment over to another department; it restarts there as pending"""
    appointment = get_appointment(db, appointment_id)
    target = get_department(db, transfer.target_department_id)

    source_id = appointment.department_id
    old_ticket = appointment.ticket_number
    appointment = queue_state.transfer(db, appointment, target, expected_version=transfer.expected_version)

    return _commit_and_notify(
        db, request, appointment, "transferred",
        f"Transferred {old_ticket} from department {source_id} to {target.name} as {appointment.ticket_number}",
        department_ids=[source_id, target.id]
    )


@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    reschedule: RescheduleRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """Move a pending booking to another date and slot"""
    appointment = get_appointment(db, appointment_id)
    get_or_create_settings(db, appointment.department)
    slot = get_time_slot(db, reschedule.slot_id)

    old_date = appointment.appointment_date
    appointment = queue_state.reschedule(
        db, appointment, slot, reschedule.appointment_date, expected_version=reschedule.expected_version
    )
    return _commit_and_notify(
        db, request, appointment, "rescheduled",
        f"Rescheduled from {old_date.isoformat()} to {appointment.appointment_date.isoformat()} "
        f"{appointment.slot_start.strftime('%H:%M')} as {appointment.ticket_number}"
    )


@router.put("/appointments/{appointment_id}/notes", response_model=AppointmentResponse)
def update_notes(
    appointment_id: int,
    notes_update: NotesUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    appointment = get_appointment(db, appointment_id)
    appointment = queue_state.update_notes(
        db, appointment, notes_update.notes, expected_version=notes_update.expected_version
    )
    return _commit_and_notify(db, request, appointment, "notes_updated", f"Updated notes on {appointment.ticket_number}")
