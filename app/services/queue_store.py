"""
Queue store: the single authoritative table of appointment records.

Terminals never hold authoritative state. They read through the query helpers
below and write through `conditional_update`, which only succeeds when the
record still has the status and version the caller last saw.
"""
import logging
from datetime import date, datetime, time
from typing import Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFound
from app.models.models import Appointment, AppointmentStatus, ClosedDate, Department, TimeSlot

logger = logging.getLogger(__name__)


def get_department(db: Session, department_id: int) -> Department:
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department:
        raise NotFound(f"Department {department_id} not found")
    return department


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if not appointment:
        raise NotFound(f"Appointment {appointment_id} not found")
    return appointment


def get_time_slot(db: Session, slot_id: int) -> TimeSlot:
    slot = db.query(TimeSlot).filter(TimeSlot.id == slot_id).first()
    if not slot:
        raise NotFound(f"Time slot {slot_id} not found")
    return slot


def is_closed_date(db: Session, department_id: int, target_date: date) -> bool:
    return db.query(ClosedDate).filter(
        ClosedDate.department_id == department_id,
        ClosedDate.closed_date == target_date
    ).first() is not None


def count_day_appointments(
    db: Session,
    department_id: int,
    target_date: date,
    exclude_id: Optional[int] = None
) -> int:
    """Non-cancelled appointments for a department on a date"""
    query = db.query(func.count(Appointment.id)).filter(
        Appointment.department_id == department_id,
        Appointment.appointment_date == target_date,
        Appointment.status != AppointmentStatus.CANCELLED
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.scalar() or 0


def count_slot_appointments(
    db: Session,
    department_id: int,
    target_date: date,
    slot_start: time,
    slot_end: time,
    exclude_id: Optional[int] = None
) -> int:
    """Active (pending, checked in or serving) appointments booked into one slot on one date"""
    query = db.query(func.count(Appointment.id)).filter(
        Appointment.department_id == department_id,
        Appointment.appointment_date == target_date,
        Appointment.slot_start == slot_start,
        Appointment.slot_end == slot_end,
        Appointment.status.in_(AppointmentStatus.ACTIVE)
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.scalar() or 0


def normalize_statuses(statuses: Optional[Iterable[str]]) -> List[str]:
    """Expand the staff-facing 'missed' alias to the stored no_show status"""
    result = []
    for value in statuses or []:
        value = AppointmentStatus.NO_SHOW if value == AppointmentStatus.MISSED else value
        if value not in result:
            result.append(value)
    return result


def list_appointments(
    db: Session,
    department_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    statuses: Optional[Iterable[str]] = None,
    search: Optional[str] = None,
) -> List[Appointment]:
    """Appointments of one department filtered by date range, status and free-text search"""
    query = db.query(Appointment).filter(Appointment.department_id == department_id)

    if date_from is not None:
        query = query.filter(Appointment.appointment_date >= date_from)
    if date_to is not None:
        query = query.filter(Appointment.appointment_date <= date_to)

    wanted = normalize_statuses(statuses)
    if wanted:
        query = query.filter(Appointment.status.in_(wanted))

    # Search ticket, name, phone or purpose
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Appointment.ticket_number.ilike(pattern),
                Appointment.full_name.ilike(pattern),
                Appointment.contact_number.ilike(pattern),
                Appointment.purpose.ilike(pattern)
            )
        )

    return query.order_by(Appointment.appointment_date.asc(), Appointment.id.asc()).all()


def list_checked_in(db: Session, department_id: int, target_date: Optional[date] = None) -> List[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.department_id == department_id,
        Appointment.status == AppointmentStatus.CHECKED_IN
    )
    if target_date is not None:
        query = query.filter(Appointment.appointment_date == target_date)
    return query.all()


def list_serving(db: Session, target_date: date, department_id: Optional[int] = None) -> List[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.appointment_date == target_date,
        Appointment.status == AppointmentStatus.SERVING
    )
    if department_id is not None:
        query = query.filter(Appointment.department_id == department_id)
    return query.order_by(Appointment.serving_started_at.asc()).all()


def conditional_update(
    db: Session,
    appointment: Appointment,
    expected_status: str,
    values: dict,
    expected_version: Optional[int] = None,
) -> Appointment:
    """
    Apply `values` to an appointment only if it still has `expected_status`
    and `expected_version` (defaults to the version loaded in `appointment`).

    The UPDATE's row count decides the race: zero rows means another terminal
    changed the record first and ConflictError is raised. The caller's
    transaction is not committed here.
    """
    version = appointment.version if expected_version is None else expected_version
    values = dict(values)
    values["version"] = version + 1
    values["updated_at"] = datetime.now()

    updated = db.query(Appointment).filter(
        Appointment.id == appointment.id,
        Appointment.status == expected_status,
        Appointment.version == version
    ).update(values, synchronize_session=False)

    if updated == 0:
        logger.info(
            f"Conditional update lost for appointment {appointment.id} "
            f"(expected status={expected_status}, version={version})"
        )
        raise ConflictError(
            f"Appointment {appointment.ticket_number} was changed by another terminal; reload the queue"
        )

    db.flush()
    db.refresh(appointment)
    return appointment
