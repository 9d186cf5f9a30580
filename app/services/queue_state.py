"""
Appointment lifecycle.

    pending ──check in──▶ checked_in ──call next──▶ serving ──complete──▶ completed
       │                      │
       └──cancel──▶ cancelled └──no show──▶ no_show

Transfer moves any non-terminal appointment to another department as pending.
Every write is a conditional update on the status and version the caller saw,
so two terminals acting on the same appointment cannot both succeed. Nothing
here commits; the request handler owns the transaction.
"""
import logging
from datetime import date, datetime
from typing import Iterable, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ConflictError, InvalidTransition, NotFound, ValidationError
from app.models.models import Appointment, AppointmentStatus, Department, TimeSlot
from app.services import admission
from app.services.queue_ordering import next_candidate
from app.services.queue_store import conditional_update, list_checked_in
from app.services.tickets import allocate_and_apply

logger = logging.getLogger(__name__)

# (from, to) pairs reachable through a status change
TRANSITIONS = {
    (AppointmentStatus.PENDING, AppointmentStatus.CHECKED_IN),
    (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED),
    (AppointmentStatus.CHECKED_IN, AppointmentStatus.SERVING),
    (AppointmentStatus.CHECKED_IN, AppointmentStatus.NO_SHOW),
    (AppointmentStatus.SERVING, AppointmentStatus.COMPLETED),
}

PRIORITY_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CHECKED_IN)


def is_allowed(current: str, requested: str) -> bool:
    return (current, requested) in TRANSITIONS


def _require_transition(appointment: Appointment, requested: str) -> None:
    if not is_allowed(appointment.status, requested):
        raise InvalidTransition(appointment.status, requested)


def _require_status(appointment: Appointment, allowed: Iterable[str], action: str) -> None:
    allowed = tuple(allowed)
    if appointment.status not in allowed:
        raise InvalidTransition(
            appointment.status,
            action,
            f"Cannot {action} an appointment that is {appointment.status} "
            f"(allowed: {', '.join(allowed)})"
        )


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now()


def _today(today: Optional[date], now: Optional[datetime] = None) -> date:
    """Local calendar day, taken from `now` when one is given"""
    if today is not None:
        return today
    return now.date() if now is not None else date.today()


# ==================== Admission ====================

def create_scheduled(
    db: Session,
    department: Department,
    slot: TimeSlot,
    appointment_date: date,
    full_name: str,
    contact_number: Optional[str] = None,
    citizen_id: Optional[str] = None,
    purpose: Optional[str] = None,
    today: Optional[date] = None
) -> Appointment:
    """Admit an online booking into a slot; starts as pending"""
    admission.admit(db, department, appointment_date, _today(today), slot=slot)

    def insert(ticket: str) -> Appointment:
        appointment = Appointment(
            department_id=department.id,
            citizen_id=citizen_id,
            full_name=full_name,
            contact_number=contact_number,
            purpose=purpose,
            appointment_date=appointment_date,
            slot_start=slot.slot_start,
            slot_end=slot.slot_end,
            ticket_number=ticket,
            status=AppointmentStatus.PENDING,
            is_walk_in=False,
            qr_code=f"APPT-{uuid4().hex[:12].upper()}",
            version=1
        )
        db.add(appointment)
        return appointment

    appointment = allocate_and_apply(
        db, department, appointment_date, insert,
        verify=lambda booked: admission.verify_capacity(db, department, booked, slot=slot)
    )
    logger.info(f"Booked {appointment.ticket_number} in department {department.id} for {appointment_date}")
    return appointment


def create_walk_in(
    db: Session,
    department: Department,
    full_name: str,
    contact_number: str,
    purpose: str,
    now: Optional[datetime] = None,
    today: Optional[date] = None
) -> Appointment:
    """Admit a walk-in for today; it is checked in on creation"""
    if not (full_name or "").strip() or not (contact_number or "").strip() or not (purpose or "").strip():
        raise ValidationError("Walk-ins need a name, a contact number and a purpose")

    now = _now(now)
    today = _today(today, now)
    admission.admit(db, department, today, today, is_walk_in=True)

    def insert(ticket: str) -> Appointment:
        appointment = Appointment(
            department_id=department.id,
            citizen_id=None,
            full_name=full_name.strip(),
            contact_number=contact_number.strip(),
            purpose=purpose.strip(),
            appointment_date=today,
            slot_start=now.time().replace(second=0, microsecond=0),
            slot_end=now.time().replace(second=0, microsecond=0),
            ticket_number=ticket,
            status=AppointmentStatus.CHECKED_IN,
            is_walk_in=True,
            checked_in_at=now,
            qr_code=f"WALKIN-{ticket}",
            version=1
        )
        db.add(appointment)
        return appointment

    appointment = allocate_and_apply(
        db, department, today, insert,
        verify=lambda booked: admission.verify_capacity(db, department, booked)
    )
    logger.info(f"Walk-in {appointment.ticket_number} added to department {department.id}")
    return appointment


# ==================== Transitions ====================

def check_in(
    db: Session,
    appointment: Appointment,
    qr_code: Optional[str] = None,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
    today: Optional[date] = None
) -> Appointment:
    """pending -> checked_in, same day only"""
    _require_transition(appointment, AppointmentStatus.CHECKED_IN)
    now = _now(now)

    if appointment.appointment_date != _today(today, now):
        raise ValidationError(
            f"Appointment {appointment.ticket_number} is for {appointment.appointment_date.isoformat()}; "
            f"check-in is only possible on the day"
        )

    config = appointment.department.settings
    if config is not None and config.require_qr_checkin and qr_code != appointment.qr_code:
        raise ValidationError("A valid QR code is required to check in")

    return conditional_update(
        db, appointment, AppointmentStatus.PENDING,
        {"status": AppointmentStatus.CHECKED_IN, "checked_in_at": now},
        expected_version=expected_version
    )


def serve(
    db: Session,
    appointment: Appointment,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None
) -> Appointment:
    """checked_in -> serving for one specific appointment"""
    _require_transition(appointment, AppointmentStatus.SERVING)
    return conditional_update(
        db, appointment, AppointmentStatus.CHECKED_IN,
        {"status": AppointmentStatus.SERVING, "serving_started_at": _now(now)},
        expected_version=expected_version
    )


def call_next(
    db: Session,
    department_id: int,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
    max_attempts: Optional[int] = None
) -> Appointment:
    """
    Start serving the first checked-in appointment in serving order.

    Losing the race for a candidate re-reads the queue and tries the new head,
    up to `max_attempts` times.

    Raises:
        NotFound: nobody is waiting
        ConflictError: every attempt lost to another terminal
    """
    attempts = max_attempts or settings.CALL_NEXT_MAX_ATTEMPTS
    today = _today(today)

    for attempt in range(1, attempts + 1):
        candidate = next_candidate(list_checked_in(db, department_id, today))
        if candidate is None:
            raise NotFound("No checked-in appointments are waiting")
        try:
            return serve(db, candidate, now=now)
        except ConflictError:
            logger.info(
                f"Call next lost {candidate.ticket_number} in department {department_id} "
                f"(attempt {attempt}/{attempts}), re-reading queue"
            )
            db.expire_all()

    raise ConflictError("Queue is changing too quickly, please try again")


def complete(
    db: Session,
    appointment: Appointment,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None
) -> Appointment:
    """serving -> completed"""
    _require_transition(appointment, AppointmentStatus.COMPLETED)
    return conditional_update(
        db, appointment, AppointmentStatus.SERVING,
        {"status": AppointmentStatus.COMPLETED, "completed_at": _now(now)},
        expected_version=expected_version
    )


def mark_no_show(db: Session, appointment: Appointment, expected_version: Optional[int] = None) -> Appointment:
    """checked_in -> no_show"""
    _require_transition(appointment, AppointmentStatus.NO_SHOW)
    return conditional_update(
        db, appointment, AppointmentStatus.CHECKED_IN,
        {"status": AppointmentStatus.NO_SHOW},
        expected_version=expected_version
    )


def cancel(
    db: Session,
    appointment: Appointment,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None
) -> Appointment:
    """pending -> cancelled"""
    _require_transition(appointment, AppointmentStatus.CANCELLED)
    return conditional_update(
        db, appointment, AppointmentStatus.PENDING,
        {"status": AppointmentStatus.CANCELLED, "cancelled_at": _now(now)},
        expected_version=expected_version
    )


# ==================== Orthogonal updates ====================

def set_priority(
    db: Session,
    appointment: Appointment,
    is_priority: bool = True,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None
) -> Appointment:
    """Flag or unflag an appointment for priority serving; status is unchanged"""
    _require_status(appointment, PRIORITY_STATUSES, "change priority of")
    return conditional_update(
        db, appointment, appointment.status,
        {"is_priority": is_priority, "priority_set_at": _now(now) if is_priority else None},
        expected_version=expected_version
    )


def update_notes(
    db: Session,
    appointment: Appointment,
    notes: Optional[str],
    expected_version: Optional[int] = None
) -> Appointment:
    return conditional_update(
        db, appointment, appointment.status,
        {"notes": notes},
        expected_version=expected_version
    )


def transfer(
    db: Session,
    appointment: Appointment,
    target: Department,
    expected_version: Optional[int] = None
) -> Appointment:
    """
    Move a non-terminal appointment to another department.

    The record keeps its identity; it becomes pending in the target department
    with a ticket from the target's sequence, and its service timestamps are
    cleared.
    """
    if appointment.status in AppointmentStatus.TERMINAL:
        raise InvalidTransition(appointment.status, "transfer", f"Cannot transfer a {appointment.status} appointment")
    if target.id == appointment.department_id:
        raise ValidationError("Appointment is already in that department")
    if not target.is_active:
        raise NotFound(f"Department {target.id} is not active")

    source_id = appointment.department_id
    expected_status = appointment.status

    def move(ticket: str) -> Appointment:
        return conditional_update(
            db, appointment, expected_status,
            {
                "department_id": target.id,
                "ticket_number": ticket,
                "status": AppointmentStatus.PENDING,
                "checked_in_at": None,
                "serving_started_at": None,
                "completed_at": None,
            },
            expected_version=expected_version
        )

    moved = allocate_and_apply(db, target, appointment.appointment_date, move)
    logger.info(f"Transferred appointment {moved.id} from department {source_id} to {target.id} as {moved.ticket_number}")
    return moved


def reschedule(
    db: Session,
    appointment: Appointment,
    slot: TimeSlot,
    new_date: date,
    expected_version: Optional[int] = None,
    today: Optional[date] = None
) -> Appointment:
    """Move a pending booking to another date and slot, re-running admission control"""
    _require_status(appointment, (AppointmentStatus.PENDING,), "reschedule")
    department = appointment.department

    admission.admit(db, department, new_date, _today(today), slot=slot, exclude_appointment_id=appointment.id)

    if new_date == appointment.appointment_date:
        with db.begin_nested():
            moved = conditional_update(
                db, appointment, AppointmentStatus.PENDING,
                {"slot_start": slot.slot_start, "slot_end": slot.slot_end},
                expected_version=expected_version
            )
            admission.verify_capacity(db, department, moved, slot=slot)
        return moved

    def move(ticket: str) -> Appointment:
        return conditional_update(
            db, appointment, AppointmentStatus.PENDING,
            {
                "appointment_date": new_date,
                "slot_start": slot.slot_start,
                "slot_end": slot.slot_end,
                "ticket_number": ticket,
            },
            expected_version=expected_version
        )

    return allocate_and_apply(
        db, department, new_date, move,
        verify=lambda moved: admission.verify_capacity(db, department, moved, slot=slot)
    )
