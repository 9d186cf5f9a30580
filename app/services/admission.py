"""
Admission control for new appointments.

All checks run before anything is written; a rejection carries a reason code
(disabled, closed, too_soon, too_late, capacity, slot_unavailable).

The settings row and the slot row are locked before counting, and the counts
are taken again once the new record is flushed, so two bookings racing for the
last seat cannot both stay admitted.
"""
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import AdmissionRejected, ValidationError
from app.models.models import Appointment, Department, DepartmentSettings, TimeSlot
from app.services.queue_store import count_day_appointments, count_slot_appointments, is_closed_date
from app.utils.slot_manager import slot_applies_on

logger = logging.getLogger(__name__)


def _lock_capacity_rows(db: Session, config: DepartmentSettings, slot: Optional[TimeSlot] = None) -> None:
    if config.id is not None:
        db.query(DepartmentSettings).filter(DepartmentSettings.id == config.id).with_for_update().one()
    if slot is not None and slot.id is not None:
        db.query(TimeSlot).filter(TimeSlot.id == slot.id).with_for_update().one()


def check_booking_window(config, target_date: date, today: date) -> None:
    """Advance-booking bounds for scheduled bookings"""
    if target_date == today and config.allow_same_day:
        return

    earliest = today + timedelta(days=config.min_days_advance or 0)
    latest = today + timedelta(days=config.max_days_advance or 0)

    if target_date < earliest:
        raise AdmissionRejected(
            AdmissionRejected.TOO_SOON,
            f"Bookings must be made at least {config.min_days_advance} day(s) in advance"
        )
    if target_date > latest:
        raise AdmissionRejected(
            AdmissionRejected.TOO_LATE,
            f"Bookings can be made at most {config.max_days_advance} day(s) in advance"
        )


def admit(
    db: Session,
    department: Department,
    target_date: date,
    today: date,
    slot: Optional[TimeSlot] = None,
    is_walk_in: bool = False,
    exclude_appointment_id: Optional[int] = None
) -> None:
    """
    Decide whether an appointment may be created.

    Args:
        db: Database session
        department: Target department (with settings loaded)
        target_date: Requested appointment date (walk-ins: today)
        today: The current local date
        slot: Requested time slot for scheduled bookings
        is_walk_in: Walk-ins skip slot and advance-window checks
        exclude_appointment_id: Record being rescheduled, left out of counts

    Raises:
        AdmissionRejected: with the reason of the first failed check
        ValidationError: when a scheduled booking names no slot
    """
    config = department.settings

    if not department.is_active or not config.can_receive_appointments:
        raise AdmissionRejected(AdmissionRejected.DISABLED, f"{department.name} is not accepting appointments")

    if is_closed_date(db, department.id, target_date):
        raise AdmissionRejected(AdmissionRejected.CLOSED, f"{department.name} is closed on {target_date.isoformat()}")

    if is_walk_in:
        if not config.allow_walk_ins:
            raise AdmissionRejected(AdmissionRejected.DISABLED, f"{department.name} does not accept walk-ins")
    else:
        if slot is None:
            raise ValidationError("A time slot is required for scheduled bookings")
        check_booking_window(config, target_date, today)

    _lock_capacity_rows(db, config, slot)

    booked_today = count_day_appointments(db, department.id, target_date, exclude_id=exclude_appointment_id)
    if booked_today >= config.daily_appointment_limit:
        raise AdmissionRejected(
            AdmissionRejected.CAPACITY,
            f"Daily limit of {config.daily_appointment_limit} appointments reached for {target_date.isoformat()}"
        )

    if not is_walk_in:
        if slot.department_id != department.id or not slot_applies_on(slot, target_date):
            raise AdmissionRejected(
                AdmissionRejected.SLOT_UNAVAILABLE,
                "The selected time slot is not offered on that date"
            )
        in_slot = count_slot_appointments(
            db, department.id, target_date, slot.slot_start, slot.slot_end, exclude_id=exclude_appointment_id
        )
        if in_slot >= slot.max_appointments:
            raise AdmissionRejected(AdmissionRejected.CAPACITY, "The selected time slot is fully booked")

    logger.debug(
        f"Admitted {'walk-in' if is_walk_in else 'booking'} for department {department.id} on {target_date}"
    )


def verify_capacity(
    db: Session,
    department: Department,
    appointment: Appointment,
    slot: Optional[TimeSlot] = None
) -> None:
    """
    Re-count with the new or moved record already flushed.

    Runs inside the savepoint that wrote the record; raising here undoes it.
    """
    config = department.settings

    booked_today = count_day_appointments(db, department.id, appointment.appointment_date)
    if booked_today > config.daily_appointment_limit:
        logger.warning(
            f"Daily limit for department {department.id} on {appointment.appointment_date} "
            f"was taken by a concurrent booking"
        )
        raise AdmissionRejected(
            AdmissionRejected.CAPACITY,
            f"Daily limit of {config.daily_appointment_limit} appointments reached for "
            f"{appointment.appointment_date.isoformat()}"
        )

    if slot is not None:
        in_slot = count_slot_appointments(
            db, department.id, appointment.appointment_date, slot.slot_start, slot.slot_end
        )
        if in_slot > slot.max_appointments:
            logger.warning(f"Slot {slot.id} on {appointment.appointment_date} was filled by a concurrent booking")
            raise AdmissionRejected(AdmissionRejected.CAPACITY, "The selected time slot is fully booked")
