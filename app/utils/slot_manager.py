"""
Slot management utilities for department appointment booking.

A department's bookable day is cut into fixed-length slots between its
operating start and end, skipping the lunch break. Each slot has its own
capacity and applies to a set of weekdays (0 = Sunday .. 6 = Saturday).
"""
import logging
from datetime import date, time
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.models.models import Department, DepartmentSettings, TimeSlot, WEEKDAYS
from app.services.queue_store import count_slot_appointments, is_closed_date

logger = logging.getLogger(__name__)


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def day_of_week(target_date: date) -> int:
    """Weekday number with Sunday as 0"""
    return (target_date.weekday() + 1) % 7


def check_time_conflict(start1: int, end1: int, start2: int, end2: int) -> bool:
    """
    Check if two time ranges overlap.

    Returns:
        True if there's a conflict (overlap), False otherwise
    """
    # No conflict if one ends before the other starts
    if end1 <= start2 or end2 <= start1:
        return False
    return True


def overlaps_lunch(slot_start: int, slot_end: int, lunch_start: int, lunch_end: int) -> bool:
    if lunch_end <= lunch_start:
        return False
    return check_time_conflict(slot_start, slot_end, lunch_start, lunch_end)


def validate_operating_window(
    operating_start: time,
    operating_end: time,
    lunch_start: time,
    lunch_end: time
) -> None:
    """Raise ValidationError unless the lunch break sits inside a non-empty operating window"""
    if to_minutes(operating_end) <= to_minutes(operating_start):
        raise ValidationError("Operating end must be after operating start")
    if to_minutes(lunch_end) < to_minutes(lunch_start):
        raise ValidationError("Lunch break end must not be before lunch break start")
    if to_minutes(lunch_start) < to_minutes(operating_start) or to_minutes(lunch_end) > to_minutes(operating_end):
        raise ValidationError("Lunch break must fall within operating hours")


def validate_days_of_week(days: Sequence[int]) -> List[int]:
    if not days:
        raise ValidationError("At least one day of week is required")
    cleaned = sorted(set(days))
    if cleaned[0] < 0 or cleaned[-1] > 6:
        raise ValidationError("Days of week must be between 0 (Sunday) and 6 (Saturday)")
    return cleaned


def generate_slots(
    operating_start: time,
    operating_end: time,
    lunch_start: time,
    lunch_end: time,
    duration_minutes: int,
    max_appointments: Optional[int] = None,
    days_of_week: Optional[Sequence[int]] = None
) -> List[dict]:
    """
    Cut the operating window into consecutive slots of `duration_minutes`.

    A slot touching the lunch break at all is left out rather than clipped, and
    a trailing slot that would run past closing is dropped.

    Returns:
        Ordered list of dicts with slot_start, slot_end, max_appointments, day_of_week
    """
    validate_operating_window(operating_start, operating_end, lunch_start, lunch_end)
    if duration_minutes <= 0:
        raise ValidationError("Slot duration must be a positive number of minutes")

    if max_appointments is None:
        max_appointments = settings.DEFAULT_SLOT_MAX_APPOINTMENTS
    if max_appointments < 1:
        raise ValidationError("Slot capacity must be at least 1")
    days = validate_days_of_week(days_of_week if days_of_week is not None else WEEKDAYS)

    start = to_minutes(operating_start)
    end = to_minutes(operating_end)
    lunch_from = to_minutes(lunch_start)
    lunch_to = to_minutes(lunch_end)

    slots = []
    cursor = start
    while cursor < end:
        slot_end = cursor + duration_minutes
        if slot_end > end:
            break
        if not overlaps_lunch(cursor, slot_end, lunch_from, lunch_to):
            slots.append({
                "slot_start": from_minutes(cursor),
                "slot_end": from_minutes(slot_end),
                "max_appointments": max_appointments,
                "day_of_week": list(days),
            })
        cursor = slot_end

    return slots


def replace_department_slots(
    db: Session,
    department: Department,
    duration_minutes: int,
    max_appointments: Optional[int] = None,
    days_of_week: Optional[Sequence[int]] = None
) -> List[TimeSlot]:
    """
    Discard the department's time slots and insert a freshly generated set.
    Irreversible; the caller commits.
    """
    config = department.settings
    generated = generate_slots(
        operating_start=config.operating_start,
        operating_end=config.operating_end,
        lunch_start=config.lunch_break_start,
        lunch_end=config.lunch_break_end,
        duration_minutes=duration_minutes,
        max_appointments=max_appointments,
        days_of_week=days_of_week
    )

    removed = db.query(TimeSlot).filter(TimeSlot.department_id == department.id).delete(synchronize_session=False)

    new_slots = [TimeSlot(department_id=department.id, is_active=True, **slot) for slot in generated]
    db.add_all(new_slots)
    db.flush()

    logger.info(
        f"Replaced {removed} slot(s) with {len(new_slots)} {duration_minutes}-minute slot(s) "
        f"for department {department.id}"
    )
    return new_slots


def validate_slot_window(config: DepartmentSettings, slot_start: time, slot_end: time) -> None:
    """A single slot must sit inside operating hours and clear of the lunch break"""
    start = to_minutes(slot_start)
    end = to_minutes(slot_end)
    if end <= start:
        raise ValidationError("Slot end must be after slot start")
    if start < to_minutes(config.operating_start) or end > to_minutes(config.operating_end):
        raise ValidationError(
            f"Slot must fall within operating hours "
            f"({config.operating_start.strftime('%H:%M')}-{config.operating_end.strftime('%H:%M')})"
        )
    if overlaps_lunch(start, end, to_minutes(config.lunch_break_start), to_minutes(config.lunch_break_end)):
        raise ValidationError("Slot must not overlap the lunch break")


def slots_outside_window(
    slots: Iterable[TimeSlot],
    operating_start: time,
    operating_end: time,
    lunch_start: time,
    lunch_end: time
) -> List[TimeSlot]:
    """Slots that would fall outside the given hours or overlap the given lunch break"""
    op_start, op_end = to_minutes(operating_start), to_minutes(operating_end)
    lunch = (to_minutes(lunch_start), to_minutes(lunch_end))
    conflicting = []
    for slot in slots:
        start, end = to_minutes(slot.slot_start), to_minutes(slot.slot_end)
        if start < op_start or end > op_end or overlaps_lunch(start, end, *lunch):
            conflicting.append(slot)
    return conflicting


def slot_applies_on(slot: TimeSlot, target_date: date) -> bool:
    return bool(slot.is_active) and day_of_week(target_date) in (slot.day_of_week or [])


def get_slot_availability(db: Session, department: Department, target_date: date) -> List[dict]:
    """
    Get the bookable slots of a department for a given date.

    Returns:
        List of dicts with slot details, booked count and remaining capacity;
        empty when the date is closed.
    """
    if is_closed_date(db, department.id, target_date):
        return []

    slots = db.query(TimeSlot).filter(
        TimeSlot.department_id == department.id,
        TimeSlot.is_active.is_(True)
    ).order_by(TimeSlot.slot_start).all()

    available = []
    for slot in slots:
        if not slot_applies_on(slot, target_date):
            continue
        booked = count_slot_appointments(db, department.id, target_date, slot.slot_start, slot.slot_end)
        available.append({
            "slot_id": slot.id,
            "slot_start": slot.slot_start,
            "slot_end": slot.slot_end,
            "max_appointments": slot.max_appointments,
            "booked": booked,
            "remaining": max(slot.max_appointments - booked, 0),
            "available": booked < slot.max_appointments,
        })
    return available
