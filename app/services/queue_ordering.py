"""
Queue ordering.

Two unrelated orders live here and must not be mixed up:

* `serving_order` decides who "call next" picks: priority entries first, each
  group by check-in time, ties by ticket.
* `sort_for_display` is the staff list view sort (ticket, name, time, date,
  status) and has no effect on serving.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from app.models.models import Appointment, AppointmentStatus
from app.services.tickets import parse_ticket_sequence

SORT_FIELDS = ("ticket", "name", "time", "date", "status")

STATUS_ORDER = {
    AppointmentStatus.PENDING: 0,
    AppointmentStatus.CHECKED_IN: 1,
    AppointmentStatus.SERVING: 2,
    AppointmentStatus.COMPLETED: 3,
    AppointmentStatus.NO_SHOW: 4,
    AppointmentStatus.CANCELLED: 5,
}


def _ticket_key(appointment: Appointment):
    return (parse_ticket_sequence(appointment.ticket_number), appointment.ticket_number or "")


def _serving_key(appointment: Appointment):
    checked_in = appointment.checked_in_at or datetime.max
    return (0 if appointment.is_priority else 1, checked_in, _ticket_key(appointment))


def serving_order(appointments: Iterable[Appointment]) -> List[Appointment]:
    """Checked-in appointments in the order "call next" serves them"""
    waiting = [a for a in appointments if a.status == AppointmentStatus.CHECKED_IN]
    return sorted(waiting, key=_serving_key)


def next_candidate(appointments: Iterable[Appointment]) -> Optional[Appointment]:
    ordered = serving_order(appointments)
    return ordered[0] if ordered else None


def _display_key(field: str):
    if field == "ticket":
        return _ticket_key
    if field == "name":
        return lambda a: (a.full_name or "").lower()
    if field == "time":
        return lambda a: a.slot_start.isoformat() if a.slot_start else ""
    if field == "date":
        return lambda a: a.appointment_date.isoformat() if a.appointment_date else ""
    if field == "status":
        return lambda a: STATUS_ORDER.get(a.status, 0)
    raise ValueError(f"Unknown sort field: {field}")


def sort_for_display(
    appointments: Iterable[Appointment],
    sort_by: str = "time",
    direction: str = "asc"
) -> List[Appointment]:
    """Staff list view sort; stable, so equal keys keep their stored order"""
    return sorted(appointments, key=_display_key(sort_by), reverse=(direction == "desc"))
