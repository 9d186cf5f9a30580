"""
Ticket allocation.

Tickets look like ``H-007``: the department initial and a per-day sequence.
Reading the last ticket and inserting the new record happen inside one
savepoint; the (department, date, ticket) unique constraint turns a lost race
into an IntegrityError, which is retried with a fresh read. A capacity re-check
runs in the same savepoint, so a rejected record never outlives it.
"""
import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ConflictError
from app.models.models import Appointment, Department

logger = logging.getLogger(__name__)


def parse_ticket_sequence(ticket_number: Optional[str]) -> int:
    """Numeric suffix of a ticket, 0 when it cannot be parsed"""
    if not ticket_number or "-" not in ticket_number:
        return 0
    try:
        return int(ticket_number.rsplit("-", 1)[1])
    except ValueError:
        return 0


def format_ticket(prefix: str, sequence: int) -> str:
    return f"{prefix}-{sequence:03d}"


def next_ticket_number(db: Session, department: Department, target_date: date) -> str:
    """Next ticket for a department and date, starting at <Initial>-001"""
    tickets = db.query(Appointment.ticket_number).filter(
        Appointment.department_id == department.id,
        Appointment.appointment_date == target_date
    ).all()
    last = max((parse_ticket_sequence(row[0]) for row in tickets), default=0)
    return format_ticket(department.ticket_prefix, last + 1)


def allocate_and_apply(
    db: Session,
    department: Department,
    target_date: date,
    apply: Callable[[str], Appointment],
    retries: Optional[int] = None,
    verify: Optional[Callable[[Appointment], None]] = None
) -> Appointment:
    """
    Allocate a ticket and persist the record built by ``apply(ticket)`` as one unit.

    ``apply`` must add or update the appointment and flush-able state only; it
    is re-run with a new ticket if the insert collides with a concurrent one.
    ``verify`` sees the flushed record; raising from it rolls the savepoint back
    and propagates without a retry.
    """
    attempts = retries if retries is not None else settings.TICKET_ALLOCATION_RETRIES

    for attempt in range(1, attempts + 1):
        ticket = next_ticket_number(db, department, target_date)
        try:
            with db.begin_nested():
                appointment = apply(ticket)
                db.flush()
                if verify is not None:
                    verify(appointment)
            return appointment
        except IntegrityError:
            logger.warning(
                f"Ticket {ticket} for department {department.id} on {target_date} already taken "
                f"(attempt {attempt}/{attempts})"
            )

    raise ConflictError("Could not allocate a ticket number, please try again")
