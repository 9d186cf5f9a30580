"""
Unit tests for ticket allocation
"""
import pytest
from datetime import date
from app.core.exceptions import AdmissionRejected, ConflictError
from app.models.models import Appointment, AppointmentStatus
from app.services import tickets
from app.services.queue_state import create_walk_in
from app.services.tickets import (
    parse_ticket_sequence, format_ticket, next_ticket_number, allocate_and_apply
)

TODAY = date(2026, 10, 19)


@pytest.mark.unit
class TestTicketFormat:
    """Tests for ticket parsing and formatting"""

    def test_format_pads_to_three_digits(self):
        assert format_ticket("H", 7) == "H-007"
        assert format_ticket("H", 1234) == "H-1234"

    def test_parse_sequence(self):
        assert parse_ticket_sequence("H-012") == 12
        assert parse_ticket_sequence("H-1234") == 1234
        assert parse_ticket_sequence(None) == 0
        assert parse_ticket_sequence("garbage") == 0
        assert parse_ticket_sequence("H-abc") == 0


@pytest.mark.unit
class TestTicketAllocation:
    """Tests for per-day ticket sequences"""

    def test_first_ticket_of_the_day(self, db, test_department):
        assert next_ticket_number(db, test_department, TODAY) == "H-001"

    def test_n_admissions_give_contiguous_tickets(self, db, test_department):
        for i in range(12):
            create_walk_in(db, test_department, f"Citizen {i}", "0917000000", "Health card", today=TODAY)
        db.commit()

        issued = sorted(a.ticket_number for a in db.query(Appointment).all())
        assert issued == [f"H-{n:03d}" for n in range(1, 13)]

    def test_sequence_restarts_each_day(self, db, test_department):
        create_walk_in(db, test_department, "Ana", "0917000001", "Permit", today=TODAY)
        create_walk_in(db, test_department, "Ben", "0917000002", "Permit", today=date(2026, 10, 20))
        db.commit()

        assert next_ticket_number(db, test_department, TODAY) == "H-002"
        assert next_ticket_number(db, test_department, date(2026, 10, 20)) == "H-002"

    def test_sequence_continues_after_highest_ticket(self, db, test_department):
        db.add(Appointment(
            department_id=test_department.id,
            full_name="Imported",
            appointment_date=TODAY,
            status=AppointmentStatus.CANCELLED,
            ticket_number="H-041"
        ))
        db.commit()

        assert next_ticket_number(db, test_department, TODAY) == "H-042"

    def test_collision_is_retried_with_fresh_ticket(self, db, test_department, monkeypatch):
        """A ticket taken between read and insert is retried, not duplicated"""
        db.add(Appointment(
            department_id=test_department.id,
            full_name="Concurrent clerk's walk-in",
            appointment_date=TODAY,
            ticket_number="H-001"
        ))
        db.commit()

        real_next = tickets.next_ticket_number
        calls = []

        def stale_then_fresh(db_, department, target_date):
            calls.append(target_date)
            if len(calls) == 1:
                return "H-001"  # what a concurrent allocator would have read
            return real_next(db_, department, target_date)

        monkeypatch.setattr(tickets, "next_ticket_number", stale_then_fresh)

        def insert(ticket):
            appointment = Appointment(
                department_id=test_department.id,
                full_name="Late arrival",
                appointment_date=TODAY,
                ticket_number=ticket
            )
            db.add(appointment)
            return appointment

        appointment = allocate_and_apply(db, test_department, TODAY, insert)
        db.commit()

        assert len(calls) == 2
        assert appointment.ticket_number == "H-002"
        assert db.query(Appointment).count() == 2

    def test_gives_up_after_retries(self, db, test_department, monkeypatch):
        db.add(Appointment(
            department_id=test_department.id,
            full_name="Holder",
            appointment_date=TODAY,
            ticket_number="H-001"
        ))
        db.commit()
        monkeypatch.setattr(tickets, "next_ticket_number", lambda *args: "H-001")

        def insert(ticket):
            appointment = Appointment(
                department_id=test_department.id,
                full_name="Unlucky",
                appointment_date=TODAY,
                ticket_number=ticket
            )
            db.add(appointment)
            return appointment

        with pytest.raises(ConflictError):
            allocate_and_apply(db, test_department, TODAY, insert, retries=3)
        db.rollback()

        assert db.query(Appointment).count() == 1

    def test_failed_verification_undoes_insert_without_retry(self, db, test_department):
        attempts = []

        def insert(ticket):
            attempts.append(ticket)
            appointment = Appointment(
                department_id=test_department.id,
                full_name="Over the limit",
                appointment_date=TODAY,
                ticket_number=ticket
            )
            db.add(appointment)
            return appointment

        def reject(appointment):
            assert appointment.id is not None
            raise AdmissionRejected(AdmissionRejected.CAPACITY)

        with pytest.raises(AdmissionRejected):
            allocate_and_apply(db, test_department, TODAY, insert, verify=reject)

        assert attempts == ["H-001"]
        assert db.query(Appointment).count() == 0
