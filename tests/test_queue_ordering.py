"""
Unit tests for serving order and display sorting
"""
import pytest
from datetime import date, datetime, time, timedelta
from app.models.models import Appointment, AppointmentStatus
from app.services.queue_ordering import serving_order, next_candidate, sort_for_display

T0 = datetime(2026, 10, 19, 8, 0)


def make(ticket, status=AppointmentStatus.CHECKED_IN, minutes=0, priority=False, name="Citizen", slot=None):
    return Appointment(
        ticket_number=ticket,
        full_name=name,
        status=status,
        appointment_date=date(2026, 10, 19),
        slot_start=slot,
        checked_in_at=T0 + timedelta(minutes=minutes) if status != AppointmentStatus.PENDING else None,
        is_priority=priority
    )


@pytest.mark.unit
class TestServingOrder:
    """Tests for who call next picks"""

    def test_earliest_check_in_first(self):
        late = make("H-001", minutes=10)
        early = make("H-002", minutes=2)

        assert serving_order([late, early]) == [early, late]

    def test_priority_group_served_first(self):
        normal = make("H-001", minutes=0)
        priority_late = make("H-003", minutes=30, priority=True)
        priority_early = make("H-002", minutes=20, priority=True)

        assert serving_order([normal, priority_late, priority_early]) == [priority_early, priority_late, normal]

    def test_ticket_breaks_ties(self):
        b = make("H-002", minutes=5)
        a = make("H-001", minutes=5)

        assert serving_order([b, a]) == [a, b]

    def test_ticket_tie_break_is_numeric(self):
        thousandth = make("H-1000", minutes=5)
        earlier = make("H-999", minutes=5)

        assert serving_order([thousandth, earlier]) == [earlier, thousandth]

    def test_only_checked_in_considered(self):
        pending = make("H-001", status=AppointmentStatus.PENDING)
        serving = make("H-002", status=AppointmentStatus.SERVING)
        waiting = make("H-003", minutes=4)

        assert serving_order([pending, serving, waiting]) == [waiting]
        assert next_candidate([pending, serving]) is None


@pytest.mark.unit
class TestDisplaySort:
    """Tests for the staff list sort"""

    def test_sort_by_ticket_is_numeric(self):
        tickets = [make(t) for t in ("H-1000", "H-002", "H-999", "H-010")]

        ordered = sort_for_display(tickets, "ticket")

        assert [a.ticket_number for a in ordered] == ["H-002", "H-010", "H-999", "H-1000"]
        assert [a.ticket_number for a in sort_for_display(tickets, "ticket", "desc")][0] == "H-1000"

    def test_sort_by_name_case_insensitive(self):
        rows = [make("H-001", name="carlo"), make("H-002", name="Bea"), make("H-003", name="alma")]
        assert [a.full_name for a in sort_for_display(rows, "name")] == ["alma", "Bea", "carlo"]

    def test_sort_by_time_descending(self):
        rows = [make("H-001", slot=time(9, 0)), make("H-002", slot=time(14, 0)), make("H-003", slot=time(10, 30))]
        assert [a.ticket_number for a in sort_for_display(rows, "time", "desc")] == ["H-002", "H-003", "H-001"]

    def test_sort_by_status_follows_lifecycle(self):
        rows = [
            make("H-001", status=AppointmentStatus.COMPLETED),
            make("H-002", status=AppointmentStatus.PENDING),
            make("H-003", status=AppointmentStatus.SERVING),
        ]
        assert [a.status for a in sort_for_display(rows, "status")] == [
            AppointmentStatus.PENDING, AppointmentStatus.SERVING, AppointmentStatus.COMPLETED
        ]

    def test_display_sort_does_not_affect_serving_order(self):
        normal = make("H-001", minutes=0, name="Aaron")
        priority = make("H-002", minutes=5, priority=True, name="Zeny")
        displayed = sort_for_display([normal, priority], "name")

        assert displayed == [normal, priority]
        assert next_candidate(displayed) is priority

    def test_unknown_field(self):
        with pytest.raises(ValueError):
            sort_for_display([], "citizen_id")
