"""
Unit tests for appointment and queue endpoints
"""
import asyncio
import pytest
from fastapi import status
from datetime import date, timedelta
from sse_starlette.sse import EventSourceResponse
from app.api.v1.endpoints import notifications
from app.core.database import get_db
from app.core.notification_manager import notification_manager
from app.main import app
from app.models.models import ActivityLog, AppointmentStatus


def book(client, department_id, slot_id, target=None, name="Lea Salonga"):
    return client.post(
        f"/api/v1/departments/{department_id}/appointments/",
        json={
            "slot_id": slot_id,
            "appointment_date": (target or date.today()).isoformat(),
            "full_name": name,
            "contact_number": "09171112222",
            "purpose": "Health card renewal"
        }
    )


def walk_in(client, department_id, name="Pedro Penduko"):
    return client.post(
        f"/api/v1/departments/{department_id}/appointments/walk-in",
        json={"full_name": name, "contact_number": "09173334444", "purpose": "Medical certificate"}
    )


@pytest.fixture
def published(monkeypatch):
    """Record queue hints instead of sending them"""
    calls = []

    def record(department_id, reason, appointment_id=None):
        calls.append((department_id, reason, appointment_id))
        return 0

    monkeypatch.setattr(notification_manager, "publish", record)
    return calls


@pytest.mark.unit
class TestAdmissionEndpoints:
    """Tests for booking and walk-in admission"""

    def test_book_appointment(self, client, test_department, test_slot, published):
        response = book(client, test_department.id, test_slot.id, date.today() + timedelta(days=1))

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["status"] == "pending"
        assert data["ticket_number"] == "H-001"
        assert data["slot_start"] == "09:00:00"
        assert data["version"] == 1
        assert published == [(test_department.id, "admitted", data["id"])]

    def test_booking_rejected_with_reason(self, client, db, test_department, test_slot):
        test_department.settings.allow_same_day = False
        test_department.settings.min_days_advance = 1
        db.commit()

        response = book(client, test_department.id, test_slot.id)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"] == "admission_rejected"
        assert response.json()["reason"] == "too_soon"

    def test_slot_capacity_enforced(self, client, test_department, test_slot):
        target = date.today() + timedelta(days=1)
        assert book(client, test_department.id, test_slot.id, target).status_code == status.HTTP_201_CREATED
        assert book(client, test_department.id, test_slot.id, target).status_code == status.HTTP_201_CREATED

        third = book(client, test_department.id, test_slot.id, target)
        assert third.status_code == status.HTTP_409_CONFLICT
        assert third.json()["reason"] == "capacity"

    def test_walk_in(self, client, test_department):
        response = walk_in(client, test_department.id)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["status"] == "checked_in"
        assert data["is_walk_in"] is True
        assert data["checked_in_at"] is not None
        assert data["appointment_date"] == date.today().isoformat()

    def test_walk_in_missing_fields(self, client, test_department):
        response = client.post(
            f"/api/v1/departments/{test_department.id}/appointments/walk-in",
            json={"full_name": "Pedro", "contact_number": " ", "purpose": "Permit"}
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_walk_ins_disabled(self, client, db, test_department):
        test_department.settings.allow_walk_ins = False
        db.commit()

        response = walk_in(client, test_department.id)
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["reason"] == "disabled"


@pytest.mark.unit
class TestQueueFlow:
    """Tests for the staff queue workflow"""

    def test_check_in_call_next_complete(self, client, db, test_department, test_slot, staff_headers, published):
        appointment = book(client, test_department.id, test_slot.id).json()

        checked_in = client.post(f"/api/v1/appointments/{appointment['id']}/check-in", headers=staff_headers)
        assert checked_in.status_code == status.HTTP_200_OK
        assert checked_in.json()["status"] == "checked_in"

        called = client.post(f"/api/v1/departments/{test_department.id}/queue/call-next", headers=staff_headers)
        assert called.status_code == status.HTTP_200_OK
        assert called.json()["id"] == appointment["id"]
        assert called.json()["status"] == "serving"

        completed = client.post(
            f"/api/v1/appointments/{appointment['id']}/complete",
            headers=staff_headers,
            json={"expected_version": called.json()["version"]}
        )
        assert completed.status_code == status.HTTP_200_OK
        assert completed.json()["status"] == "completed"
        assert completed.json()["completed_at"] is not None

        assert [reason for _, reason, _ in published] == ["admitted", "checked_in", "called", "completed"]
        actions = [log.action for log in db.query(ActivityLog).order_by(ActivityLog.id).all()]
        assert actions == ["admitted", "checked_in", "called", "completed"]

    def test_invalid_transition(self, client, test_department, test_slot):
        appointment = book(client, test_department.id, test_slot.id).json()

        response = client.post(f"/api/v1/appointments/{appointment['id']}/complete")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"] == "invalid_transition"

    def test_stale_expected_version(self, client, test_department):
        appointment = walk_in(client, test_department.id).json()
        client.put(f"/api/v1/appointments/{appointment['id']}/notes", json={"notes": "Needs wheelchair"})

        response = client.post(
            f"/api/v1/appointments/{appointment['id']}/no-show",
            json={"expected_version": appointment["version"]}
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"] == "conflict"

    def test_call_next_empty_queue(self, client, test_department):
        response = client.post(f"/api/v1/departments/{test_department.id}/queue/call-next")
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_priority_served_first(self, client, test_department):
        walk_in(client, test_department.id, "Early bird")
        senior = walk_in(client, test_department.id, "Lola Basyang").json()

        flagged = client.post(f"/api/v1/appointments/{senior['id']}/priority", json={"is_priority": True})
        assert flagged.json()["is_priority"] is True
        assert flagged.json()["status"] == "checked_in"

        called = client.post(f"/api/v1/departments/{test_department.id}/queue/call-next")
        assert called.json()["id"] == senior["id"]

    def test_cancel(self, client, test_department, test_slot):
        appointment = book(client, test_department.id, test_slot.id).json()

        response = client.post(f"/api/v1/appointments/{appointment['id']}/cancel")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancelled_at"] is not None

    def test_check_in_by_qr(self, client, db, test_department, test_slot):
        test_department.settings.require_qr_checkin = True
        db.commit()
        appointment = book(client, test_department.id, test_slot.id).json()

        without_code = client.post(f"/api/v1/appointments/{appointment['id']}/check-in")
        assert without_code.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

        response = client.post(
            f"/api/v1/departments/{test_department.id}/appointments/check-in-by-qr",
            json={"qr_code": appointment["qr_code"]}
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == appointment["id"]
        assert response.json()["status"] == "checked_in"

    def test_unknown_qr_code(self, client, test_department):
        response = client.post(
            f"/api/v1/departments/{test_department.id}/appointments/check-in-by-qr",
            json={"qr_code": "APPT-000000000000"}
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.unit
class TestTransferAndReschedule:
    """Tests for moving appointments"""

    def test_transfer(self, client, test_department, other_department, published):
        appointment = walk_in(client, test_department.id).json()

        response = client.post(
            f"/api/v1/appointments/{appointment['id']}/transfer",
            json={"target_department_id": other_department.id}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["id"] == appointment["id"]
        assert data["department_id"] == other_department.id
        assert data["status"] == "pending"
        assert data["ticket_number"] == "P-001"
        assert (test_department.id, "transferred", appointment["id"]) in published
        assert (other_department.id, "transferred", appointment["id"]) in published

        source_queue = client.get(f"/api/v1/departments/{test_department.id}/queue").json()
        target_queue = client.get(f"/api/v1/departments/{other_department.id}/queue").json()
        assert source_queue["waiting"] == []
        assert [a["id"] for a in target_queue["pending"]] == [appointment["id"]]

    def test_transfer_to_missing_department(self, client, test_department):
        appointment = walk_in(client, test_department.id).json()

        response = client.post(
            f"/api/v1/appointments/{appointment['id']}/transfer",
            json={"target_department_id": 999}
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_reschedule(self, client, test_department, test_slot):
        appointment = book(client, test_department.id, test_slot.id, date.today() + timedelta(days=1)).json()
        new_date = (date.today() + timedelta(days=3)).isoformat()

        response = client.post(
            f"/api/v1/appointments/{appointment['id']}/reschedule",
            json={"appointment_date": new_date, "slot_id": test_slot.id}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["appointment_date"] == new_date
        assert response.json()["status"] == "pending"


@pytest.mark.unit
class TestQueueViews:
    """Tests for listing, queue view, metrics and the display board"""

    def test_list_filters_and_sorts(self, client, test_department, test_slot):
        book(client, test_department.id, test_slot.id, name="Zenaida")
        walk_in(client, test_department.id, "Amado")
        cancelled = book(client, test_department.id, test_slot.id, name="Bernardo").json()
        client.post(f"/api/v1/appointments/{cancelled['id']}/cancel")

        by_name = client.get(
            f"/api/v1/departments/{test_department.id}/appointments/",
            params={"sort_by": "name"}
        ).json()
        assert [a["full_name"] for a in by_name["appointments"]] == ["Amado", "Bernardo", "Zenaida"]
        assert by_name["total"] == 3

        active = client.get(
            f"/api/v1/departments/{test_department.id}/appointments/",
            params=[("status", "pending"), ("status", "checked_in")]
        ).json()
        assert {a["full_name"] for a in active["appointments"]} == {"Zenaida", "Amado"}

        searched = client.get(
            f"/api/v1/departments/{test_department.id}/appointments/",
            params={"search": "amad"}
        ).json()
        assert [a["full_name"] for a in searched["appointments"]] == ["Amado"]

    def test_missed_is_an_alias_for_no_show(self, client, test_department):
        appointment = walk_in(client, test_department.id).json()
        client.post(f"/api/v1/appointments/{appointment['id']}/no-show")

        missed = client.get(
            f"/api/v1/departments/{test_department.id}/appointments/",
            params={"status": "missed"}
        ).json()
        assert [a["status"] for a in missed["appointments"]] == [AppointmentStatus.NO_SHOW]

    def test_list_rejects_unknown_sort(self, client, test_department):
        response = client.get(
            f"/api/v1/departments/{test_department.id}/appointments/",
            params={"sort_by": "citizen_id"}
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_queue_view(self, client, test_department, test_slot):
        book(client, test_department.id, test_slot.id, name="Still at home")
        first = walk_in(client, test_department.id, "First").json()
        second = walk_in(client, test_department.id, "Second").json()
        client.post(f"/api/v1/departments/{test_department.id}/queue/call-next")

        view = client.get(f"/api/v1/departments/{test_department.id}/queue").json()

        assert [a["id"] for a in view["now_serving"]] == [first["id"]]
        assert [a["id"] for a in view["waiting"]] == [second["id"]]
        assert [a["full_name"] for a in view["pending"]] == ["Still at home"]
        assert view["metrics"]["counts"]["total"] == 3
        assert view["metrics"]["counts"]["serving"] == 1

    def test_metrics(self, client, test_department):
        appointment = walk_in(client, test_department.id).json()
        client.post(f"/api/v1/departments/{test_department.id}/queue/call-next")
        client.post(f"/api/v1/appointments/{appointment['id']}/complete")

        response = client.get(f"/api/v1/departments/{test_department.id}/metrics")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["date_from"] == data["date_to"] == date.today().isoformat()
        assert data["wait_samples"] == 1
        assert data["service_samples"] == 1
        assert data["counts"]["completed"] == 1

    def test_metrics_rejects_inverted_range(self, client, test_department):
        response = client.get(
            f"/api/v1/departments/{test_department.id}/metrics",
            params={"date_from": "2026-10-20", "date_to": "2026-10-10"}
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_now_serving_board(self, client, test_department, other_department):
        walk_in(client, test_department.id)
        walk_in(client, other_department.id)
        client.post(f"/api/v1/departments/{test_department.id}/queue/call-next")
        client.post(f"/api/v1/departments/{other_department.id}/queue/call-next")

        board = client.get("/api/v1/display/now-serving").json()
        assert {(e["department_name"], e["ticket_number"]) for e in board["serving"]} == {
            ("Health Office", "H-001"), ("Permits Office", "P-001")
        }

        only_health = client.get("/api/v1/display/now-serving", params={"department_id": test_department.id}).json()
        assert [e["ticket_number"] for e in only_health["serving"]] == ["H-001"]

    def test_stream_stats(self, client):
        response = client.get("/api/v1/notifications/stream/stats")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["total_connections"] == 0


@pytest.mark.unit
class TestQueueStreamEndpoint:
    """Tests for opening a department's SSE stream"""

    @pytest.fixture
    def opened_sessions(self, session_factory, monkeypatch):
        sessions = []

        def tracking_factory():
            session = session_factory()
            sessions.append(session)
            return session

        monkeypatch.setattr(notifications, "SessionLocal", tracking_factory)
        return sessions

    def test_stream_for_missing_department(self, client, opened_sessions):
        response = client.get("/api/v1/departments/999/queue/stream")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == "not_found"
        assert not opened_sessions[0].in_transaction()

    def test_session_released_before_streaming(self, test_department, opened_sessions):
        response = asyncio.run(notifications.queue_stream(test_department.id))

        assert isinstance(response, EventSourceResponse)
        assert len(opened_sessions) == 1
        assert not opened_sessions[0].in_transaction()

    def test_stream_route_takes_no_request_session(self):
        route = next(
            r for r in app.routes
            if getattr(r, "path", None) == "/api/v1/departments/{department_id}/queue/stream"
        )

        assert get_db not in [dependency.call for dependency in route.dependant.dependencies]
