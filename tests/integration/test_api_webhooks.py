"""Integration tests for the appointment and Paystack webhook endpoints."""

import json
from datetime import date

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_notification_sender, get_snapshot_store, get_store
from api.main import app
from api.middleware.signature_validation import compute_paystack_signature
from booking.state.snapshot_store import InMemorySnapshotStore
from database.models import AppointmentStatus, BlackoutRange
from tests.conftest import ADMIN_EMAIL, InMemoryAppointmentStore, RecordingSender, lagos

SECRET = "sk_test_webhook_secret"
ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}


@pytest.fixture
def api_store() -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore()


@pytest.fixture
def api_sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def client(api_store, api_sender):
    snapshots = InMemorySnapshotStore()
    app.dependency_overrides[get_store] = lambda: api_store
    app.dependency_overrides[get_snapshot_store] = lambda: snapshots
    app.dependency_overrides[get_notification_sender] = lambda: api_sender
    yield TestClient(app)
    app.dependency_overrides.clear()


def _post_webhook(client: TestClient, payload: dict, signature: str | None = None):
    body = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json"}
    headers["x-paystack-signature"] = (
        signature if signature is not None else compute_paystack_signature(body, SECRET)
    )
    return client.post("/appointments/paystack-webhook", content=body, headers=headers)


def _charge_success(reference: str = "ref_test_1", **metadata) -> dict:
    return {
        "event": "charge.success",
        "data": {
            "reference": reference,
            "amount": 500000,
            "customer": {"email": "ada@example.com"},
            "metadata": metadata,
        },
    }


class TestPaystackWebhook:
    """Integration tests for POST /appointments/paystack-webhook."""

    def test_pending_appointment_confirmed_once_across_redelivery(
        self, client, api_store, api_sender
    ):
        """Test confirm, record and notify once; redelivery changes nothing."""
        appointment = api_store.add_appointment(lagos(2025, 3, 14, 10))
        payload = _charge_success(appointment_id=str(appointment.id))

        response = _post_webhook(client, payload)

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        assert appointment.status is AppointmentStatus.CONFIRMED
        assert len(api_store.payments) == 1
        assert len(api_sender.to("ada@example.com")) == 1
        assert len(api_sender.to(ADMIN_EMAIL)) == 1

        redelivery = _post_webhook(client, payload)

        assert redelivery.status_code == 200
        assert redelivery.json()["status"] == "already_confirmed"
        assert len(api_store.payments) == 1
        assert len(api_sender.sent) == 2

    def test_invalid_signature_returns_401_without_side_effects(self, client, api_store):
        appointment = api_store.add_appointment(lagos(2025, 3, 14, 10))

        response = _post_webhook(
            client, _charge_success(appointment_id=str(appointment.id)), signature="bad"
        )

        assert response.status_code == 401
        assert appointment.status is AppointmentStatus.PENDING
        assert api_store.payments == {}

    def test_missing_signature_returns_401(self, client):
        response = client.post(
            "/appointments/paystack-webhook",
            content=json.dumps(_charge_success()).encode(),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 401

    def test_non_ascii_signature_returns_401(self, client, api_store):
        appointment = api_store.add_appointment(lagos(2025, 3, 14, 10))
        body = json.dumps(_charge_success(appointment_id=str(appointment.id))).encode()

        response = client.post(
            "/appointments/paystack-webhook",
            content=body,
            headers={"x-paystack-signature": b"\xe9abc"},
        )

        assert response.status_code == 401
        assert appointment.status is AppointmentStatus.PENDING
        assert api_store.payments == {}

    def test_malformed_metadata_datetime_does_not_drop_charge(self, client, api_store):
        """Test that a bad optional metadata value still confirms and records."""
        appointment = api_store.add_appointment(lagos(2025, 3, 14, 10))

        response = _post_webhook(
            client,
            _charge_success(appointment_id=str(appointment.id), appointment_datetime="not-a-date"),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        assert appointment.status is AppointmentStatus.CONFIRMED
        assert api_store.payments["ref_test_1"].appointment_id == appointment.id

    def test_other_event_is_ignored(self, client, api_store):
        response = _post_webhook(client, {"event": "transfer.success", "data": {}})

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert api_store.calls == []

    def test_unparseable_body_is_ignored(self, client, api_store):
        body = b"not json at all"
        response = client.post(
            "/appointments/paystack-webhook",
            content=body,
            headers={"x-paystack-signature": compute_paystack_signature(body, SECRET)},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_store_failure_returns_503(self, client, api_store):
        appointment = api_store.add_appointment(lagos(2025, 3, 14, 10))
        api_store.fail_on.add("update_appointment")

        response = _post_webhook(client, _charge_success(appointment_id=str(appointment.id)))

        assert response.status_code == 503

    def test_ledger_failure_still_returns_200(self, client, api_store):
        appointment = api_store.add_appointment(lagos(2025, 3, 14, 10))
        api_store.fail_on.add("create_payment")

        response = _post_webhook(client, _charge_success(appointment_id=str(appointment.id)))

        assert response.status_code == 200
        assert appointment.status is AppointmentStatus.CONFIRMED

    def test_recovery_creates_confirmed_appointment(self, client, api_store, api_sender):
        service = api_store.add_service()
        payload = _charge_success(
            name="Ada Obi",
            phone="08012345678",
            appointment_datetime="2025-03-14T10:00:00+01:00",
            service_ids=[str(service.id)],
        )

        response = _post_webhook(client, payload)
        repeat = _post_webhook(client, payload)

        assert response.json()["status"] == "recovered"
        assert repeat.json()["status"] == "recovery_reused"
        [appointment] = api_store.appointments.values()
        assert appointment.status is AppointmentStatus.CONFIRMED
        assert appointment.client_email == "ada@example.com"
        assert len(api_store.payments) == 1
        assert len(api_sender.to("ada@example.com")) == 1

    def test_unrouted_payment_is_acknowledged(self, client, api_store):
        response = _post_webhook(client, _charge_success())

        assert response.status_code == 200
        assert response.json()["status"] == "unrouted"
        assert api_store.payments["ref_test_1"].appointment_id is None


class TestBookedSlots:
    """Integration tests for GET /appointments/booked-slots."""

    def test_appointment_and_break(self, client, api_store):
        api_store.add_appointment(lagos(2025, 3, 14, 10), AppointmentStatus.CONFIRMED)
        api_store.blackouts.append(
            BlackoutRange(date=date(2025, 3, 14), is_full_day=False, start_time="12:00", end_time="13:00")
        )

        response = client.get("/appointments/booked-slots", params={"date": "2025-03-14"})

        assert response.status_code == 200
        assert response.json() == {"data": ["10:00", "12:00", "12:30"]}

    def test_empty_day(self, client):
        response = client.get("/appointments/booked-slots", params={"date": "2025-03-14"})

        assert response.json() == {"data": []}

    def test_invalid_blackout_returns_422(self, client, api_store):
        api_store.blackouts.append(
            BlackoutRange(date=date(2025, 3, 14), is_full_day=False, start_time="15:00", end_time="14:00")
        )

        response = client.get("/appointments/booked-slots", params={"date": "2025-03-14"})

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidConfiguration"

    def test_missing_date_is_rejected(self, client):
        response = client.get("/appointments/booked-slots")

        assert response.status_code == 422


class TestAppointmentRoutes:
    """Integration tests for client creation and admin edits."""

    def _create_body(self, service_id, start="2025-03-14T10:00:00"):
        return {
            "client_name": "Ada Obi",
            "client_email": "Ada@Example.com",
            "client_phone": "08012345678",
            "start_time": start,
            "service_ids": [str(service_id)],
        }

    def test_create_is_idempotent_on_natural_key(self, client, api_store, api_sender):
        service = api_store.add_service()

        first = client.post("/appointments", json=self._create_body(service.id))
        second = client.post("/appointments", json=self._create_body(service.id))

        assert first.status_code == 201
        assert first.json()["data"]["status"] == "pending"
        assert first.json()["data"]["published"] is False
        assert second.status_code == 200
        assert second.json()["created"] is False
        assert second.json()["data"]["id"] == first.json()["data"]["id"]
        assert api_sender.sent == []

    def test_create_in_occupied_slot_returns_409(self, client, api_store):
        service = api_store.add_service()
        api_store.add_appointment(lagos(2025, 3, 14, 10), client_email="other@example.com")

        response = client.post("/appointments", json=self._create_body(service.id))

        assert response.status_code == 409

    def test_create_with_unknown_service_returns_404(self, client, api_store):
        from uuid import uuid4

        response = client.post("/appointments", json=self._create_body(uuid4()))

        assert response.status_code == 404

    def test_admin_routes_require_token(self, client, api_store):
        appointment = api_store.add_appointment(lagos(2025, 3, 14, 10))

        assert client.get(f"/appointments/{appointment.id}").status_code == 401
        assert (
            client.get(
                f"/appointments/{appointment.id}", headers={"X-Admin-Token": "wrong"}
            ).status_code
            == 401
        )
        assert (
            client.get(f"/appointments/{appointment.id}", headers=ADMIN_HEADERS).status_code
            == 200
        )

    def test_admin_reschedule_notifies_once(self, client, api_store, api_sender):
        appointment = api_store.add_appointment(
            lagos(2025, 3, 14, 10), AppointmentStatus.CONFIRMED, published=True
        )

        response = client.patch(
            f"/appointments/{appointment.id}",
            json={"start_time": "2025-03-15T11:00:00+01:00", "status": "confirmed"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert appointment.start_time == lagos(2025, 3, 15, 11)
        assert len(api_sender.to("ada@example.com")) == 1
        assert "Rescheduled" in api_sender.to("ada@example.com")[0][1]

    def test_admin_invalid_transition_returns_400(self, client, api_store):
        appointment = api_store.add_appointment(lagos(2025, 3, 14, 10), AppointmentStatus.CANCELLED)

        response = client.patch(
            f"/appointments/{appointment.id}",
            json={"status": "confirmed"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 400

    def test_publish_does_not_notify(self, client, api_store, api_sender):
        appointment = api_store.add_appointment(lagos(2025, 3, 14, 10), AppointmentStatus.CONFIRMED)

        response = client.post(f"/appointments/{appointment.id}/publish", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["published"] is True
        assert api_sender.sent == []

    def test_unknown_appointment_returns_404(self, client):
        from uuid import uuid4

        response = client.get(f"/appointments/{uuid4()}", headers=ADMIN_HEADERS)

        assert response.status_code == 404
