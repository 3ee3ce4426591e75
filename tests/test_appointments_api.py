# tests/test_appointments_api.py
from datetime import date, timedelta

from physio_backend.errors import PaymentError
from physio_backend.models import Appointment

BOOKING_DATE = (date.today() + timedelta(days=3)).isoformat()


def booking_payload(physio_id: int, start="09:00", end="10:00") -> dict:
    return {
        "physiotherapist": physio_id,
        "appointmentDate": BOOKING_DATE,
        "timeSlot": {"startTime": start, "endTime": end},
        "reason": "Shoulder stiffness for two weeks",
        "amount": {"total": 1000},
        "paymentId": "pay_test_1",
        "consultation": {"type": "home-visit", "address": {"city": "Pune", "zipCode": "411001"}},
    }


def test_patient_books_appointment(client, auth, outbox, patient, physio):
    response = client.post("/appointments", json=booking_payload(physio.id), headers=auth(patient))

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    appointment = body["data"]["appointment"]
    assert appointment["status"] == "pending"
    assert appointment["amount"] == {"total": 1000.0, "platformFee": 200.0, "physiotherapistAmount": 800.0}
    assert appointment["consultation"]["address"]["city"] == "Pune"
    assert appointment["physiotherapist"]["id"] == physio.id
    assert sorted(template for template, _, _ in outbox) == ["appointment_pending", "appointment_request"]


def test_only_patients_can_book(client, auth, physio, make_user):
    other_physio = make_user("physiotherapist")

    response = client.post("/appointments", json=booking_payload(physio.id), headers=auth(other_physio))

    assert response.status_code == 403
    assert response.json()["status"] == "fail"


def test_booking_requires_login(client, physio):
    response = client.post("/appointments", json=booking_payload(physio.id))

    assert response.status_code == 401
    assert response.json()["status"] == "fail"


def test_booking_validation_errors_are_400(client, auth, patient, physio):
    payload = booking_payload(physio.id)
    payload["reason"] = "short"
    payload["timeSlot"]["startTime"] = "9am"

    response = client.post("/appointments", json=payload, headers=auth(patient))

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "fail"
    assert body["message"] == "Validation errors"
    fields = {error["field"] for error in body["errors"]}
    assert "reason" in fields
    assert "timeSlot.startTime" in fields


def test_booking_unverified_physio(client, auth, db, patient, make_user):
    pending_physio = make_user("physiotherapist", verification_status="pending")

    response = client.post("/appointments", json=booking_payload(pending_physio.id), headers=auth(patient))

    assert response.status_code == 400
    assert response.json()["message"] == "This physiotherapist is not yet verified"
    assert db.query(Appointment).count() == 0


def test_double_booking_returns_conflict(client, auth, outbox, patient, physio, make_user):
    first = client.post("/appointments", json=booking_payload(physio.id), headers=auth(patient))
    assert first.status_code == 201

    second = client.post(
        "/appointments", json=booking_payload(physio.id), headers=auth(make_user("patient"))
    )

    assert second.status_code == 409
    assert second.json()["message"] == "This time slot is not available"


def test_reject_refunds_and_emails_patient(client, auth, db, outbox, payments, patient, physio, make_appointment):
    appointment = make_appointment(patient, physio)

    response = client.patch(
        f"/appointments/{appointment.id}/respond",
        json={"status": "rejected", "rejectionReason": "On leave that week"},
        headers=auth(physio),
    )

    assert response.status_code == 200
    assert payments.calls == [appointment.id]
    db.refresh(appointment)
    assert appointment.status == "rejected"
    assert appointment.refund_status == "processed"
    assert appointment.payment_status == "refunded"
    assert appointment.refund_id == f"ref_{appointment.id}"
    assert [t for t, _, _ in outbox] == ["appointment_rejected"]


def test_reject_still_emails_when_refund_fails(client, auth, db, outbox, payments, patient, physio, make_appointment):
    payments.error = PaymentError("gateway down")
    appointment = make_appointment(patient, physio)

    response = client.patch(
        f"/appointments/{appointment.id}/respond",
        json={"status": "rejected", "rejectionReason": "On leave that week"},
        headers=auth(physio),
    )

    assert response.status_code == 200
    assert len(payments.calls) == 3
    db.refresh(appointment)
    assert appointment.status == "rejected"
    assert appointment.refund_status == "failed"
    assert appointment.payment_status == "paid"
    assert [t for t, _, _ in outbox] == ["appointment_rejected"]


def test_second_respond_is_rejected(client, auth, db, outbox, patient, physio, make_appointment):
    appointment = make_appointment(patient, physio)
    url = f"/appointments/{appointment.id}/respond"

    assert client.patch(url, json={"status": "confirmed"}, headers=auth(physio)).status_code == 200
    second = client.patch(
        url, json={"status": "rejected", "rejectionReason": "Too busy"}, headers=auth(physio)
    )

    assert second.status_code == 400
    assert second.json()["message"] == "This appointment has already been responded to"
    db.refresh(appointment)
    assert appointment.status == "confirmed"


def test_unverified_physio_cannot_respond(client, auth, patient, make_user, make_appointment):
    physio = make_user("physiotherapist", verification_status="pending")
    appointment = make_appointment(patient, physio)

    response = client.patch(
        f"/appointments/{appointment.id}/respond", json={"status": "confirmed"}, headers=auth(physio)
    )

    assert response.status_code == 403


def test_full_lifecycle_and_rating(client, auth, db, outbox, patient, make_user, make_appointment):
    physio = make_user("physiotherapist", rating_average=4.0, rating_count=3)
    appointment = make_appointment(patient, physio)
    base = f"/appointments/{appointment.id}"

    assert client.patch(f"{base}/respond", json={"status": "confirmed"}, headers=auth(physio)).status_code == 200
    assert client.patch(f"{base}/status", json={"status": "in-progress"}, headers=auth(physio)).status_code == 200
    assert client.patch(f"{base}/status", json={"status": "completed"}, headers=auth(physio)).status_code == 200

    rated = client.patch(f"{base}/rating", json={"rating": 5, "review": "Great"}, headers=auth(patient))
    assert rated.status_code == 200
    rating = rated.json()["data"]["appointment"]["rating"]["patientRating"]
    assert rating["rating"] == 5 and rating["review"] == "Great"

    again = client.patch(f"{base}/rating", json={"rating": 2}, headers=auth(patient))
    assert again.status_code == 400
    assert again.json()["message"] == "You have already rated this appointment"

    db.refresh(physio)
    assert (physio.rating_average, physio.rating_count) == (4.25, 4)

    cancel = client.delete(base, headers=auth(patient))
    assert cancel.status_code == 400
    assert cancel.json()["message"] == "This appointment cannot be cancelled"


def test_cancel_by_patient(client, auth, db, outbox, payments, patient, physio, make_appointment):
    appointment = make_appointment(patient, physio, status="confirmed")

    response = client.delete(f"/appointments/{appointment.id}", headers=auth(patient))

    assert response.status_code == 200
    assert response.json()["data"]["appointment"]["status"] == "cancelled"
    db.refresh(appointment)
    assert appointment.refund_status == "processed"
    assert outbox[0][0] == "appointment_cancelled"
    assert outbox[0][1] == physio.email


def test_notes_route(client, auth, patient, physio, make_appointment):
    appointment = make_appointment(patient, physio)

    response = client.patch(
        f"/appointments/{appointment.id}/notes", json={"notes": "Gate code 1234"}, headers=auth(patient)
    )

    assert response.status_code == 200
    notes = response.json()["data"]["appointment"]["notes"]
    assert notes["patientNotes"] == "Gate code 1234"
    assert notes["physiotherapistNotes"] is None


def test_listing_routes(client, auth, patient, physio, make_user, make_appointment):
    make_appointment(patient, physio)
    make_appointment(patient, physio, status="confirmed")
    make_appointment(make_user("patient"), physio)

    listed = client.get("/appointments?limit=1", headers=auth(patient)).json()
    assert listed["results"] == 1
    assert listed["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}

    mine = client.get("/appointments/my-appointments?status=confirmed", headers=auth(patient)).json()
    assert [a["status"] for a in mine["data"]["appointments"]] == ["confirmed"]

    requests = client.get("/appointments/physio/requests", headers=auth(physio)).json()
    assert requests["results"] == 2

    assert client.get("/appointments/physio/requests", headers=auth(patient)).status_code == 403


def test_get_appointment_access(client, auth, patient, physio, make_user, make_appointment):
    appointment = make_appointment(patient, physio)

    assert client.get(f"/appointments/{appointment.id}", headers=auth(physio)).status_code == 200
    assert client.get(f"/appointments/{appointment.id}", headers=auth(make_user("patient"))).status_code == 403
    assert client.get("/appointments/9999", headers=auth(patient)).status_code == 404
