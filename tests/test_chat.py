# tests/test_chat.py
import pytest

from physio_backend.domain.chat.service import ChatService
from physio_backend.errors import ForbiddenError, InvalidStateError, NotFoundError
from physio_backend.models import ChatThread


@pytest.fixture
def thread(db, patient, physio, make_appointment):
    appointment = make_appointment(patient, physio, status="confirmed")
    return ChatService(db).create_thread(appointment.id, [patient.id, physio.id])


def test_create_thread_is_idempotent(db, patient, physio, thread):
    again = ChatService(db).create_thread(thread.appointment_id, [patient.id, physio.id])

    assert again.id == thread.id
    assert db.query(ChatThread).count() == 1


def test_post_and_page_messages(db, patient, physio, thread):
    service = ChatService(db)
    sent = [
        service.post_message(patient if i % 2 == 0 else physio, thread.id, f"message {i}")
        for i in range(5)
    ]

    latest = service.list_messages(patient, thread.id, limit=2)
    assert [m.content for m in latest] == ["message 3", "message 4"]

    older = service.list_messages(patient, thread.id, before_id=latest[0].id, limit=10)
    assert [m.content for m in older] == ["message 0", "message 1", "message 2"]

    db.refresh(thread)
    assert thread.last_message_content == "message 4"
    assert thread.last_message_sender_id == sent[-1].sender_id


def test_outsider_cannot_read_or_post(db, make_user, thread):
    outsider = make_user("patient")
    service = ChatService(db)

    with pytest.raises(ForbiddenError):
        service.post_message(outsider, thread.id, "hello")
    with pytest.raises(ForbiddenError):
        service.list_messages(outsider, thread.id)
    with pytest.raises(NotFoundError):
        service.list_messages(outsider, 9999)


def test_closed_thread_rejects_messages(db, patient, thread):
    service = ChatService(db)
    service.close_thread(thread.appointment_id)
    db.commit()

    with pytest.raises(InvalidStateError):
        service.post_message(patient, thread.id, "still there?")


def test_chat_routes(client, auth, outbox, patient, physio, make_user, make_appointment):
    appointment = make_appointment(patient, physio)
    client.patch(f"/appointments/{appointment.id}/respond", json={"status": "confirmed"}, headers=auth(physio))

    threads = client.get("/chats", headers=auth(patient)).json()["data"]["chats"]
    assert len(threads) == 1
    thread_id = threads[0]["id"]
    assert threads[0]["appointmentId"] == appointment.id

    posted = client.post(
        f"/chats/{thread_id}/messages", json={"content": "See you at 10"}, headers=auth(physio)
    )
    assert posted.status_code == 201
    assert posted.json()["data"]["message"]["senderId"] == physio.id

    messages = client.get(f"/chats/{thread_id}/messages", headers=auth(patient)).json()
    assert [m["content"] for m in messages["data"]["messages"]] == ["See you at 10"]

    blank = client.post(f"/chats/{thread_id}/messages", json={"content": "   "}, headers=auth(patient))
    assert blank.status_code == 400

    outsider = client.get(f"/chats/{thread_id}/messages", headers=auth(make_user("patient")))
    assert outsider.status_code == 403


def test_cancel_closes_chat(client, auth, outbox, payments, patient, physio, make_appointment):
    appointment = make_appointment(patient, physio)
    client.patch(f"/appointments/{appointment.id}/respond", json={"status": "confirmed"}, headers=auth(physio))
    thread_id = client.get("/chats", headers=auth(patient)).json()["data"]["chats"][0]["id"]

    client.delete(f"/appointments/{appointment.id}", headers=auth(patient))

    response = client.post(f"/chats/{thread_id}/messages", json={"content": "hello"}, headers=auth(patient))
    assert response.status_code == 400
