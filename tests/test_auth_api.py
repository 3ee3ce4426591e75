# tests/test_auth_api.py
import pytest

from physio_backend.errors import UpstreamFailure
from physio_backend.models import User
from physio_backend.routes import auth as auth_routes
from physio_backend.security_utils import verify_password

REGISTER_PAYLOAD = {
    "name": "Asha Patel",
    "email": "Asha@Example.com",
    "password": "supersecret1",
    "phone": "9876543210",
    "role": "patient",
}


@pytest.fixture
def mailbox(monkeypatch):
    """Captures the account emails the auth routes send inline"""
    sent = {"verification": [], "reset": []}

    async def fake_verification(to, name, token):
        sent["verification"].append((to, token))
        return {"id": "verify"}

    async def fake_reset(to, name, token):
        sent["reset"].append((to, token))
        return {"id": "reset"}

    monkeypatch.setattr(auth_routes, "send_verification_email", fake_verification)
    monkeypatch.setattr(auth_routes, "send_password_reset_email", fake_reset)
    return sent


def register(client, **overrides):
    return client.post("/auth/register", json={**REGISTER_PAYLOAD, **overrides})


def test_register_verify_login_flow(client, db, mailbox, outbox):
    response = register(client)
    assert response.status_code == 201
    user_data = response.json()["data"]["user"]
    assert user_data["email"] == "asha@example.com"
    assert user_data["isEmailVerified"] is False

    login = client.post("/auth/login", json={"email": "asha@example.com", "password": "supersecret1"})
    assert login.status_code == 401
    assert login.json()["message"] == "Please verify your email before logging in."

    to, token = mailbox["verification"][0]
    assert to == "asha@example.com"
    verified = client.get(f"/auth/verify-email/{token}")
    assert verified.status_code == 200
    assert [t for t, _, _ in outbox] == ["welcome"]

    # Verification links are single use
    assert client.get(f"/auth/verify-email/{token}").status_code == 400

    login = client.post("/auth/login", json={"email": "ASHA@example.com", "password": "supersecret1"})
    assert login.status_code == 200
    body = login.json()
    assert body["token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["user"]["email"] == "asha@example.com"
    assert db.query(User).filter(User.email == "asha@example.com").one().last_login is not None


def test_register_duplicate_email(client, mailbox):
    assert register(client).status_code == 201

    duplicate = register(client, email="asha@example.com")

    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "User with this email already exists"


@pytest.mark.parametrize(
    "overrides",
    [
        {"phone": "12345"},
        {"password": "short"},
        {"name": "A"},
        {"role": "admin"},
        {"email": "not-an-email"},
        {"role": "physiotherapist"},
    ],
)
def test_register_validation(client, mailbox, overrides):
    response = register(client, **overrides)

    assert response.status_code == 400
    assert response.json()["status"] == "fail"


def test_register_physiotherapist_starts_pending(client, db, mailbox):
    response = register(
        client,
        email="physio@example.com",
        role="physiotherapist",
        specialization="Orthopaedics",
        experience=8,
        licenseNumber="MH-4411",
    )

    assert response.status_code == 201
    physio = db.query(User).filter(User.email == "physio@example.com").one()
    assert physio.verification_status == "pending"
    assert physio.license_number == "MH-4411"


def test_register_email_failure_is_server_error(client, monkeypatch):
    async def broken(to, name, token):
        raise UpstreamFailure("Email service not configured")

    monkeypatch.setattr(auth_routes, "send_verification_email", broken)

    response = register(client)

    assert response.status_code == 500
    assert response.json() == {
        "status": "error",
        "message": "There was an error sending the email. Please try again later.",
    }


def test_login_wrong_password(client, patient):
    response = client.post("/auth/login", json={"email": patient.email, "password": "wrong-password"})

    assert response.status_code == 401
    assert response.json()["message"] == "Incorrect email or password"


def test_login_blocks_unverified_physio(client, make_user):
    physio = make_user("physiotherapist", verification_status="rejected", rejection_reason="Invalid license")

    response = client.post("/auth/login", json={"email": physio.email, "password": "password123"})

    assert response.status_code == 401
    assert "Invalid license" in response.json()["message"]


def test_login_blocks_deactivated(client, make_user):
    user = make_user("patient", is_active=False)

    response = client.post("/auth/login", json={"email": user.email, "password": "password123"})

    assert response.status_code == 401


def test_resend_verification(client, mailbox, patient):
    assert client.post("/auth/resend-verification", json={"email": "nobody@example.com"}).status_code == 404
    assert client.post("/auth/resend-verification", json={"email": patient.email}).status_code == 400

    register(client)
    response = client.post("/auth/resend-verification", json={"email": "asha@example.com"})
    assert response.status_code == 200
    assert len(mailbox["verification"]) == 2


def test_forgot_and_reset_password(client, db, mailbox, outbox, patient):
    response = client.post("/auth/forgot-password", json={"email": patient.email})
    assert response.status_code == 200
    _, token = mailbox["reset"][0]

    reset = client.put(f"/auth/reset-password/{token}", json={"password": "brand-new-pass"})
    assert reset.status_code == 200
    assert [t for t, _, _ in outbox] == ["password_changed"]

    db.refresh(patient)
    assert verify_password("brand-new-pass", patient.password_hash)

    # The link is bound to the old password hash
    reused = client.put(f"/auth/reset-password/{token}", json={"password": "another-pass-1"})
    assert reused.status_code == 400
    assert reused.json()["message"] == "Token is invalid or has expired"


def test_reset_with_garbage_token(client):
    response = client.put("/auth/reset-password/not-a-token", json={"password": "brand-new-pass"})

    assert response.status_code == 400


def test_forgot_password_unknown_email(client, mailbox):
    assert client.post("/auth/forgot-password", json={"email": "ghost@example.com"}).status_code == 404


def test_update_password(client, auth, db, patient):
    wrong = client.put(
        "/auth/update-password",
        json={"currentPassword": "nope-nope", "newPassword": "newpassword1"},
        headers=auth(patient),
    )
    assert wrong.status_code == 401

    ok = client.put(
        "/auth/update-password",
        json={"currentPassword": "password123", "newPassword": "newpassword1"},
        headers=auth(patient),
    )
    assert ok.status_code == 200
    db.refresh(patient)
    assert verify_password("newpassword1", patient.password_hash)


def test_bad_tokens_are_401(client, make_user):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer abc"}).status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer a.b.c"}).status_code == 401


def test_deactivated_user_token_rejected(client, auth, make_user):
    user = make_user("patient", is_active=False)

    assert client.get("/auth/me", headers=auth(user)).status_code == 401


def test_logout(client):
    assert client.post("/auth/logout").json() == {"status": "success", "message": "Logged out successfully"}
