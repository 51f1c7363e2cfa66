"""
End-to-end tests for the /auth and /users endpoints.
"""

import uuid

from models.users_models import User
from services.session_service import LOGIN_FLAG_COOKIE_NAME, SESSION_COOKIE_NAME

REGISTRATION = {
    "email": "a@x.com",
    "username": "alice",
    "phoneNumber": "5551234567",
    "verificationMethod": "email",
}


def register_and_verify(client, email):
    client.post("/auth/register", json=REGISTRATION)
    return client.post("/auth/verify", json={"identifier": "a@x.com", "code": email.last_code()})


class TestRegisterEndpoint:

    def test_created(self, client, email):
        response = client.post("/auth/register", json=REGISTRATION)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["identifier"] == "a@x.com"
        assert body["phoneNumber"] == "+15551234567"
        assert body["method"] == "email"
        assert len(email.sent) == 1

    def test_missing_fields(self, client):
        response = client.post("/auth/register", json={"email": "a@x.com"})

        assert response.status_code == 400
        assert response.json() == {"error": "Email, username, and phone number are required"}

    def test_duplicate(self, client):
        client.post("/auth/register", json=REGISTRATION)

        response = client.post("/auth/register", json=REGISTRATION)

        assert response.status_code == 409
        assert response.json() == {"error": "Email is already taken"}

    def test_provider_failure(self, client, sms):
        sms.start_error = "Invalid phone number"

        response = client.post("/auth/register", json={**REGISTRATION, "verificationMethod": "phone"})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to send verification code: Invalid phone number"}


class TestVerifyEndpoint:

    def test_sets_session_cookies(self, client, email):
        response = register_and_verify(client, email)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["user"]["verifiedEmail"] is True
        assert body["user"]["username"] == "alice"
        assert response.cookies.get(SESSION_COOKIE_NAME)
        assert response.cookies.get(LOGIN_FLAG_COOKIE_NAME) == "true"
        set_cookie = " ".join(response.headers.get_list("set-cookie")).lower()
        assert "httponly" in set_cookie
        assert "max-age=2592000" in set_cookie
        assert "max-age=60" in set_cookie

    def test_no_pending_verification(self, client):
        response = client.post("/auth/verify", json={"identifier": "+19998887777", "code": "123456"})

        assert response.status_code == 400
        assert response.json() == {"error": "No pending verification found or verification expired"}
        assert SESSION_COOKIE_NAME not in response.cookies

    def test_wrong_code(self, client):
        client.post("/auth/register", json=REGISTRATION)

        response = client.post("/auth/verify", json={"identifier": "a@x.com", "code": "000000"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid verification code"}

    def test_missing_code(self, client):
        response = client.post("/auth/verify", json={"identifier": "a@x.com"})

        assert response.status_code == 400


class TestSendOtpEndpoint:

    def test_phone(self, client, sms):
        client.post("/auth/register", json=REGISTRATION)

        response = client.post("/auth/send-otp", json={"identifier": "(555) 123-4567", "method": "phone"})

        assert response.status_code == 200
        assert response.json()["identifier"] == "+15551234567"
        assert response.json()["method"] == "phone"
        assert sms.started == [("+15551234567", "sms")]

    def test_unknown_account(self, client):
        response = client.post("/auth/send-otp", json={"identifier": "nobody@x.com", "method": "email"})

        assert response.status_code == 404
        assert response.json() == {"error": "No account found with this information"}


class TestSession:

    def test_session_and_profile_after_login(self, client, email):
        user_id = register_and_verify(client, email).json()["user"]["id"]

        session = client.get("/auth/session").json()
        me = client.get("/users/me")

        assert session["user"]["id"] == user_id
        assert session["user"]["phoneNumber"] == "+15551234567"
        assert me.status_code == 200
        assert me.json()["username"] == "alice"

    def test_signed_out(self, client):
        assert client.get("/auth/session").json() == {}
        response = client.get("/users/me")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_signout_revokes_token(self, client, email):
        register_and_verify(client, email)
        raw = client.cookies.get(SESSION_COOKIE_NAME)

        response = client.post("/auth/signout")

        assert response.status_code == 200
        assert client.get("/auth/session").json() == {}
        client.cookies.set(SESSION_COOKIE_NAME, raw)
        replay = client.get("/users/me")
        assert replay.status_code == 401
        assert replay.json() == {"error": "Session revoked"}

    def test_forged_cookie(self, client):
        client.cookies.set(SESSION_COOKIE_NAME, '{"id": "x", "sub": "x"}')

        assert client.get("/auth/session").json() == {}
        assert client.get("/users/me").status_code == 401


class TestCredentialsSignIn:

    def test_otp_callback(self, client, sms):
        client.post("/auth/register", json={**REGISTRATION, "verificationMethod": "phone"})

        response = client.post("/auth/callback/otp", json={"identifier": "(555) 123-4567", "otp": "123456"})

        assert response.status_code == 200
        assert response.json()["user"]["username"] == "alice"
        assert response.cookies.get(SESSION_COOKIE_NAME)
        assert sms.checked == [("+15551234567", "123456")]

    def test_bad_otp(self, client):
        client.post("/auth/register", json={**REGISTRATION, "verificationMethod": "phone"})

        response = client.post("/auth/callback/otp", json={"identifier": "5551234567", "otp": "999999"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials"}

    def test_missing_credentials(self, client):
        response = client.post("/auth/callback/otp", json={"identifier": "a@x.com"})

        assert response.status_code == 401


class TestDirectLogin:

    def test_verified_user(self, client, email):
        user_id = register_and_verify(client, email).json()["user"]["id"]
        client.cookies.clear()

        response = client.post("/auth/direct-login", json={"userId": user_id})

        assert response.status_code == 200
        assert response.json()["user"] == {
            "id": user_id,
            "email": "a@x.com",
            "username": "alice",
            "profileImageUrl": None,
        }
        assert response.cookies.get(SESSION_COOKIE_NAME)
        assert client.get("/auth/session").json()["user"]["id"] == user_id

    def test_unverified_user(self, client, db):
        client.post("/auth/register", json=REGISTRATION)
        user = db.query(User).filter_by(email="a@x.com").one()

        response = client.post("/auth/direct-login", json={"userId": str(user.id)})

        assert response.status_code == 403
        assert response.json() == {"error": "User is not verified"}
        assert SESSION_COOKIE_NAME not in response.cookies

    def test_malformed_user_id(self, client):
        response = client.post("/auth/direct-login", json={"userId": "not-a-uuid"})

        assert response.status_code == 404

    def test_missing_user_id(self, client):
        response = client.post("/auth/direct-login", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "User ID is required"}

    def test_unknown_user(self, client):
        response = client.post("/auth/direct-login", json={"userId": str(uuid.uuid4())})

        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}


class TestPublicProfile:

    def test_profile(self, client, email):
        user_id = register_and_verify(client, email).json()["user"]["id"]

        response = client.get(f"/users/{user_id}")

        assert response.status_code == 200
        assert set(response.json()) == {"id", "email", "username", "profileImageUrl"}

    def test_unknown(self, client):
        response = client.get(f"/users/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}
