import jwt

from auctionhub.config import settings
from auctionhub.utils import email as email_module

from conftest import PASSWORD, auth_headers, signup


def test_signup_returns_token_and_dev_verification_code(client):
    data = signup(client, name="Jane Smith", email="Jane@Example.com")
    assert data["user"]["email"] == "jane@example.com"
    assert data["user"]["isEmailVerified"] is False
    assert "passwordHash" not in data["user"]
    assert len(data["verificationCode"]) == 6 and data["verificationCode"].isdigit()
    payload = jwt.decode(data["token"], settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert payload["user_id"] == data["user"]["id"]


def test_signup_rejects_duplicate_email(client):
    signup(client, email="dup@example.com")
    r = client.post("/api/auth/signup", json={"name": "Other", "email": "DUP@example.com", "password": PASSWORD})
    assert r.status_code == 400
    assert r.json()["message"] == "User already exists with this email"


def test_signup_validation_errors_use_envelope(client):
    r = client.post("/api/auth/signup", json={"name": "X1", "email": "not-an-email", "password": "weak"})
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "VALIDATION_ERROR"
    fields = {e["field"] for e in body["errors"]}
    assert {"name", "email", "password"} <= fields


def test_signin_success_and_failure(client):
    signup(client, email="login@example.com")
    r = client.post("/api/auth/signin", json={"email": "login@example.com", "password": PASSWORD})
    assert r.status_code == 200
    assert r.json()["data"]["token"]

    bad = client.post("/api/auth/signin", json={"email": "login@example.com", "password": "Wrong1234"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid email or password"

    unknown = client.post("/api/auth/signin", json={"email": "nobody@example.com", "password": PASSWORD})
    assert unknown.status_code == 401
    assert unknown.json()["message"] == "Invalid email or password"


def test_verify_email_flow(client):
    data = signup(client, email="verify@example.com")
    wrong = "000000" if data["verificationCode"] != "000000" else "111111"
    r = client.post("/api/auth/verify-email", json={"email": "verify@example.com", "code": wrong})
    assert r.status_code == 400

    r = client.post("/api/auth/verify-email", json={"email": "verify@example.com", "code": data["verificationCode"]})
    assert r.status_code == 200
    assert r.json()["data"]["user"]["isEmailVerified"] is True

    again = client.post("/api/auth/resend-verification", json={"email": "verify@example.com"})
    assert again.status_code == 400
    assert again.json()["message"] == "Email is already verified"


def test_resend_verification_issues_new_code(client):
    signup(client, email="resend@example.com")
    r = client.post("/api/auth/resend-verification", json={"email": "resend@example.com"})
    assert r.status_code == 200
    assert len(r.json()["data"]["verificationCode"]) == 6

    missing = client.post("/api/auth/resend-verification", json={"email": "ghost@example.com"})
    assert missing.status_code == 404


def test_profile_requires_token(client):
    r = client.get("/api/auth/profile")
    assert r.status_code == 401
    assert r.json()["message"] == "Access token is required"

    r = client.get("/api/auth/profile", headers=auth_headers("garbage"))
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token"


def test_profile_get_and_update(client):
    data = signup(client, email="profile@example.com")
    headers = auth_headers(data["token"])
    r = client.put("/api/auth/profile", json={"bio": "Selling textbooks", "phone": "+61 400 000 000"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["user"]["bio"] == "Selling textbooks"

    r = client.get("/api/auth/profile", headers=headers)
    assert r.json()["data"]["user"]["phone"] == "+61 400 000 000"

    too_long = client.put("/api/auth/profile", json={"bio": "x" * 201}, headers=headers)
    assert too_long.status_code == 400


def test_signup_sends_email_when_provider_configured(client, monkeypatch):
    sent = []

    class FakeResponse:
        status_code = 200

    def fake_post(url, headers=None, json=None, timeout=None):
        sent.append((url, json))
        return FakeResponse()

    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(email_module.requests, "post", fake_post)
    r = client.post("/api/auth/signup", json={"name": "Mail User", "email": "mail@example.com", "password": PASSWORD})
    assert r.status_code == 201
    assert "verificationCode" not in r.json()["data"]
    assert sent and sent[0][0] == email_module.RESEND_URL
    assert sent[0][1]["to"] == ["mail@example.com"]


def test_provider_failure_never_exposes_verification_code(client, monkeypatch):
    class RejectedResponse:
        status_code = 500

    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(email_module.requests, "post", lambda *args, **kwargs: RejectedResponse())

    r = client.post("/api/auth/signup", json={"name": "Down Mail", "email": "down@example.com", "password": PASSWORD})
    assert r.status_code == 201
    assert "verificationCode" not in r.json()["data"]

    resend = client.post("/api/auth/resend-verification", json={"email": "down@example.com"})
    assert resend.status_code == 200
    assert "data" not in resend.json()


def test_profile_name_must_be_letters_only(client):
    data = signup(client, email="markup@example.com")
    r = client.put("/api/auth/profile", json={"name": "<b>Boss</b>"}, headers=auth_headers(data["token"]))
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "name"

    ok = client.put("/api/auth/profile", json={"name": "New Name"}, headers=auth_headers(data["token"]))
    assert ok.json()["data"]["user"]["name"] == "New Name"
