from cruisemall.config import SESSION_COOKIE_NAME
from cruisemall.models import User
from cruisemall.routes import auth as auth_routes


def signup_payload(**overrides):
    payload = {
        "nickname": "크루즈러버",
        "name": "김철수",
        "phone": "010-1234-5678",
        "username": "cruiser",
        "email": "cruiser@example.com",
        "password": "secret123",
    }
    payload.update(overrides)
    return payload


def test_signup_creates_community_member(client, db):
    resp = client.post("/api/auth/signup", json=signup_payload())
    assert resp.status_code == 201
    data = resp.json()
    assert data["ok"] is True

    user = db.query(User).filter(User.username == "cruiser").one()
    assert user.role == "community"
    assert user.customer_source == "mall-signup"
    assert user.onboarded is False
    assert user.phone == "01012345678"
    assert user.password_hash != "secret123"


def test_signup_rejects_missing_and_short_fields(client):
    assert client.post("/api/auth/signup", json=signup_payload(email=None)).status_code == 400
    assert client.post("/api/auth/signup", json=signup_payload(username="abc")).status_code == 400
    assert client.post("/api/auth/signup", json=signup_payload(password="12345")).status_code == 400
    assert client.post("/api/auth/signup", json=signup_payload(email="nope")).status_code == 400


def test_duplicate_username_returns_suggestions(client, make_user):
    make_user(role="community", username="cruiser", customer_source="mall-signup")
    make_user(role="community", username="cruiser1", customer_source="mall-signup")

    resp = client.post("/api/auth/signup", json=signup_payload(email="other@example.com"))
    assert resp.status_code == 409
    data = resp.json()
    assert data["ok"] is False
    assert data["field"] == "username"
    assert data["suggestions"][:2] == ["cruiser2", "cruiser3"]
    assert len(data["suggestions"]) == 3


def test_legacy_username_stored_in_phone_is_a_duplicate(client, make_user):
    make_user(role="community", username=None, phone="cruiser", customer_source="mall-signup")

    resp = client.post("/api/auth/signup", json=signup_payload())
    assert resp.status_code == 409
    assert resp.json()["field"] == "username"


def test_duplicate_nickname_and_email(client, make_user):
    make_user(role="community", username=None, nickname=None, name="크루즈러버", customer_source="mall-signup")
    resp = client.post("/api/auth/signup", json=signup_payload())
    assert resp.status_code == 409
    assert resp.json()["field"] == "nickname"

    make_user(email="taken@example.com")
    resp = client.post("/api/auth/signup", json=signup_payload(nickname="새닉네임", email="taken@example.com"))
    assert resp.status_code == 409
    assert resp.json()["field"] == "email"


def test_duplicate_checks_only_consider_mall_members(client, make_user):
    make_user(role="partner", nickname="크루즈러버", phone="cruiser2")
    make_user(role="user", username=None, name="크루즈러버", phone="cruiser", customer_source="mall-signup")

    resp = client.post("/api/auth/signup", json=signup_payload())
    assert resp.status_code == 201


def test_username_of_non_mall_account_is_still_unique(client, make_user):
    make_user(role="partner", username="cruiser")

    resp = client.post("/api/auth/signup", json=signup_payload())
    assert resp.status_code == 409
    assert resp.json() == {"ok": False, "field": "username", "error": "Account already exists"}


def test_legacy_member_with_other_nickname_still_blocks_name(client, make_user):
    make_user(role="community", username="old_id", nickname="옛닉네임", name="크루즈러버", customer_source="mall-signup")

    resp = client.post("/api/auth/signup", json=signup_payload())
    assert resp.status_code == 409
    assert resp.json()["field"] == "nickname"


def test_build_suggestions_order_skips_taken():
    taken = {"kim1", "kim2", "kim3", "kim4", "kim5", "kim6", "kim7", "kim8", "kim9", "kim10", "kim_1"}
    assert auth_routes.build_suggestions("kim", lambda c: c in taken) == ["kim_2", "kim_3", "kim_4"]


def test_login_sets_session_cookie_and_me(client):
    client.post("/api/auth/signup", json=signup_payload())

    bad = client.post("/api/auth/login", json={"username": "cruiser", "password": "wrong"})
    assert bad.status_code == 401

    resp = client.post("/api/auth/login", json={"username": "cruiser", "password": "secret123"})
    assert resp.status_code == 200
    assert SESSION_COOKIE_NAME in resp.cookies

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["user"]["username"] == "cruiser"


def test_me_requires_session(client):
    assert client.get("/api/auth/me").status_code == 401
