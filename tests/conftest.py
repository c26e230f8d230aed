import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BOT_DETECTION_ENABLED"] = "false"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["BASE_URL"] = "https://mall.test"
for var in (
    "RESEND_API_KEY",
    "GEMINI_API_KEY",
    "ALIGO_API_KEY",
    "SMS_ENCRYPTION_KEY",
    "GOOGLE_SERVICE_ACCOUNT_EMAIL",
    "GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY",
    "GOOGLE_SALES_SPREADSHEET_ID",
    "GOOGLE_DRIVE_BACKUP_FOLDER_ID",
    "GOOGLE_BACKUP_SPREADSHEET_IDS",
    "REDIS_URL",
):
    os.environ[var] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from cruisemall.config import SESSION_COOKIE_NAME  # noqa: E402
from cruisemall.database import Base, engine, get_db, SessionLocal  # noqa: E402
from cruisemall.main import app  # noqa: E402
from cruisemall.models import AffiliateProfile, AffiliateRelation, User  # noqa: E402
from cruisemall.security_utils import create_session_token  # noqa: E402


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


_counter = {"n": 0}


def _next() -> int:
    _counter["n"] += 1
    return _counter["n"]


@pytest.fixture()
def make_user(db):
    def _make(role: str = "user", phone: str = None, **kwargs) -> User:
        n = _next()
        user = User(
            username=kwargs.pop("username", f"user{n}"),
            name=kwargs.pop("name", f"고객{n}"),
            email=kwargs.pop("email", f"user{n}@example.com"),
            phone=phone,
            role=role,
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_profile(db, make_user):
    def _make(profile_type: str, manager: AffiliateProfile = None, **kwargs) -> AffiliateProfile:
        user = kwargs.pop("user", None) or make_user(role="partner", phone=kwargs.pop("user_phone", None))
        profile = AffiliateProfile(
            user_id=user.id,
            type=profile_type,
            affiliate_code=kwargs.pop("affiliate_code", f"AF{_next():06d}"),
            display_name=kwargs.pop("display_name", f"{profile_type} {user.id}"),
            status=kwargs.pop("status", "ACTIVE"),
            **kwargs,
        )
        db.add(profile)
        db.commit()
        if manager is not None:
            db.add(AffiliateRelation(manager_id=manager.id, agent_id=profile.id, status="ACTIVE"))
            db.commit()
        db.refresh(profile)
        return profile

    return _make


@pytest.fixture()
def login(client):
    def _login(user: User) -> TestClient:
        client.cookies.set(SESSION_COOKIE_NAME, create_session_token(user.id))
        return client

    return _login
