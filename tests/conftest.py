import os
import tempfile

# must be set before the app (and its engine) is imported
_db_dir = tempfile.mkdtemp(prefix="millat-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["APP_ENV"] = "development"

import pytest
from fastapi.testclient import TestClient

from app.core.security import hash_password
from app.db.models import Base
from app.db.session import SessionLocal, engine
from app.main import app
from app.models.admin import Admin
from app.models.principal import PrincipalKind
from app.models.student import Student
from app.models.teacher import Teacher
from app.services import email_service
from app.services.token_service import ACCESS_COOKIE, create_access_token, create_websocket_token

PASSWORD = "Secret123"


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """ Captured emails as (to, subject, body) """
    sent = []
    monkeypatch.setattr(email_service, "send_email", lambda to, subject, body: sent.append((to, subject, body)))
    return sent


@pytest.fixture
def client():
    # one shared portal so REST handlers and websocket sessions run on the same loop
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_teacher(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = dict(
            name=f"Teacher {counter['n']}",
            email=f"teacher{counter['n']}@millat.edu",
            password=hash_password(PASSWORD),
            qualification="MSc",
            is_verified=True,
        )
        fields.update(overrides)
        teacher = Teacher(**fields)
        db.add(teacher)
        db.commit()
        db.refresh(teacher)
        return teacher

    return _make


@pytest.fixture
def make_student(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = dict(
            name=f"Student {counter['n']}",
            email=f"student{counter['n']}@millat.edu",
            password=hash_password(PASSWORD),
            enrollment_no=f"ENR-{counter['n']:04}",
            is_verified=True,
        )
        fields.update(overrides)
        student = Student(**fields)
        db.add(student)
        db.commit()
        db.refresh(student)
        return student

    return _make


@pytest.fixture
def make_admin(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = dict(
            name=f"Admin {counter['n']}",
            email=f"admin{counter['n']}@millat.edu",
            password=hash_password(PASSWORD),
            is_active=True,
        )
        fields.update(overrides)
        admin = Admin(**fields)
        db.add(admin)
        db.commit()
        db.refresh(admin)
        return admin

    return _make


@pytest.fixture
def auth_headers():
    """ Access cookie sent explicitly, so one client can act as several principals """
    def _headers(principal_id: str, kind: PrincipalKind) -> dict:
        return {"Cookie": f"{ACCESS_COOKIE}={create_access_token(principal_id, kind)}"}

    return _headers


@pytest.fixture
def ws_url():
    def _url(principal_id: str, kind: PrincipalKind) -> str:
        return f"/ws?token={create_websocket_token(principal_id, kind)}"

    return _url
