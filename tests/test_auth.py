import re
from datetime import timedelta

import pytest

from app.models.principal import PrincipalKind
from app.models.teacher import Teacher
from app.models.token import RefreshToken
from app.utils.datetime_utils import utcnow

PASSWORD = "Secret123"


def _otp_from(outbox):
    return re.search(r"code is: (\d{6})", outbox[-1][2]).group(1)


def _login(client, kind, email, password=PASSWORD):
    return client.post(f"/api/auth/{kind}/login", json={"email": email, "password": password})


# =========================
# login
# =========================

@pytest.mark.parametrize("kind", ["admin", "teacher", "student"])
def test_login_sets_both_cookies_and_persists_refresh_row(client, db, make_admin, make_teacher, make_student, kind):
    principal = {"admin": make_admin, "teacher": make_teacher, "student": make_student}[kind]()

    response = _login(client, kind, principal.email)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["id"] == principal.id
    assert body["data"]["user_type"] == kind

    assert response.cookies.get("accessToken")
    refresh = response.cookies.get("refreshToken")
    set_cookies = response.headers.get_list("set-cookie")
    assert all("HttpOnly" in c for c in set_cookies)
    assert all("samesite=strict" in c.lower() for c in set_cookies)

    row = db.query(RefreshToken).filter_by(token=refresh).one()
    assert getattr(row, f"{kind}_id") == principal.id
    assert abs((row.expires_at - utcnow()) - timedelta(days=7)) < timedelta(minutes=1)


def test_login_wrong_password_and_unknown_email_share_message(client, make_teacher):
    teacher = make_teacher()

    wrong = _login(client, "teacher", teacher.email, "Wrong123")
    unknown = _login(client, "teacher", "nobody@millat.edu")

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json()["message"] == unknown.json()["message"] == "Invalid credentials"


def test_banned_teacher_gets_distinct_message_only_with_right_password(client, make_teacher):
    teacher = make_teacher(is_banned=True)

    response = _login(client, "teacher", teacher.email)
    assert response.status_code == 403
    assert "banned" in response.json()["message"]

    response = _login(client, "teacher", teacher.email, "Wrong123")
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


def test_deactivated_admin_cannot_login(client, make_admin):
    admin = make_admin(is_active=False)
    response = _login(client, "admin", admin.email)
    assert response.status_code == 403
    assert response.json()["message"] == "Your account has been deactivated"


def test_login_validation_error_shape(client):
    response = client.post("/api/auth/student/login", json={"email": "not-an-email", "password": "x"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "email" in body["errors"]


# =========================
# current principal
# =========================

def test_me_returns_profile(client, make_student):
    student = make_student()
    _login(client, "student", student.email)

    response = client.get("/api/auth/student/me")

    assert response.status_code == 200
    assert response.json()["data"]["enrollment_no"] == student.enrollment_no


def test_me_without_cookie(client):
    response = client.get("/api/auth/teacher/me")
    assert response.status_code == 401
    assert response.json()["message"] == "Not authorized, no token"


def test_me_with_wrong_kind(client, make_student, auth_headers):
    student = make_student()
    response = client.get("/api/auth/teacher/me", headers=auth_headers(student.id, PrincipalKind.STUDENT))
    assert response.status_code == 403
    assert response.json()["message"] == "Not authorized as teacher"


def test_banned_teacher_with_live_token_is_refused(client, db, make_teacher, auth_headers):
    teacher = make_teacher()
    headers = auth_headers(teacher.id, PrincipalKind.TEACHER)
    teacher.is_banned = True
    db.commit()

    response = client.get("/api/auth/teacher/me", headers=headers)
    assert response.status_code == 403
    assert response.json()["message"] == "Your account has been banned"


def test_websocket_token_is_not_an_api_token(client, make_teacher, ws_url):
    teacher = make_teacher()
    token = ws_url(teacher.id, PrincipalKind.TEACHER).split("token=")[1]

    response = client.get("/api/auth/teacher/me", headers={"Cookie": f"accessToken={token}"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token type"


# =========================
# logout
# =========================

def test_logout_deletes_presented_token_and_clears_cookies(client, db, make_teacher):
    teacher = make_teacher()
    first = _login(client, "teacher", teacher.email).cookies.get("refreshToken")
    _login(client, "teacher", teacher.email)

    response = client.post("/api/auth/teacher/logout")

    assert response.status_code == 200
    cleared = response.headers.get_list("set-cookie")
    assert any(c.startswith("accessToken=") for c in cleared)
    assert any(c.startswith("refreshToken=") for c in cleared)
    # only the session whose cookie was presented is gone
    remaining = [t.token for t in db.query(RefreshToken).filter_by(teacher_id=teacher.id)]
    assert remaining == [first]


def test_logout_all_revokes_every_session(client, db, make_student):
    student = make_student()
    _login(client, "student", student.email)
    _login(client, "student", student.email)
    assert db.query(RefreshToken).filter_by(student_id=student.id).count() == 2

    response = client.post("/api/auth/student/logout-all")

    assert response.status_code == 200
    assert db.query(RefreshToken).filter_by(student_id=student.id).count() == 0


# =========================
# admin signup
# =========================

def test_admin_signup_requires_admin(client, make_admin, make_teacher, auth_headers):
    admin = make_admin()
    teacher = make_teacher()
    payload = {"name": "New Admin", "email": "new.admin@millat.edu", "password": "Admin123", "designation": "Registrar"}

    assert client.post("/api/auth/admin/signup", json=payload).status_code == 401
    forbidden = client.post("/api/auth/admin/signup", json=payload,
                            headers=auth_headers(teacher.id, PrincipalKind.TEACHER))
    assert forbidden.status_code == 403

    created = client.post("/api/auth/admin/signup", json=payload,
                          headers=auth_headers(admin.id, PrincipalKind.ADMIN))
    assert created.status_code == 201
    assert created.json()["data"]["designation"] == "Registrar"

    duplicate = client.post("/api/auth/admin/signup", json=payload,
                            headers=auth_headers(admin.id, PrincipalKind.ADMIN))
    assert duplicate.status_code == 400
    assert "email" in duplicate.json()["errors"]


# =========================
# teacher / student registration and OTP
# =========================

TEACHER_SIGNUP = {
    "name": "Amina Rahman",
    "email": "amina@millat.edu",
    "password": "Teach123",
    "qualification": "MSc Computer Science",
    "phone_number": "+8801712345678",
}


def test_teacher_signup_then_verify(client, db, outbox):
    response = client.post("/api/auth/teacher/signup", json=TEACHER_SIGNUP)

    assert response.status_code == 201
    assert response.json()["data"]["is_verified"] is False
    assert response.cookies.get("refreshToken")
    assert outbox[-1][0] == TEACHER_SIGNUP["email"]

    verify = client.post("/api/auth/teacher/verify-otp",
                         json={"email": TEACHER_SIGNUP["email"], "otp": _otp_from(outbox)})
    assert verify.status_code == 200
    teacher = db.query(Teacher).filter_by(email=TEACHER_SIGNUP["email"]).one()
    assert teacher.is_verified is True
    assert teacher.otp is None

    again = client.post("/api/auth/teacher/verify-otp",
                        json={"email": TEACHER_SIGNUP["email"], "otp": "123456"})
    assert again.status_code == 400
    assert again.json()["errors"]["email"] == ["Email is already verified"]


def test_signup_rejects_weak_password(client):
    payload = dict(TEACHER_SIGNUP, password="weakpass")
    response = client.post("/api/auth/teacher/signup", json=payload)
    assert response.status_code == 400
    assert "password" in response.json()["errors"]


def test_student_signup_duplicate(client, make_student):
    student = make_student()
    payload = {"name": "Copy Cat", "email": student.email, "password": "Study123", "enrollment_no": "ENR-9999"}
    response = client.post("/api/auth/student/signup", json=payload)
    assert response.status_code == 400


def test_verify_otp_errors(client, db, outbox):
    client.post("/api/auth/teacher/signup", json=TEACHER_SIGNUP)
    otp = _otp_from(outbox)

    wrong = client.post("/api/auth/teacher/verify-otp", json={"email": TEACHER_SIGNUP["email"], "otp": "000000" if otp != "000000" else "111111"})
    assert wrong.status_code == 400
    assert wrong.json()["errors"]["otp"] == ["Invalid OTP"]

    missing = client.post("/api/auth/teacher/verify-otp", json={"email": "ghost@millat.edu", "otp": otp})
    assert missing.status_code == 404
    assert missing.json()["message"] == "Teacher not found"

    teacher = db.query(Teacher).filter_by(email=TEACHER_SIGNUP["email"]).one()
    teacher.otp_expiry = utcnow() - timedelta(minutes=1)
    db.commit()
    expired = client.post("/api/auth/teacher/verify-otp", json={"email": TEACHER_SIGNUP["email"], "otp": otp})
    assert expired.status_code == 400
    assert expired.json()["errors"]["otp"] == ["OTP has expired"]


def test_resend_otp_waits_for_previous_to_expire(client, db, outbox):
    client.post("/api/auth/teacher/signup", json=TEACHER_SIGNUP)

    blocked = client.post("/api/auth/teacher/resend-otp", json={"email": TEACHER_SIGNUP["email"]})
    assert blocked.status_code == 400
    assert blocked.json()["errors"]["email"] == ["Please wait for the previous OTP to expire"]

    teacher = db.query(Teacher).filter_by(email=TEACHER_SIGNUP["email"]).one()
    teacher.otp_expiry = utcnow() - timedelta(seconds=1)
    db.commit()

    resent = client.post("/api/auth/teacher/resend-otp", json={"email": TEACHER_SIGNUP["email"]})
    assert resent.status_code == 200
    assert len(outbox) == 2


def test_password_reset_revokes_sessions(client, db, make_student, outbox):
    student = make_student()
    _login(client, "student", student.email)
    assert db.query(RefreshToken).filter_by(student_id=student.id).count() == 1

    forgot = client.post("/api/auth/student/forgot-password", json={"email": student.email})
    assert forgot.status_code == 200
    assert "Reset Password" in outbox[-1][1]

    reset = client.post("/api/auth/student/reset-password", json={
        "email": student.email,
        "otp": _otp_from(outbox),
        "new_password": "Fresh456",
    })
    assert reset.status_code == 200
    assert db.query(RefreshToken).filter_by(student_id=student.id).count() == 0

    assert _login(client, "student", student.email).status_code == 401
    assert _login(client, "student", student.email, "Fresh456").status_code == 200


def test_unknown_route_is_enveloped(client):
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Not Found - /api/nowhere"}


# =========================
# cookies and error envelope
# =========================

def _cookie_header(response, name):
    return next(c for c in response.headers.get_list("set-cookie") if c.startswith(f"{name}="))


def test_cookie_lifetimes_match_their_tokens(client, make_teacher):
    response = _login(client, "teacher", make_teacher().email)

    assert "Max-Age=900" in _cookie_header(response, "accessToken")
    assert "Max-Age=604800" in _cookie_header(response, "refreshToken")
    # local runs keep cookies usable over plain http
    assert "; secure" not in _cookie_header(response, "accessToken").lower()


def test_logout_expires_both_cookies_with_same_attributes(client, make_student):
    _login(client, "student", make_student().email)

    response = client.post("/api/auth/student/logout")

    for name in ("accessToken", "refreshToken"):
        header = _cookie_header(response, name).lower()
        assert "max-age=0" in header
        assert "httponly" in header
        assert "samesite=strict" in header


@pytest.fixture
def production(monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "APP_ENV", "production")


def test_cookies_are_secure_in_production(client, make_teacher, production):
    response = _login(client, "teacher", make_teacher().email)

    assert response.status_code == 200
    assert "; secure" in _cookie_header(response, "accessToken").lower()
    assert "; secure" in _cookie_header(response, "refreshToken").lower()


def _failing_listing(monkeypatch):
    from app.services import conversation_service

    def explode(*args, **kwargs):
        raise RuntimeError("connection pool exhausted")

    monkeypatch.setattr(conversation_service, "list_conversations", explode)


def test_unhandled_error_is_hidden_in_production(make_teacher, auth_headers, monkeypatch, production):
    from fastapi.testclient import TestClient

    from app.main import app

    teacher = make_teacher()
    _failing_listing(monkeypatch)

    with TestClient(app, raise_server_exceptions=False) as c:
        response = c.get("/api/conversations/teacher/", headers=auth_headers(teacher.id, PrincipalKind.TEACHER))

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Internal server error"
    assert "stack" not in body


def test_unhandled_error_is_detailed_in_development(make_teacher, auth_headers, monkeypatch):
    from fastapi.testclient import TestClient

    from app.main import app

    teacher = make_teacher()
    _failing_listing(monkeypatch)

    with TestClient(app, raise_server_exceptions=False) as c:
        response = c.get("/api/conversations/teacher/", headers=auth_headers(teacher.id, PrincipalKind.TEACHER))

    assert response.status_code == 500
    assert response.json()["message"] == "connection pool exhausted"
    assert "RuntimeError" in response.json()["stack"]


def test_profile_schema_reads_attributes():
    from app.schemas.auth import PrincipalProfile

    row = type("Row", (), {"id": "t-1", "name": "Amina", "email": "amina@millat.edu", "user_type": "teacher"})()

    profile = PrincipalProfile.model_validate(row)

    assert profile.id == "t-1"
    assert profile.user_type == PrincipalKind.TEACHER
