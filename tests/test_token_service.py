from datetime import timedelta

import jwt
import pytest

from app.core.config import settings
from app.core.exceptions import AuthenticationError, TokenPurposeError
from app.models.principal import PrincipalKind
from app.models.token import RefreshToken
from app.services.token_service import (
    WEBSOCKET_PURPOSE,
    create_access_token,
    create_websocket_token,
    decode_access_token,
    delete_refresh_token,
    generate_refresh_token,
    issue_token_pair,
    rotate_refresh_token,
    store_refresh_token,
    verify_refresh_token,
)
from app.utils.datetime_utils import utcnow


def test_refresh_token_is_80_hex_chars():
    token = generate_refresh_token()
    assert len(token) == 80
    int(token, 16)
    assert generate_refresh_token() != token


def test_access_token_claims():
    token = create_access_token("abc", PrincipalKind.TEACHER)
    claims = jwt.decode(token, settings.JWT_ACCESS_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert claims["sub"] == "abc"
    assert claims["user_type"] == "teacher"
    assert "purpose" not in claims
    assert claims["exp"] - claims["iat"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60


def test_websocket_token_lives_longer_and_carries_purpose():
    token = create_websocket_token("abc", PrincipalKind.STUDENT)
    claims = jwt.decode(token, settings.JWT_ACCESS_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert claims["purpose"] == WEBSOCKET_PURPOSE
    assert claims["exp"] - claims["iat"] == settings.WS_TOKEN_EXPIRE_MINUTES * 60


def test_decode_requires_matching_purpose():
    api_token = create_access_token("abc", PrincipalKind.TEACHER)
    ws_token = create_websocket_token("abc", PrincipalKind.TEACHER)

    assert decode_access_token(api_token).principal_id == "abc"
    assert decode_access_token(ws_token, purpose=WEBSOCKET_PURPOSE).principal_kind == PrincipalKind.TEACHER

    with pytest.raises(TokenPurposeError):
        decode_access_token(ws_token)
    with pytest.raises(TokenPurposeError):
        decode_access_token(api_token, purpose=WEBSOCKET_PURPOSE)


@pytest.mark.parametrize("token, message", [
    (None, "Not authorized, no token"),
    ("not-a-jwt", "Not authorized, token failed"),
])
def test_decode_rejects_bad_tokens(token, message):
    with pytest.raises(AuthenticationError) as exc:
        decode_access_token(token)
    assert exc.value.message == message


def test_decode_rejects_expired_token():
    expired = jwt.encode(
        {"sub": "abc", "user_type": "teacher", "exp": utcnow() - timedelta(minutes=1)},
        settings.JWT_ACCESS_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(AuthenticationError) as exc:
        decode_access_token(expired)
    assert exc.value.message == "Not authorized, token expired"


def test_store_sets_seven_day_expiry(db, make_teacher):
    teacher = make_teacher()
    token = generate_refresh_token()
    store_refresh_token(db, token, teacher.id, PrincipalKind.TEACHER)
    db.commit()

    row = db.query(RefreshToken).filter_by(token=token).one()
    assert row.teacher_id == teacher.id
    assert row.student_id is None and row.admin_id is None
    lifetime = row.expires_at - row.created_at
    assert abs(lifetime - timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)) < timedelta(seconds=5)


def test_verify_returns_owner(db, make_student):
    student = make_student()
    _, refresh = issue_token_pair(db, student.id, PrincipalKind.STUDENT)
    db.commit()

    assert verify_refresh_token(db, refresh) == (student.id, PrincipalKind.STUDENT)
    assert verify_refresh_token(db, "unknown") is None


def test_verify_expired_token_deletes_it_and_is_idempotent(db, make_teacher):
    teacher = make_teacher()
    token = generate_refresh_token()
    db.add(RefreshToken(token=token, teacher_id=teacher.id, expires_at=utcnow() - timedelta(seconds=1)))
    db.commit()

    assert verify_refresh_token(db, token) is None
    assert db.query(RefreshToken).filter_by(token=token).count() == 0
    assert verify_refresh_token(db, token) is None


def test_verify_drops_ownerless_token(db):
    token = generate_refresh_token()
    db.add(RefreshToken(token=token, expires_at=utcnow() + timedelta(days=1)))
    db.commit()

    assert verify_refresh_token(db, token) is None
    assert db.query(RefreshToken).filter_by(token=token).count() == 0


def test_delete_absent_token_does_not_raise(db):
    assert delete_refresh_token(db, "never-issued") is False
    db.commit()


def test_rotation_is_single_use(db, make_teacher):
    teacher = make_teacher()
    _, old = issue_token_pair(db, teacher.id, PrincipalKind.TEACHER)
    db.commit()

    principal_id, kind, access, new = rotate_refresh_token(db, old)
    assert (principal_id, kind) == (teacher.id, PrincipalKind.TEACHER)
    assert new != old
    assert decode_access_token(access).principal_id == teacher.id

    with pytest.raises(AuthenticationError) as exc:
        rotate_refresh_token(db, old)
    assert exc.value.message == "Invalid refresh token"

    # the replacement rotates again
    rotate_refresh_token(db, new)
    assert db.query(RefreshToken).filter_by(teacher_id=teacher.id).count() == 1


def test_rotation_fails_closed_when_a_concurrent_rotation_won(db, make_teacher, monkeypatch):
    from app.services import token_service

    teacher = make_teacher()
    _, old = issue_token_pair(db, teacher.id, PrincipalKind.TEACHER)
    db.commit()

    real_verify = token_service.verify_refresh_token

    def verify_then_lose_race(session, token):
        owner = real_verify(session, token)
        # another request consumes the token between our lookup and our delete
        delete_refresh_token(session, token)
        session.commit()
        return owner

    monkeypatch.setattr(token_service, "verify_refresh_token", verify_then_lose_race)

    with pytest.raises(AuthenticationError) as exc:
        rotate_refresh_token(db, old)
    assert exc.value.message == "Invalid refresh token"
    assert db.query(RefreshToken).filter_by(teacher_id=teacher.id).count() == 0
