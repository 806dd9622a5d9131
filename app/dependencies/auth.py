from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import APIKeyCookie
from sqlalchemy.orm import Session

from app.core.exceptions import AuthenticationError, ForbiddenError
from app.dependencies.db import get_db
from app.models.principal import Principal, PrincipalKind, get_principal
from app.models.admin import Admin
from app.services.token_service import ACCESS_COOKIE, TokenPayload, decode_access_token

access_cookie = APIKeyCookie(name=ACCESS_COOKIE, auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """ Authenticated caller, produced by the dependencies below and passed to handlers """
    principal_id: str
    principal_kind: PrincipalKind
    principal: Optional[Principal] = None


def get_token_payload(token: Optional[str] = Depends(access_cookie)) -> TokenPayload:
    return decode_access_token(token)


def get_current_principal(payload: TokenPayload = Depends(get_token_payload)) -> AuthContext:
    """ Any kind; only the token is checked, the principal row is not loaded """
    return AuthContext(principal_id=payload.principal_id, principal_kind=payload.principal_kind)


def _load_context(db: Session, payload: TokenPayload, kind: PrincipalKind) -> AuthContext:
    if payload.principal_kind != kind:
        raise ForbiddenError(f"Not authorized as {kind.value}")

    principal = get_principal(db, kind, payload.principal_id)
    if not principal:
        raise AuthenticationError(f"{kind.value.capitalize()} not found")

    if isinstance(principal, Admin):
        if not principal.is_active:
            raise ForbiddenError("Your account has been deactivated")
    elif principal.is_banned:
        raise ForbiddenError("Your account has been banned")

    return AuthContext(principal_id=principal.id, principal_kind=kind, principal=principal)


def get_current_admin(
        payload: TokenPayload = Depends(get_token_payload),
        db: Session = Depends(get_db),
) -> AuthContext:
    return _load_context(db, payload, PrincipalKind.ADMIN)


def get_current_teacher(
        payload: TokenPayload = Depends(get_token_payload),
        db: Session = Depends(get_db),
) -> AuthContext:
    return _load_context(db, payload, PrincipalKind.TEACHER)


def get_current_student(
        payload: TokenPayload = Depends(get_token_payload),
        db: Session = Depends(get_db),
) -> AuthContext:
    return _load_context(db, payload, PrincipalKind.STUDENT)


KIND_DEPENDENCIES = {
    PrincipalKind.ADMIN: get_current_admin,
    PrincipalKind.TEACHER: get_current_teacher,
    PrincipalKind.STUDENT: get_current_student,
}
