import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt
from fastapi import Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AuthenticationError, TokenPurposeError
from app.db.transaction import transaction
from app.models.principal import PrincipalKind, owner_column, owner_fields
from app.models.token import RefreshToken
from app.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

WEBSOCKET_PURPOSE = "websocket"

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


@dataclass(frozen=True)
class TokenPayload:
    principal_id: str
    principal_kind: PrincipalKind
    purpose: Optional[str] = None


def _access_lifetime(purpose: Optional[str]) -> timedelta:
    if purpose == WEBSOCKET_PURPOSE:
        return timedelta(minutes=settings.WS_TOKEN_EXPIRE_MINUTES)
    return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def create_access_token(principal_id: str, principal_kind: PrincipalKind, purpose: Optional[str] = None) -> str:
    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": principal_id,
        "user_type": PrincipalKind(principal_kind).value,
        "iat": now,
        "exp": now + _access_lifetime(purpose),
    }
    if purpose:
        to_encode["purpose"] = purpose
    return jwt.encode(to_encode, settings.JWT_ACCESS_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_websocket_token(principal_id: str, principal_kind: PrincipalKind) -> str:
    return create_access_token(principal_id, principal_kind, purpose=WEBSOCKET_PURPOSE)


def decode_access_token(token: Optional[str], purpose: Optional[str] = None) -> TokenPayload:
    """
    Verify signature and expiry and return the claims.

    `purpose` must match the token's own purpose exactly: ordinary API routes pass
    None and so refuse websocket tokens, the gateway passes "websocket".
    """
    if not token:
        raise AuthenticationError("Not authorized, no token")
    try:
        payload = jwt.decode(token, settings.JWT_ACCESS_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Not authorized, token expired")
    except jwt.PyJWTError:
        raise AuthenticationError("Not authorized, token failed")

    principal_id = payload.get("sub")
    try:
        principal_kind = PrincipalKind(payload.get("user_type"))
    except ValueError:
        raise AuthenticationError("Not authorized, token failed")
    if not principal_id:
        raise AuthenticationError("Not authorized, token failed")

    if payload.get("purpose") != purpose:
        raise TokenPurposeError("Invalid token type")

    return TokenPayload(principal_id=principal_id, principal_kind=principal_kind, purpose=payload.get("purpose"))


def generate_refresh_token() -> str:
    return secrets.token_hex(40)


def store_refresh_token(db: Session, token: str, principal_id: str, principal_kind: PrincipalKind) -> RefreshToken:
    """ Adds the row to the session; the caller commits """
    db_token = RefreshToken(
        token=token,
        expires_at=utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        **owner_fields(principal_kind, principal_id),
    )
    db.add(db_token)
    db.flush()
    return db_token


def delete_refresh_token(db: Session, token: str) -> bool:
    """ Idempotent: an absent token is not an error. Returns whether a row was removed. """
    deleted = db.query(RefreshToken).filter(RefreshToken.token == token).delete(synchronize_session=False)
    return deleted > 0


def delete_all_refresh_tokens(db: Session, principal_id: str, principal_kind: PrincipalKind) -> int:
    column = getattr(RefreshToken, owner_column(principal_kind))
    return db.query(RefreshToken).filter(column == principal_id).delete(synchronize_session=False)


def _token_owner(db_token: RefreshToken) -> Optional[Tuple[str, PrincipalKind]]:
    for kind in PrincipalKind:
        principal_id = getattr(db_token, owner_column(kind))
        if principal_id:
            return principal_id, kind
    return None


def verify_refresh_token(db: Session, token: str) -> Optional[Tuple[str, PrincipalKind]]:
    """
    Look up a refresh token and return its owner as (principal_id, kind).

    Returns None for unknown tokens. Expired tokens and rows without an owner are
    deleted (and committed) before returning None, so a repeat call also yields None.
    """
    db_token = db.query(RefreshToken).filter(RefreshToken.token == token).first()
    if not db_token:
        return None

    if utcnow() > db_token.expires_at:
        with transaction(db):
            delete_refresh_token(db, token)
        logger.info("Expired refresh token removed")
        return None

    owner = _token_owner(db_token)
    if owner is None:
        token_id = db_token.id
        with transaction(db):
            delete_refresh_token(db, token)
        logger.warning(f"Refresh token {token_id} had no owner and was removed")
        return None

    return owner


def issue_token_pair(db: Session, principal_id: str, principal_kind: PrincipalKind) -> Tuple[str, str]:
    """ New access + refresh pair; the refresh row is added to the caller's transaction """
    access_token = create_access_token(principal_id, principal_kind)
    refresh_token = generate_refresh_token()
    store_refresh_token(db, refresh_token, principal_id, principal_kind)
    return access_token, refresh_token


def rotate_refresh_token(db: Session, refresh_token: str) -> Tuple[str, PrincipalKind, str, str]:
    """
    Exchange a refresh token for a new access/refresh pair. The old token is deleted
    in the same transaction that stores the new one, so a token rotates at most once.
    """
    owner = verify_refresh_token(db, refresh_token)
    if owner is None:
        raise AuthenticationError("Invalid refresh token")
    principal_id, principal_kind = owner

    with transaction(db):
        if not delete_refresh_token(db, refresh_token):
            # a concurrent rotation removed it after our lookup
            raise AuthenticationError("Invalid refresh token")
        access_token, new_refresh_token = issue_token_pair(db, principal_id, principal_kind)

    logger.info(f"Refresh token rotated for {principal_kind.value} {principal_id}")
    return principal_id, principal_kind, access_token, new_refresh_token


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": not settings.is_development,
        "samesite": "strict",
    }


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        **_cookie_options(),
    )
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        **_cookie_options(),
    )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_COOKIE, **_cookie_options())
    response.delete_cookie(REFRESH_COOKIE, **_cookie_options())
