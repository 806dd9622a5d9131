import logging
from typing import Optional

from fastapi import APIRouter, Body, Cookie, Depends, Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.dependencies.auth import KIND_DEPENDENCIES, AuthContext, get_current_principal
from app.dependencies.db import get_db
from app.models.principal import PrincipalKind
from app.schemas.auth import (
    EmailRequest,
    LoginRequest,
    OtpRequest,
    PrincipalProfile,
    ResetPasswordRequest,
    WebSocketTokenResponse,
)
from app.schemas.common import ApiResponse
from app.services import auth_service
from app.services.token_service import (
    REFRESH_COOKIE,
    clear_auth_cookies,
    create_websocket_token,
    set_auth_cookies,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/refresh",
    response_model=ApiResponse[PrincipalProfile],
    summary="Rotate the refresh token",
    description="Consumes the refreshToken cookie and sets a fresh access/refresh cookie pair.",
)
def refresh_token(
        response: Response,
        refresh_token: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
        db: Session = Depends(get_db),
):
    profile, access_token, new_refresh_token = auth_service.refresh_session(db, refresh_token)
    set_auth_cookies(response, access_token, new_refresh_token)
    return ApiResponse(message="Token refreshed successfully", data=profile)


@router.get(
    "/refresh/websocket-token",
    response_model=ApiResponse[WebSocketTokenResponse],
    summary="Issue a websocket token",
    description="Short-lived token accepted only by the /ws handshake. Returned in the body, not as a cookie.",
)
def websocket_token(ctx: AuthContext = Depends(get_current_principal)):
    token = create_websocket_token(ctx.principal_id, ctx.principal_kind)
    return ApiResponse(
        message="WebSocket token generated successfully",
        data=WebSocketTokenResponse(token=token, expires_in=settings.WS_TOKEN_EXPIRE_MINUTES * 60),
    )


def add_session_routes(router: APIRouter, kind: PrincipalKind) -> None:
    """ login / logout / logout-all / me for one principal kind """
    current = KIND_DEPENDENCIES[kind]
    label = kind.value.capitalize()

    @router.post(
        "/login",
        response_model=ApiResponse[PrincipalProfile],
        name=f"{kind.value}_login",
        summary=f"{label} login",
    )
    def login(
            response: Response,
            login_req: LoginRequest = Body(...),
            db: Session = Depends(get_db),
    ):
        principal, access_token, refresh_token = auth_service.login(db, kind, login_req.email, login_req.password)
        set_auth_cookies(response, access_token, refresh_token)
        return ApiResponse(
            message=f"{label} logged in successfully",
            data=auth_service.to_profile(principal, kind),
        )

    @router.post(
        "/logout",
        response_model=ApiResponse[None],
        name=f"{kind.value}_logout",
        summary=f"{label} logout",
    )
    def logout(
            response: Response,
            ctx: AuthContext = Depends(current),
            refresh_token: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
            db: Session = Depends(get_db),
    ):
        auth_service.logout(db, refresh_token)
        clear_auth_cookies(response)
        logger.info(f"{kind.value} {ctx.principal_id} logged out")
        return ApiResponse(message=f"{label} logged out successfully")

    @router.post(
        "/logout-all",
        response_model=ApiResponse[None],
        name=f"{kind.value}_logout_all",
        summary=f"{label} logout from every device",
    )
    def logout_all(
            response: Response,
            ctx: AuthContext = Depends(current),
            db: Session = Depends(get_db),
    ):
        auth_service.logout_everywhere(db, ctx.principal_id, kind)
        clear_auth_cookies(response)
        return ApiResponse(message="Logged out from all devices")

    @router.get(
        "/me",
        response_model=ApiResponse[PrincipalProfile],
        name=f"{kind.value}_me",
        summary=f"Current {kind.value} profile",
    )
    def me(ctx: AuthContext = Depends(current)):
        return ApiResponse(
            message=f"{label} profile retrieved successfully",
            data=auth_service.to_profile(ctx.principal, kind),
        )


def add_account_routes(router: APIRouter, kind: PrincipalKind) -> None:
    """ Email verification and password reset, for self-registered kinds """
    label = kind.value.capitalize()

    @router.post(
        "/verify-otp",
        response_model=ApiResponse[None],
        name=f"{kind.value}_verify_otp",
        summary=f"Verify {kind.value} email",
    )
    def verify_otp(otp_req: OtpRequest = Body(...), db: Session = Depends(get_db)):
        auth_service.verify_otp(db, kind, otp_req.email, otp_req.otp)
        return ApiResponse(message="Email verified successfully")

    @router.post(
        "/resend-otp",
        response_model=ApiResponse[None],
        name=f"{kind.value}_resend_otp",
        summary=f"Resend {kind.value} verification code",
    )
    def resend_otp(email_req: EmailRequest = Body(...), db: Session = Depends(get_db)):
        auth_service.resend_otp(db, kind, email_req.email)
        return ApiResponse(message="OTP sent successfully")

    @router.post(
        "/forgot-password",
        response_model=ApiResponse[None],
        name=f"{kind.value}_forgot_password",
        summary=f"Request a {kind.value} password reset code",
    )
    def forgot_password(email_req: EmailRequest = Body(...), db: Session = Depends(get_db)):
        auth_service.forgot_password(db, kind, email_req.email)
        return ApiResponse(message="Password reset OTP sent successfully")

    @router.post(
        "/reset-password",
        response_model=ApiResponse[None],
        name=f"{kind.value}_reset_password",
        summary=f"Reset {kind.value} password",
    )
    def reset_password(reset_req: ResetPasswordRequest = Body(...), db: Session = Depends(get_db)):
        auth_service.reset_password(db, kind, reset_req.email, reset_req.otp, reset_req.new_password)
        return ApiResponse(message=f"{label} password reset successfully")


def signup_response(response: Response, account, kind: PrincipalKind, access_token: str, refresh_token: str):
    set_auth_cookies(response, access_token, refresh_token)
    return ApiResponse(
        message=f"{kind.value.capitalize()} registered successfully. Please verify your email.",
        data=auth_service.to_profile(account, kind),
    )
