from fastapi import APIRouter, Body, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.routes.auth import add_account_routes, add_session_routes, signup_response
from app.dependencies.db import get_db
from app.models.principal import PrincipalKind
from app.schemas.auth import PrincipalProfile, TeacherSignupRequest
from app.schemas.common import ApiResponse
from app.services import auth_service

router = APIRouter()

add_session_routes(router, PrincipalKind.TEACHER)
add_account_routes(router, PrincipalKind.TEACHER)


@router.post(
    "/signup",
    response_model=ApiResponse[PrincipalProfile],
    status_code=status.HTTP_201_CREATED,
    summary="Teacher signup",
    description="Creates an unverified teacher, emails a verification code and signs the teacher in.",
)
def teacher_signup(
        response: Response,
        teacher_in: TeacherSignupRequest = Body(...),
        db: Session = Depends(get_db),
):
    teacher, access_token, refresh_token = auth_service.signup_teacher(db, teacher_in)
    return signup_response(response, teacher, PrincipalKind.TEACHER, access_token, refresh_token)
