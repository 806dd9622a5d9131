from fastapi import APIRouter, Body, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.routes.auth import add_account_routes, add_session_routes, signup_response
from app.dependencies.db import get_db
from app.models.principal import PrincipalKind
from app.schemas.auth import PrincipalProfile, StudentSignupRequest
from app.schemas.common import ApiResponse
from app.services import auth_service

router = APIRouter()

add_session_routes(router, PrincipalKind.STUDENT)
add_account_routes(router, PrincipalKind.STUDENT)


@router.post(
    "/signup",
    response_model=ApiResponse[PrincipalProfile],
    status_code=status.HTTP_201_CREATED,
    summary="Student signup",
)
def student_signup(
        response: Response,
        student_in: StudentSignupRequest = Body(...),
        db: Session = Depends(get_db),
):
    student, access_token, refresh_token = auth_service.signup_student(db, student_in)
    return signup_response(response, student, PrincipalKind.STUDENT, access_token, refresh_token)
