from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from app.api.routes.auth import add_session_routes
from app.dependencies.auth import AuthContext, get_current_admin
from app.dependencies.db import get_db
from app.models.principal import PrincipalKind
from app.schemas.auth import AdminSignupRequest, PrincipalProfile
from app.schemas.common import ApiResponse
from app.services import auth_service

router = APIRouter()

add_session_routes(router, PrincipalKind.ADMIN)


@router.post(
    "/signup",
    response_model=ApiResponse[PrincipalProfile],
    status_code=status.HTTP_201_CREATED,
    summary="Create another admin",
    description="Only an authenticated, active admin can create admins. The first one comes from `python -m app.db.seed_admin`.",
)
def admin_signup(
        admin_in: AdminSignupRequest = Body(...),
        ctx: AuthContext = Depends(get_current_admin),
        db: Session = Depends(get_db),
):
    admin = auth_service.create_admin(db, admin_in)
    return ApiResponse(
        message="Admin created successfully",
        data=auth_service.to_profile(admin, PrincipalKind.ADMIN),
    )
