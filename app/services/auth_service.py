import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AuthenticationError, ForbiddenError, NotFoundError, ValidationError
from app.core.security import generate_otp, hash_password, verify_password
from app.db.transaction import transaction
from app.models.admin import Admin
from app.models.principal import (
    Principal,
    PrincipalKind,
    get_principal,
    get_principal_by_email,
    is_restricted,
)
from app.models.student import Student
from app.models.teacher import Teacher
from app.schemas.auth import (
    AdminSignupRequest,
    PrincipalProfile,
    StudentSignupRequest,
    TeacherSignupRequest,
)
from app.services import email_service
from app.services.token_service import (
    delete_all_refresh_tokens,
    delete_refresh_token,
    issue_token_pair,
    rotate_refresh_token,
)
from app.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


def restriction_message(principal: Principal) -> str:
    if isinstance(principal, Admin):
        return "Your account has been deactivated"
    return "Your account has been banned. Please contact the administrators."


def to_profile(principal: Principal, kind: PrincipalKind) -> PrincipalProfile:
    return PrincipalProfile(
        id=principal.id,
        name=principal.name,
        email=principal.email,
        user_type=kind,
        is_verified=principal.is_verified,
        designation=getattr(principal, "designation", None),
        qualification=getattr(principal, "qualification", None),
        specialization=getattr(principal, "specialization", None),
        enrollment_no=getattr(principal, "enrollment_no", None),
        phone_number=getattr(principal, "phone_number", None),
        created_at=principal.created_at,
    )


# =========================
# login / logout / refresh
# =========================

def authenticate(db: Session, kind: PrincipalKind, email: str, password: str) -> Principal:
    """
    Unknown email and wrong password share one message. A restricted account is only
    reported once the password has matched.
    """
    principal = get_principal_by_email(db, kind, email)
    if not principal or not verify_password(password, principal.password):
        logger.info(f"{kind.value} login failed - email: {email}")
        raise AuthenticationError(INVALID_CREDENTIALS)
    if is_restricted(principal):
        logger.info(f"{kind.value} login refused for restricted account - email: {email}")
        raise ForbiddenError(restriction_message(principal))
    return principal


def login(db: Session, kind: PrincipalKind, email: str, password: str) -> Tuple[Principal, str, str]:
    principal = authenticate(db, kind, email, password)
    with transaction(db):
        access_token, refresh_token = issue_token_pair(db, principal.id, kind)
    logger.info(f"{kind.value} login success - email: {email}")
    return principal, access_token, refresh_token


def logout(db: Session, refresh_token: Optional[str]) -> None:
    if not refresh_token:
        return
    with transaction(db):
        delete_refresh_token(db, refresh_token)


def logout_everywhere(db: Session, principal_id: str, kind: PrincipalKind) -> int:
    with transaction(db):
        removed = delete_all_refresh_tokens(db, principal_id, kind)
    logger.info(f"Revoked {removed} refresh token(s) for {kind.value} {principal_id}")
    return removed


def refresh_session(db: Session, refresh_token: Optional[str]) -> Tuple[PrincipalProfile, str, str]:
    if not refresh_token:
        raise AuthenticationError("No refresh token provided")

    principal_id, kind, access_token, new_refresh_token = rotate_refresh_token(db, refresh_token)

    principal = get_principal(db, kind, principal_id)
    if not principal or is_restricted(principal):
        with transaction(db):
            delete_refresh_token(db, new_refresh_token)
        raise AuthenticationError("User not found")

    return to_profile(principal, kind), access_token, new_refresh_token


# =========================
# registration
# =========================

def create_admin(db: Session, admin_in: AdminSignupRequest) -> Admin:
    if get_principal_by_email(db, PrincipalKind.ADMIN, admin_in.email):
        raise ValidationError({"email": ["Admin already exists with this email"]})

    admin = Admin(
        name=admin_in.name,
        email=admin_in.email,
        password=hash_password(admin_in.password),
        designation=admin_in.designation,
        is_active=True,
        is_verified=True,
    )
    with transaction(db):
        db.add(admin)
    db.refresh(admin)
    logger.info(f"Admin created - email: {admin.email}")
    return admin


def _new_otp() -> Tuple[str, datetime]:
    return generate_otp(), utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)


def signup_teacher(db: Session, teacher_in: TeacherSignupRequest) -> Tuple[Teacher, str, str]:
    otp, otp_expiry = _new_otp()
    with transaction(db):
        if get_principal_by_email(db, PrincipalKind.TEACHER, teacher_in.email):
            raise ValidationError({"email": ["Teacher already exists with this email"]})
        teacher = Teacher(
            name=teacher_in.name,
            email=teacher_in.email,
            password=hash_password(teacher_in.password),
            qualification=teacher_in.qualification,
            specialization=teacher_in.specialization,
            phone_number=teacher_in.phone_number,
            otp=otp,
            otp_expiry=otp_expiry,
        )
        db.add(teacher)
        db.flush()
        access_token, refresh_token = issue_token_pair(db, teacher.id, PrincipalKind.TEACHER)

    email_service.send_verification_email(teacher.email, otp, teacher.name)
    return teacher, access_token, refresh_token


def signup_student(db: Session, student_in: StudentSignupRequest) -> Tuple[Student, str, str]:
    otp, otp_expiry = _new_otp()
    with transaction(db):
        exists = db.query(Student).filter(
            (Student.email == student_in.email) | (Student.enrollment_no == student_in.enrollment_no)
        ).first()
        if exists:
            raise ValidationError({"email": ["Student already exists with this email or enrollment number"]})
        student = Student(
            name=student_in.name,
            email=student_in.email,
            password=hash_password(student_in.password),
            enrollment_no=student_in.enrollment_no,
            phone_number=student_in.phone_number,
            otp=otp,
            otp_expiry=otp_expiry,
        )
        db.add(student)
        db.flush()
        access_token, refresh_token = issue_token_pair(db, student.id, PrincipalKind.STUDENT)

    email_service.send_verification_email(student.email, otp, student.name)
    return student, access_token, refresh_token


# =========================
# OTP and password reset (teacher / student)
# =========================

def _get_account(db: Session, kind: PrincipalKind, email: str):
    account = get_principal_by_email(db, kind, email)
    if not account:
        raise NotFoundError(f"{kind.value.capitalize()} not found")
    return account


def _check_otp(account, otp: str, missing_message: str) -> None:
    if not account.otp or not account.otp_expiry:
        raise ValidationError({"otp": [missing_message]})
    if account.otp != otp:
        raise ValidationError({"otp": ["Invalid OTP"]})
    if utcnow() > account.otp_expiry:
        raise ValidationError({"otp": ["OTP has expired"]})


def _ensure_no_live_otp(account) -> None:
    if account.otp_expiry and utcnow() < account.otp_expiry:
        raise ValidationError({"email": ["Please wait for the previous OTP to expire"]})


def verify_otp(db: Session, kind: PrincipalKind, email: str, otp: str) -> None:
    with transaction(db):
        account = _get_account(db, kind, email)
        if account.is_verified:
            raise ValidationError({"email": ["Email is already verified"]})
        _check_otp(account, otp, "No OTP found. Please request a new one")
        account.is_verified = True
        account.otp = None
        account.otp_expiry = None


def resend_otp(db: Session, kind: PrincipalKind, email: str) -> None:
    otp, otp_expiry = _new_otp()
    with transaction(db):
        account = _get_account(db, kind, email)
        if account.is_verified:
            raise ValidationError({"email": ["Email is already verified"]})
        _ensure_no_live_otp(account)
        account.otp = otp
        account.otp_expiry = otp_expiry
        name = account.name

    email_service.send_verification_email(email, otp, name)


def forgot_password(db: Session, kind: PrincipalKind, email: str) -> None:
    otp, otp_expiry = _new_otp()
    with transaction(db):
        account = _get_account(db, kind, email)
        _ensure_no_live_otp(account)
        account.otp = otp
        account.otp_expiry = otp_expiry
        name = account.name

    email_service.send_password_reset_email(email, otp, name)


def reset_password(db: Session, kind: PrincipalKind, email: str, otp: str, new_password: str) -> None:
    with transaction(db):
        account = _get_account(db, kind, email)
        _check_otp(account, otp, "No OTP found. Please request a password reset")
        account.password = hash_password(new_password)
        account.otp = None
        account.otp_expiry = None
        # outstanding sessions do not survive a password reset
        delete_all_refresh_tokens(db, account.id, kind)
