from enum import Enum
from typing import Optional, Union

from sqlalchemy.orm import Session

from app.models.admin import Admin
from app.models.teacher import Teacher
from app.models.student import Student


class PrincipalKind(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


Principal = Union[Admin, Teacher, Student]

PRINCIPAL_MODELS = {
    PrincipalKind.ADMIN: Admin,
    PrincipalKind.TEACHER: Teacher,
    PrincipalKind.STUDENT: Student,
}


def owner_column(kind: PrincipalKind) -> str:
    """ Name of the per-kind foreign key column, e.g. "teacher_id" """
    return f"{PrincipalKind(kind).value}_id"


def owner_fields(kind: PrincipalKind, principal_id: str) -> dict:
    return {owner_column(kind): principal_id}


def get_principal(db: Session, kind: PrincipalKind, principal_id: str) -> Optional[Principal]:
    model = PRINCIPAL_MODELS[PrincipalKind(kind)]
    return db.query(model).filter(model.id == principal_id).first()


def get_principal_by_email(db: Session, kind: PrincipalKind, email: str) -> Optional[Principal]:
    model = PRINCIPAL_MODELS[PrincipalKind(kind)]
    return db.query(model).filter(model.email == email).first()


def is_restricted(principal: Principal) -> bool:
    """ Banned teacher/student or deactivated admin """
    if isinstance(principal, Admin):
        return not principal.is_active
    return bool(principal.is_banned)
