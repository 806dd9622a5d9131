import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

from app.models.principal import PrincipalKind

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")


def _check_password_strength(value: str) -> str:
    if len(value) < 6:
        raise ValueError("Password must be at least 6 characters long")
    if not re.search(r"\d", value):
        raise ValueError("Password must contain at least one number")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required")
        return value


class SignupBase(BaseModel):
    email: EmailStr
    password: str
    name: str
    phone_number: Optional[str] = None

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)

    @field_validator("name")
    @classmethod
    def name_length(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Name must be at least 2 characters long")
        return value

    @field_validator("phone_number")
    @classmethod
    def valid_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not PHONE_PATTERN.match(value):
            raise ValueError("Please enter a valid phone number")
        return value


class AdminSignupRequest(SignupBase):
    designation: Optional[str] = None


class TeacherSignupRequest(SignupBase):
    qualification: str
    specialization: Optional[str] = None

    @field_validator("qualification")
    @classmethod
    def qualification_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Qualification is required")
        return value


class StudentSignupRequest(SignupBase):
    enrollment_no: str

    @field_validator("enrollment_no")
    @classmethod
    def enrollment_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Enrollment number is required")
        return value


class EmailRequest(BaseModel):
    email: EmailStr


class OtpRequest(BaseModel):
    email: EmailStr
    otp: str

    @field_validator("otp")
    @classmethod
    def otp_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("OTP is required")
        return value


class ResetPasswordRequest(OtpRequest):
    new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class PrincipalProfile(BaseModel):
    id: str
    name: str
    email: str
    user_type: PrincipalKind
    is_verified: Optional[bool] = None
    designation: Optional[str] = None
    qualification: Optional[str] = None
    specialization: Optional[str] = None
    enrollment_no: Optional[str] = None
    phone_number: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WebSocketTokenResponse(BaseModel):
    token: str
    expires_in: int  # seconds
