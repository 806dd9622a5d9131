from sqlalchemy import Column, String, Boolean, DateTime
from app.db.base import Base
from app.utils.datetime_utils import utcnow, new_id


class Student(Base):
    __tablename__ = "student"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)
    enrollment_no = Column(String(64), unique=True, index=True, nullable=False)
    phone_number = Column(String(32), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_banned = Column(Boolean, nullable=False, default=False)
    otp = Column(String(6), nullable=True)
    otp_expiry = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
