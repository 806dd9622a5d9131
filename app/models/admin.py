from sqlalchemy import Column, String, Boolean, DateTime
from app.db.base import Base
from app.utils.datetime_utils import utcnow, new_id


class Admin(Base):
    __tablename__ = "admin"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)  # bcrypt hash
    designation = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
