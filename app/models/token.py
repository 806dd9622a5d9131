from sqlalchemy import Column, String, ForeignKey, DateTime
from app.db.base import Base
from app.utils.datetime_utils import utcnow, new_id


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, default=new_id)
    token = Column(String(80), unique=True, index=True, nullable=False)
    # exactly one owner column is set
    admin_id = Column(String(36), ForeignKey("admin.id", ondelete="CASCADE"), nullable=True, index=True)
    teacher_id = Column(String(36), ForeignKey("teacher.id", ondelete="CASCADE"), nullable=True, index=True)
    student_id = Column(String(36), ForeignKey("student.id", ondelete="CASCADE"), nullable=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
