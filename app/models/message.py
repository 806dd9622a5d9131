from sqlalchemy import Column, String, Text, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from app.db.base import Base
from app.utils.datetime_utils import utcnow, new_id


class Message(Base):
    __tablename__ = "message"

    id = Column(String(36), primary_key=True, default=new_id)
    conversation_id = Column(String(36), ForeignKey("conversation.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    content = Column(Text, nullable=False)
    admin_sender_id = Column(String(36), ForeignKey("admin.id", ondelete="SET NULL"), nullable=True)
    teacher_sender_id = Column(String(36), ForeignKey("teacher.id", ondelete="SET NULL"), nullable=True)
    student_sender_id = Column(String(36), ForeignKey("student.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    conversation = relationship("Conversation", back_populates="messages")
    admin_sender = relationship("Admin")
    teacher_sender = relationship("Teacher")
    student_sender = relationship("Student")
