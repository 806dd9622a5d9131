from sqlalchemy import Column, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from app.db.base import Base
from app.utils.datetime_utils import utcnow, new_id


class Conversation(Base):
    __tablename__ = "conversation"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    participants = relationship("ConversationParticipant", back_populates="conversation",
                                cascade="all, delete-orphan")
    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan",
                            order_by="Message.created_at")


class ConversationParticipant(Base):
    __tablename__ = "conversation_participant"

    id = Column(String(36), primary_key=True, default=new_id)
    conversation_id = Column(String(36), ForeignKey("conversation.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    admin_id = Column(String(36), ForeignKey("admin.id", ondelete="CASCADE"), nullable=True, index=True)
    teacher_id = Column(String(36), ForeignKey("teacher.id", ondelete="CASCADE"), nullable=True, index=True)
    student_id = Column(String(36), ForeignKey("student.id", ondelete="CASCADE"), nullable=True, index=True)
    joined_at = Column(DateTime, nullable=False, default=utcnow)
    left_at = Column(DateTime, nullable=True)
    last_read_at = Column(DateTime, nullable=True)  # read watermark, written by the REST read endpoint

    conversation = relationship("Conversation", back_populates="participants")
    admin = relationship("Admin")
    teacher = relationship("Teacher")
    student = relationship("Student")
